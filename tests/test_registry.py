"""
Tests for the program registry: seed data, lookups and address validation.
"""

from __future__ import annotations

import pytest

from block_fetcher.etl.registry import (
    CATEGORY_DEX,
    CATEGORY_NFT,
    CATEGORY_SYSTEM,
    CATEGORY_TOKEN,
    COMPUTE_BUDGET_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    ProgramInfo,
    ProgramRegistry,
    is_valid_address,
)
from conftest import JUPITER_ID, MAGIC_EDEN_ID, WALLET_A


def test_seed_resolves_core_programs(registry):
    """System, Token and Token-2022 are always present with their categories."""
    system = registry.resolve(SYSTEM_PROGRAM_ID)
    assert system is not None
    assert system.name == "System Program"
    assert system.category == CATEGORY_SYSTEM
    assert registry.category_of(TOKEN_PROGRAM_ID) == CATEGORY_TOKEN
    assert registry.category_of(TOKEN_2022_PROGRAM_ID) == CATEGORY_TOKEN
    assert registry.category_of(COMPUTE_BUDGET_PROGRAM_ID) == CATEGORY_SYSTEM


def test_seed_dex_and_nft(registry):
    assert registry.category_of(JUPITER_ID) == CATEGORY_DEX
    assert registry.name_of(JUPITER_ID) == "Jupiter Aggregator v6"
    assert registry.category_of(MAGIC_EDEN_ID) == CATEGORY_NFT


def test_unknown_program_resolves_none(registry):
    assert registry.resolve(WALLET_A) is None
    assert registry.name_of(WALLET_A) is None
    assert registry.category_of(WALLET_A) is None
    assert WALLET_A not in registry


def test_registry_is_read_only(registry):
    """The program mapping cannot be mutated through the public view."""
    programs = registry.programs
    with pytest.raises(TypeError):
        programs[WALLET_A] = ProgramInfo(WALLET_A, "x", CATEGORY_DEX)  # type: ignore[index]
    assert WALLET_A not in registry


def test_invalid_ids_are_skipped():
    """Entries whose id is not a valid pubkey are dropped at construction."""
    reg = ProgramRegistry(
        [
            ProgramInfo(SYSTEM_PROGRAM_ID, "System Program", CATEGORY_SYSTEM),
            ProgramInfo("not-a-pubkey", "Broken", CATEGORY_DEX),
        ]
    )
    assert len(reg) == 1
    assert "not-a-pubkey" not in reg


def test_from_rows():
    """Rows shaped like program_registry table rows build a registry."""
    reg = ProgramRegistry.from_rows(
        [
            {"program_id": JUPITER_ID, "program_name": "Jupiter", "program_type": "DEX", "description": None},
            {"program_id": MAGIC_EDEN_ID, "program_name": "ME", "program_type": None},
        ]
    )
    assert reg.name_of(JUPITER_ID) == "Jupiter"
    assert reg.category_of(MAGIC_EDEN_ID) == "Unknown"


def test_is_valid_address():
    assert is_valid_address(WALLET_A) is True
    assert is_valid_address(SYSTEM_PROGRAM_ID) is True
    assert is_valid_address("") is False
    assert is_valid_address("0OIl") is False
