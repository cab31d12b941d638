"""
Tests for System and SPL Token transfer parsers.
"""

from __future__ import annotations

import struct

import base58

from block_fetcher.etl.models import RawInstruction
from block_fetcher.etl.parsers import decode_system_data, parse_system_transfer, parse_token_transfer
from block_fetcher.etl.registry import SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from conftest import WALLET_A, WALLET_B

MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def _b58(raw: bytes) -> str:
    return base58.b58encode(raw).decode()


def test_decode_system_transfer_data():
    """Discriminator 2 (u32 LE) followed by lamports (u64 LE)."""
    data = _b58(struct.pack("<IQ", 2, 1_500_000_000))
    assert decode_system_data(data) == {"type": "transfer", "info": {"lamports": 1_500_000_000}}


def test_decode_system_non_transfer_data():
    assert decode_system_data(_b58(struct.pack("<IQ", 0, 5))) is None  # createAccount
    assert decode_system_data(_b58(b"\x02\x00")) is None  # too short
    assert decode_system_data("0OIl") is None  # not base58
    assert decode_system_data(None) is None


def test_parse_system_transfer_parsed():
    ix = RawInstruction(
        program_id=SYSTEM_PROGRAM_ID,
        parsed={"type": "transfer", "info": {"source": WALLET_A, "destination": WALLET_B, "lamports": 10}},
    )
    details = parse_system_transfer(ix)
    assert details is not None
    assert (details.amount, details.source, details.destination) == (10, WALLET_A, WALLET_B)


def test_parse_system_transfer_compiled():
    """json encoding: lamports from data, source/destination from the first two accounts."""
    ix = RawInstruction(
        program_id=SYSTEM_PROGRAM_ID,
        accounts=(WALLET_A, WALLET_B),
        data=_b58(struct.pack("<IQ", 2, 77)),
    )
    details = parse_system_transfer(ix)
    assert details is not None
    assert details.amount == 77
    assert details.source == WALLET_A
    assert details.destination == WALLET_B


def test_parse_system_other_instruction():
    ix = RawInstruction(
        program_id=SYSTEM_PROGRAM_ID,
        parsed={"type": "createAccount", "info": {"source": WALLET_A, "newAccount": WALLET_B}},
    )
    assert parse_system_transfer(ix) is None


def test_parse_token_transfer():
    ix = RawInstruction(
        program_id=TOKEN_PROGRAM_ID,
        parsed={"type": "transfer", "info": {"source": WALLET_A, "destination": WALLET_B, "amount": "123456789012"}},
    )
    details = parse_token_transfer(ix)
    assert details is not None
    assert details.amount == 123_456_789_012
    assert details.mint is None


def test_parse_token_transfer_checked():
    """transferChecked carries the mint and the amount inside tokenAmount."""
    ix = RawInstruction(
        program_id=TOKEN_PROGRAM_ID,
        parsed={
            "type": "transferChecked",
            "info": {
                "source": WALLET_A,
                "destination": WALLET_B,
                "mint": MINT,
                "tokenAmount": {"amount": "5000", "decimals": 6, "uiAmount": 0.005},
            },
        },
    )
    details = parse_token_transfer(ix)
    assert details is not None
    assert details.amount == 5000
    assert details.mint == MINT
    assert details.to_dict() == {"amount": 5000, "source": WALLET_A, "destination": WALLET_B, "mint": MINT}


def test_parse_token_non_transfer():
    ix = RawInstruction(program_id=TOKEN_PROGRAM_ID, parsed={"type": "closeAccount", "info": {}})
    assert parse_token_transfer(ix) is None
    assert parse_token_transfer(RawInstruction(program_id=TOKEN_PROGRAM_ID, data="3Bxs")) is None
