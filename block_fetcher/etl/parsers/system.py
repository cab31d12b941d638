"""
System Program instruction parser.

Reads native SOL transfers from jsonParsed instructions, and decodes the
raw (json encoding) transfer layout: u32 discriminator 2 followed by u64
lamports, both little-endian.
"""

from __future__ import annotations

from typing import Any

import base58

from block_fetcher.etl.models import RawInstruction, TransferDetails

SYSTEM_TRANSFER_DISCRIMINATOR = 2
_TRANSFER_TYPES = ("transfer", "transferWithSeed")


def decode_system_data(data_b58: str | None) -> dict[str, Any] | None:
    """Decode compiled System Program data; only transfers are understood."""
    if not data_b58:
        return None
    try:
        raw = base58.b58decode(data_b58)
    except ValueError:
        return None
    if len(raw) < 12:
        return None
    if int.from_bytes(raw[0:4], "little") != SYSTEM_TRANSFER_DISCRIMINATOR:
        return None
    return {"type": "transfer", "info": {"lamports": int.from_bytes(raw[4:12], "little")}}


def parse_system_transfer(instruction: RawInstruction) -> TransferDetails | None:
    """
    Extract (lamports, source, destination) from a System Program transfer.

    Returns None for non-transfer instructions (createAccount, advanceNonce, ...).
    """
    parsed = instruction.parsed
    if isinstance(parsed, dict):
        if parsed.get("type") not in _TRANSFER_TYPES:
            return None
        info = parsed.get("info") or {}
        lamports = info.get("lamports")
        source = info.get("source")
        destination = info.get("destination")
        if not isinstance(lamports, int) or not source or not destination:
            return None
        return TransferDetails(amount=lamports, source=source, destination=destination)

    decoded = decode_system_data(instruction.data)
    if decoded is None or len(instruction.accounts) < 2:
        return None
    return TransferDetails(
        amount=decoded["info"]["lamports"],
        source=instruction.accounts[0],
        destination=instruction.accounts[1],
    )
