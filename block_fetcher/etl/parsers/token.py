"""
SPL Token / Token-2022 instruction parser.

Handles `transfer` and `transferChecked` from jsonParsed payloads. Amounts
arrive as strings (u64 may exceed JSON number precision) or, for
transferChecked, inside tokenAmount.
"""

from __future__ import annotations

from typing import Any

from block_fetcher.etl.models import RawInstruction, TransferDetails

_TRANSFER_TYPES = ("transfer", "transferChecked")


def _parse_amount(info: dict[str, Any]) -> int | None:
    value = info.get("amount")
    if value is None:
        value = (info.get("tokenAmount") or {}).get("amount")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def parse_token_transfer(instruction: RawInstruction) -> TransferDetails | None:
    """
    Extract (amount, mint, source, destination) from a token transfer.

    Returns None if the instruction is not a transfer or is missing fields.
    Mint is only present for transferChecked.
    """
    parsed = instruction.parsed
    if not isinstance(parsed, dict) or parsed.get("type") not in _TRANSFER_TYPES:
        return None
    info = parsed.get("info") or {}
    amount = _parse_amount(info)
    source = info.get("source")
    destination = info.get("destination")
    if amount is None or not source or not destination:
        return None
    return TransferDetails(
        amount=amount,
        source=source,
        destination=destination,
        mint=info.get("mint"),
    )
