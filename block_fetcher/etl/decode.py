"""
getBlock payload decoder: raw RPC JSON to RawBlock.

Purely structural. Supports both `json` (string account keys, index-based
program ids and accounts, signer/writable flags derived from the message
header) and `jsonParsed` (account key objects, inline program ids and
parsed instructions). Versioned transactions append meta.loadedAddresses.
"""

from __future__ import annotations

from typing import Any

from block_fetcher.core.exceptions import ClassificationAnomaly
from block_fetcher.etl.models import AccountRef, RawBlock, RawInstruction, RawTransaction
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)


def _header_flags(index: int, num_static: int, header: dict[str, Any]) -> tuple[bool, bool]:
    """(signer, writable) for a static account key under the legacy message header rules."""
    required = int(header.get("numRequiredSignatures") or 0)
    readonly_signed = int(header.get("numReadonlySignedAccounts") or 0)
    readonly_unsigned = int(header.get("numReadonlyUnsignedAccounts") or 0)
    if index < required:
        return True, index < required - readonly_signed
    return False, index < num_static - readonly_unsigned


def decode_account_keys(message: dict[str, Any], meta: dict[str, Any] | None = None) -> list[AccountRef]:
    """
    Resolve accountKeys to AccountRefs in source order (handles json vs jsonParsed).
    For versioned json transactions, appends meta.loadedAddresses (writable then readonly).
    """
    keys = message.get("accountKeys") or []
    if not keys:
        return []
    if isinstance(keys[0], dict):
        return [
            AccountRef(
                address=str(k.get("pubkey", "")),
                signer=bool(k.get("signer")),
                writable=bool(k.get("writable")),
            )
            for k in keys
            if isinstance(k, dict)
        ]
    header = message.get("header") or {}
    out = []
    for i, key in enumerate(keys):
        signer, writable = _header_flags(i, len(keys), header)
        out.append(AccountRef(address=str(key), signer=signer, writable=writable))
    loaded = (meta or {}).get("loadedAddresses") or {}
    for role in ("writable", "readonly"):
        for addr in loaded.get(role) or []:
            out.append(AccountRef(address=str(addr), writable=role == "writable"))
    return out


def _addresses_in(value: Any, known: set[str], found: list[str]) -> None:
    """Collect known addresses from a parsed instruction's info, in key order."""
    if isinstance(value, str):
        if value in known and value not in found:
            found.append(value)
    elif isinstance(value, dict):
        for v in value.values():
            _addresses_in(v, known, found)
    elif isinstance(value, list):
        for v in value:
            _addresses_in(v, known, found)


def decode_instruction(ix: Any, account_keys: list[str]) -> RawInstruction:
    """Decode one top-level instruction. Raises ClassificationAnomaly on unexpected shapes."""
    if not isinstance(ix, dict):
        raise ClassificationAnomaly(f"instruction is {type(ix).__name__}, expected object")

    program_id = ix.get("programId")
    if program_id is None and "programIdIndex" in ix:
        idx = ix["programIdIndex"]
        if not isinstance(idx, int) or not (0 <= idx < len(account_keys)):
            raise ClassificationAnomaly(f"programIdIndex {idx!r} out of range")
        program_id = account_keys[idx]
    if not isinstance(program_id, str) or not program_id:
        raise ClassificationAnomaly("instruction has no program id")

    if "parsed" in ix:
        parsed = ix["parsed"]
        found: list[str] = []
        if isinstance(parsed, dict):
            _addresses_in(parsed.get("info"), set(account_keys), found)
        return RawInstruction(
            program_id=program_id,
            accounts=tuple(found),
            data=None,
            parsed=parsed,
            program_name=ix.get("program"),
        )

    accounts: list[str] = []
    for acc in ix.get("accounts") or []:
        if isinstance(acc, int):
            if not (0 <= acc < len(account_keys)):
                raise ClassificationAnomaly(f"account index {acc} out of range")
            accounts.append(account_keys[acc])
        else:
            accounts.append(str(acc))
    data = ix.get("data")
    return RawInstruction(
        program_id=program_id,
        accounts=tuple(accounts),
        data=data if isinstance(data, str) else None,
    )


def _token_accounts(meta: dict[str, Any], account_keys: list[str]) -> frozenset[str]:
    out = set()
    for entry in (meta.get("preTokenBalances") or []) + (meta.get("postTokenBalances") or []):
        idx = entry.get("accountIndex") if isinstance(entry, dict) else None
        if isinstance(idx, int) and 0 <= idx < len(account_keys):
            out.add(account_keys[idx])
    return frozenset(out)


def decode_transaction(item: dict[str, Any], index: int) -> RawTransaction:
    """
    Decode one entry of block.transactions.

    index is the entry's position in the block and is kept verbatim.
    Raises ValueError if the entry has no signature or no metadata.
    Individual malformed instructions are kept as program-less placeholders
    so instruction indexes stay aligned with the source.
    """
    if not isinstance(item, dict):
        raise ValueError(f"transaction entry is {type(item).__name__}")
    tx = item.get("transaction") or {}
    meta = item.get("meta")
    if not isinstance(meta, dict):
        raise ValueError("transaction has no metadata")
    signatures = tx.get("signatures") or []
    if not signatures or not isinstance(signatures[0], str):
        raise ValueError("transaction has no signature")

    message = tx.get("message") or {}
    accounts = decode_account_keys(message, meta)
    keys = [a.address for a in accounts]

    instructions = []
    for ix_index, ix in enumerate(message.get("instructions") or []):
        try:
            instructions.append(decode_instruction(ix, keys))
        except ClassificationAnomaly as e:
            logger.warning(
                "classification_anomaly",
                signature=signatures[0],
                instruction_index=ix_index,
                error=str(e),
            )
            instructions.append(RawInstruction(program_id=""))

    return RawTransaction(
        signature=signatures[0],
        index=index,
        success=meta.get("err") is None,
        fee=int(meta.get("fee") or 0),
        instructions=tuple(instructions),
        accounts=tuple(accounts),
        pre_balances=tuple(int(b) for b in meta.get("preBalances") or []),
        post_balances=tuple(int(b) for b in meta.get("postBalances") or []),
        token_accounts=_token_accounts(meta, keys),
        raw=item,
    )


def decode_block(slot: int, payload: dict[str, Any]) -> RawBlock:
    """
    Decode a getBlock result. Raises ValueError/KeyError if block metadata is missing.

    Malformed transactions are skipped with a warning; the remaining ones keep
    their original positions.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"block payload is {type(payload).__name__}")
    blockhash = payload["blockhash"]
    if not isinstance(blockhash, str) or not blockhash:
        raise ValueError("block has no blockhash")

    transactions = []
    for index, item in enumerate(payload.get("transactions") or []):
        try:
            transactions.append(decode_transaction(item, index))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("transaction_decode_skipped", slot=slot, index=index, error=str(e))

    parent = payload.get("parentSlot")
    return RawBlock(
        slot=slot,
        blockhash=blockhash,
        parent_slot=int(parent) if parent is not None else None,
        block_time=payload.get("blockTime"),
        block_height=payload.get("blockHeight"),
        transactions=tuple(transactions),
        raw={k: v for k, v in payload.items() if k != "transactions"},
    )
