"""
Batch loader: one database transaction per batch of classified blocks.

Blocks, transactions and instructions are upserted on their natural keys
(slot, signature, (signature, instruction_index)), so re-processing a slot
rewrites identical rows. Accounts are read back inside the same
transaction, merged with the batch's activity and written as a whole.
Any failure rolls back every row of the batch and surfaces as
StorageCommitError.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from block_fetcher.core.exceptions import StorageCommitError
from block_fetcher.database.connection import Database
from block_fetcher.database.models import Account, Block, Instruction, Transaction
from block_fetcher.database.upsert import upsert_statement
from block_fetcher.etl.models import AccountActivity, ClassifiedBlock, RowCounts
from block_fetcher.etl.transform import merge_activity, merge_all
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)

# Bound-parameter budget for IN (...) lookups (SQLite default limit is 32766).
LOOKUP_CHUNK = 500


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; stored values are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _chunks(items: Sequence, size: int) -> Iterable[Sequence]:
    for i in range(0, len(items), size):
        yield items[i : i + size]


class BatchLoader:
    def __init__(self, db: Database) -> None:
        self._db = db

    def commit(self, batch: Sequence[ClassifiedBlock]) -> RowCounts:
        """
        Write the batch atomically.

        Returns:
            RowCounts of rows written.

        Raises:
            StorageCommitError: nothing from this batch was persisted.
        """
        blocks = sorted(batch, key=lambda b: b.slot)
        slots = [b.slot for b in blocks]
        if not blocks:
            return RowCounts()
        try:
            with self._db.session_scope() as session:
                counts = RowCounts(
                    blocks=self._write_blocks(session, blocks),
                    transactions=self._write_transactions(session, blocks),
                    instructions=self._write_instructions(session, blocks),
                    accounts=self._write_accounts(session, blocks),
                )
        except Exception as e:
            logger.error("batch_commit_failed", slots=slots, error=str(e))
            raise StorageCommitError(slots, e) from e
        logger.info(
            "batch_committed",
            slots=slots,
            blocks=counts.blocks,
            transactions=counts.transactions,
            instructions=counts.instructions,
            accounts=counts.accounts,
        )
        return counts

    def _known_parents(self, session: Session, blocks: Sequence[ClassifiedBlock]) -> set[int]:
        in_batch = {b.slot for b in blocks}
        wanted = sorted({b.parent_slot for b in blocks if b.parent_slot is not None} - in_batch)
        known = set(in_batch)
        for chunk in _chunks(wanted, LOOKUP_CHUNK):
            known.update(session.scalars(select(Block.slot).where(Block.slot.in_(chunk))))
        return known

    def _write_blocks(self, session: Session, blocks: Sequence[ClassifiedBlock]) -> int:
        known = self._known_parents(session, blocks)
        now = datetime.now(timezone.utc)
        rows = []
        for b in blocks:
            parent = b.parent_slot if b.parent_slot in known else None
            if b.parent_slot is not None and parent is None:
                logger.debug("parent_slot_not_stored", slot=b.slot, parent_slot=b.parent_slot)
            rows.append(
                {
                    "slot": b.slot,
                    "blockhash": b.blockhash,
                    "parent_slot": parent,
                    "block_time": b.block_time,
                    "block_height": b.block_height,
                    "raw_data": b.raw,
                    "processed_at": now,
                }
            )
        stmt = upsert_statement(self._db.dialect, Block.__table__, ["slot"], keep=("processed_at",))
        session.execute(stmt, rows)
        return len(rows)

    def _write_transactions(self, session: Session, blocks: Sequence[ClassifiedBlock]) -> int:
        rows = [
            {
                "signature": tx.signature,
                "block_slot": b.slot,
                "transaction_index": tx.transaction_index,
                "success": tx.success,
                "fee": tx.fee,
                "transaction_type": tx.transaction_type.value,
                "transaction_label": tx.label,
                "signer": tx.signer,
                "num_accounts": tx.num_accounts,
                "raw_data": tx.raw,
            }
            for b in blocks
            for tx in b.transactions
        ]
        if rows:
            stmt = upsert_statement(self._db.dialect, Transaction.__table__, ["signature"])
            session.execute(stmt, rows)
        return len(rows)

    def _write_instructions(self, session: Session, blocks: Sequence[ClassifiedBlock]) -> int:
        rows = [
            {
                "transaction_signature": tx.signature,
                "instruction_index": ix.instruction_index,
                "program_id": ix.program_id,
                "program_name": ix.program_name,
                "instruction_type": ix.instruction_type.value,
                "accounts": list(ix.accounts),
                "num_accounts": len(ix.accounts),
                "data_hex": ix.data_hex,
                "data_decoded": ix.data_decoded,
            }
            for b in blocks
            for tx in b.transactions
            for ix in tx.instructions
        ]
        if rows:
            stmt = upsert_statement(
                self._db.dialect,
                Instruction.__table__,
                ["transaction_signature", "instruction_index"],
            )
            session.execute(stmt, rows)
        return len(rows)

    def _existing_accounts(self, session: Session, addresses: list[str]) -> dict[str, AccountActivity]:
        out: dict[str, AccountActivity] = {}
        for chunk in _chunks(addresses, LOOKUP_CHUNK):
            for row in session.scalars(select(Account).where(Account.address.in_(chunk))):
                out[row.address] = AccountActivity(
                    address=row.address,
                    first_seen_slot=row.first_seen_slot,
                    last_seen_slot=row.last_seen_slot,
                    first_seen_at=_as_utc(row.first_seen_at),
                    last_seen_at=_as_utc(row.last_seen_at),
                    transaction_count=row.transaction_count or 0,
                    as_signer_count=row.as_signer_count or 0,
                    as_writable_count=row.as_writable_count or 0,
                    account_type=row.account_type,
                )
        return out

    def _write_accounts(self, session: Session, blocks: Sequence[ClassifiedBlock]) -> int:
        activity = merge_all(a for b in blocks for a in b.accounts)
        if not activity:
            return 0
        existing = self._existing_accounts(session, list(activity))
        rows = []
        for address, new in activity.items():
            old = existing.get(address)
            merged = new if old is None else merge_activity(old, new)
            rows.append(
                {
                    "address": address,
                    "first_seen_slot": merged.first_seen_slot,
                    "last_seen_slot": merged.last_seen_slot,
                    "first_seen_at": merged.first_seen_at,
                    "last_seen_at": merged.last_seen_at,
                    "transaction_count": merged.transaction_count,
                    "as_signer_count": merged.as_signer_count,
                    "as_writable_count": merged.as_writable_count,
                    "account_type": merged.account_type,
                }
            )
        stmt = upsert_statement(self._db.dialect, Account.__table__, ["address"])
        session.execute(stmt, rows)
        return len(rows)
