"""
Tests for BatchLoader against a temporary SQLite database.

Idempotent re-processing, all-or-nothing batches, parent slot handling,
ordering preservation and the rolling account aggregate.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timezone

import pytest
from sqlalchemy import delete, func, select

from block_fetcher.core.exceptions import StorageCommitError
from block_fetcher.database import Account, BatchLoader, Block, Instruction, ProgramRegistryEntry, Transaction
from block_fetcher.database.init_tables import init_db, load_program_registry
from block_fetcher.etl.decode import decode_block
from block_fetcher.etl.registry import SYSTEM_PROGRAM_ID
from conftest import (
    WALLET_A,
    WALLET_B,
    make_block,
    make_tx,
    program_ix,
    system_transfer_ix,
    token_transfer_ix,
)


def _classified(transformer, slot, transactions=None, parent_slot=None):
    return transformer.transform(decode_block(slot, make_block(slot, transactions, parent_slot=parent_slot)))


def _count(db, model) -> int:
    with db.session_scope() as session:
        return session.scalar(select(func.count()).select_from(model))


def _snapshot(db):
    """Block, transaction and instruction rows as plain tuples."""
    with db.session_scope() as session:
        blocks = [
            (b.slot, b.blockhash, b.parent_slot, b.block_time, b.block_height, b.raw_data, b.processed_at)
            for b in session.scalars(select(Block).order_by(Block.slot))
        ]
        txs = [
            (t.signature, t.block_slot, t.transaction_index, t.success, t.fee, t.transaction_type,
             t.transaction_label, t.signer, t.num_accounts, t.raw_data)
            for t in session.scalars(select(Transaction).order_by(Transaction.signature))
        ]
        ixs = [
            (i.transaction_signature, i.instruction_index, i.program_id, i.program_name,
             i.instruction_type, i.accounts, i.num_accounts, i.data_hex, i.data_decoded)
            for i in session.scalars(
                select(Instruction).order_by(Instruction.transaction_signature, Instruction.instruction_index)
            )
        ]
    return blocks, txs, ixs


def test_init_db_seeds_registry_idempotently(db):
    """init_db can run repeatedly; the registry table is seeded once."""
    first = _count(db, ProgramRegistryEntry)
    init_db(db)
    assert _count(db, ProgramRegistryEntry) == first
    assert first >= 19
    registry = load_program_registry(db)
    assert registry.name_of(SYSTEM_PROGRAM_ID) == "System Program"


def test_commit_writes_all_rows(db, transformer):
    batch = [
        _classified(transformer, 100, [make_tx("a", [system_transfer_ix(), program_ix(SYSTEM_PROGRAM_ID)])]),
        _classified(transformer, 101, [make_tx("b", [token_transfer_ix()]), make_tx("c", [system_transfer_ix()])]),
    ]
    counts = BatchLoader(db).commit(batch)
    assert (counts.blocks, counts.transactions, counts.instructions) == (2, 3, 4)
    assert _count(db, Block) == 2
    assert _count(db, Transaction) == 3
    assert _count(db, Instruction) == 4
    with db.session_scope() as session:
        tx = session.scalar(select(Transaction).where(Transaction.signature == "b"))
        assert tx.block_slot == 101
        assert tx.transaction_type == "TokenTransfer"
        assert tx.transaction_label == "Token Transfer (Token Program)"
        assert tx.signer == WALLET_A
        ix = session.scalar(select(Instruction).where(Instruction.transaction_signature == "b"))
        assert ix.accounts == [WALLET_A, WALLET_B]
        assert ix.num_accounts == 2


def test_reprocessing_is_idempotent(db, transformer):
    """Committing the same slots twice leaves identical block/transaction/instruction rows."""
    loader = BatchLoader(db)
    batch = [_classified(transformer, s) for s in (100, 101, 102)]
    loader.commit(batch)
    before = _snapshot(db)
    loader.commit([_classified(transformer, s) for s in (100, 101, 102)])
    assert _snapshot(db) == before


def test_failed_batch_leaves_nothing(db, transformer):
    """A failure after some rows were written rolls the whole batch back."""

    class FailingLoader(BatchLoader):
        def _write_accounts(self, session, blocks):
            raise RuntimeError("disk full")

    batch = [_classified(transformer, s) for s in (100, 101)]
    with pytest.raises(StorageCommitError) as info:
        FailingLoader(db).commit(batch)
    assert info.value.slots == [100, 101]
    assert isinstance(info.value.cause, RuntimeError)
    assert _count(db, Block) == 0
    assert _count(db, Transaction) == 0
    assert _count(db, Instruction) == 0
    assert _count(db, Account) == 0


def test_constraint_violation_rolls_back(db, transformer):
    """A duplicate blockhash on the second block discards the first one too."""
    loader = BatchLoader(db)
    loader.commit([_classified(transformer, 50)])
    clash = _classified(transformer, 61)
    clash = replace(clash, blockhash="blockhash-50")
    with pytest.raises(StorageCommitError):
        loader.commit([_classified(transformer, 60), clash])
    with db.session_scope() as session:
        assert list(session.scalars(select(Block.slot))) == [50]


def test_parent_slot_null_when_unknown(db, transformer):
    """Parent kept when stored or earlier in the batch; NULL otherwise."""
    loader = BatchLoader(db)
    loader.commit([_classified(transformer, 500), _classified(transformer, 501)])
    loader.commit([_classified(transformer, 503, parent_slot=501)])
    with db.session_scope() as session:
        parents = dict(session.execute(select(Block.slot, Block.parent_slot)).all())
    assert parents == {500: None, 501: 500, 503: 501}


def test_deleting_parent_cascades_to_children(db, transformer):
    """Removing a block removes the blocks built on it, with their transactions and instructions."""
    loader = BatchLoader(db)
    loader.commit([_classified(transformer, 500), _classified(transformer, 501)])
    loader.commit([_classified(transformer, 600)])
    with db.session_scope() as session:
        session.execute(delete(Block).where(Block.slot == 500))

    with db.session_scope() as session:
        assert list(session.scalars(select(Block.slot))) == [600]
        assert list(session.scalars(select(Transaction.block_slot))) == [600]
        wallet = session.get(Account, WALLET_A)
        assert wallet.first_seen_slot is None
        assert wallet.last_seen_slot == 600
        assert wallet.transaction_count == 3
    assert _count(db, Instruction) == 1


def test_transfer_details_stored_with_instruction(db, transformer):
    batch = [_classified(transformer, 900, [make_tx("t", [program_ix(SYSTEM_PROGRAM_ID), system_transfer_ix(lamports=42)])])]
    BatchLoader(db).commit(batch)
    with db.session_scope() as session:
        rows = dict(
            session.execute(
                select(Instruction.instruction_index, Instruction.data_decoded)
                .where(Instruction.transaction_signature == "t")
            ).all()
        )
    assert rows[1]["transfer"] == {"amount": 42, "source": WALLET_A, "destination": WALLET_B, "mint": None}
    assert rows[1]["type"] == "transfer"
    assert rows[0] is None or "transfer" not in rows[0]


def test_ordering_fields_preserved(db, transformer):
    txs = [make_tx(f"sig-{i}", [system_transfer_ix(), program_ix(SYSTEM_PROGRAM_ID)]) for i in range(4)]
    BatchLoader(db).commit([_classified(transformer, 700, txs)])
    with db.session_scope() as session:
        rows = session.execute(
            select(Transaction.signature, Transaction.transaction_index).order_by(Transaction.transaction_index)
        ).all()
        ix_rows = session.execute(
            select(Instruction.instruction_index)
            .where(Instruction.transaction_signature == "sig-2")
            .order_by(Instruction.instruction_index)
        ).all()
    assert [tuple(r) for r in rows] == [(f"sig-{i}", i) for i in range(4)]
    assert [r[0] for r in ix_rows] == [0, 1]


def test_accounts_merge_across_batches(db, transformer):
    """first_seen never moves later, last_seen never earlier, counts accumulate."""
    loader = BatchLoader(db)
    loader.commit([_classified(transformer, 800)])
    loader.commit([_classified(transformer, 805)])
    loader.commit([_classified(transformer, 802, parent_slot=800)])
    with db.session_scope() as session:
        a = session.get(Account, WALLET_A)
        assert a.first_seen_slot == 800
        assert a.last_seen_slot == 805
        assert a.transaction_count == 3
        assert a.as_signer_count == 3
        assert a.account_type == "wallet"
        first_seen = a.first_seen_at.replace(tzinfo=a.first_seen_at.tzinfo or timezone.utc)
        last_seen = a.last_seen_at.replace(tzinfo=a.last_seen_at.tzinfo or timezone.utc)
        assert first_seen < last_seen
        system = session.get(Account, SYSTEM_PROGRAM_ID)
        assert system.account_type == "program"


def test_empty_batch(db):
    counts = BatchLoader(db).commit([])
    assert counts.blocks == 0
    assert _count(db, Block) == 0
