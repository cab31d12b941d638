"""
Pytest fixtures for block_fetcher tests.

Temporary SQLite database, the seed program registry, a scripted fake RPC
endpoint and builders for getBlock (jsonParsed) payloads. No network access.
"""

from __future__ import annotations

from typing import Any

import pytest

from block_fetcher.core.exceptions import RpcSlotUnavailableError
from block_fetcher.database import Database, init_db
from block_fetcher.etl.classifier import InstructionClassifier, TransactionClassifier
from block_fetcher.etl.registry import (
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    ProgramRegistry,
)
from block_fetcher.etl.transform import BlockTransformer

# Valid Solana pubkeys (base58, 32 bytes)
WALLET_A = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
WALLET_B = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
JUPITER_ID = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
MAGIC_EDEN_ID = "M2mx93ekt1fmXSVkTrUL9xVFHkmME8HTUi5Cyc5aF7K"
MEMO_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"
BLOCK_TIME = 1_700_000_000


# -----------------------------------------------------------------------------
# Payload builders (jsonParsed shape)
# -----------------------------------------------------------------------------
def system_transfer_ix(source: str = WALLET_A, destination: str = WALLET_B, lamports: int = 1_000) -> dict[str, Any]:
    return {
        "program": "system",
        "programId": SYSTEM_PROGRAM_ID,
        "parsed": {
            "type": "transfer",
            "info": {"source": source, "destination": destination, "lamports": lamports},
        },
        "stackHeight": None,
    }


def token_transfer_ix(source: str = WALLET_A, destination: str = WALLET_B, amount: str = "2500") -> dict[str, Any]:
    return {
        "program": "spl-token",
        "programId": TOKEN_PROGRAM_ID,
        "parsed": {
            "type": "transfer",
            "info": {"source": source, "destination": destination, "authority": source, "amount": amount},
        },
        "stackHeight": None,
    }


def program_ix(program_id: str, accounts: list[str] | None = None, data: str = "3Bxs4h24hBtQy9rw") -> dict[str, Any]:
    return {"programId": program_id, "accounts": accounts or [WALLET_A], "data": data, "stackHeight": None}


def make_tx(
    signature: str,
    instructions: list[dict[str, Any]],
    *,
    accounts: list[str] | None = None,
    err: Any = None,
    fee: int = 5_000,
) -> dict[str, Any]:
    keys = accounts or [WALLET_A, WALLET_B]
    program_ids = [ix["programId"] for ix in instructions if ix["programId"] not in keys]
    account_keys = [
        {"pubkey": k, "signer": i == 0, "writable": i < 2, "source": "transaction"}
        for i, k in enumerate(keys)
    ] + [
        {"pubkey": p, "signer": False, "writable": False, "source": "transaction"}
        for p in dict.fromkeys(program_ids)
    ]
    return {
        "transaction": {
            "signatures": [signature],
            "message": {"accountKeys": account_keys, "instructions": instructions, "recentBlockhash": "hash"},
        },
        "meta": {
            "err": err,
            "fee": fee,
            "preBalances": [10_000] * len(account_keys),
            "postBalances": [9_000] * len(account_keys),
            "preTokenBalances": [],
            "postTokenBalances": [],
        },
        "version": 0,
    }


def make_block(slot: int, transactions: list[dict[str, Any]] | None = None, *, parent_slot: int | None = None) -> dict[str, Any]:
    return {
        "blockhash": f"blockhash-{slot}",
        "previousBlockhash": f"blockhash-{slot - 1}",
        "parentSlot": slot - 1 if parent_slot is None else parent_slot,
        "blockTime": BLOCK_TIME + slot,
        "blockHeight": slot - 10,
        "rewards": [],
        "transactions": transactions if transactions is not None else [
            make_tx(f"sig-{slot}-0", [system_transfer_ix()]),
        ],
    }


class FakeRpc:
    """
    Scripted get_block/get_slot.

    script maps slot -> list of responses consumed in order; a response is a
    payload dict or an exception instance to raise. The last response repeats.
    Slots without a script get a default one-transaction block.
    """

    def __init__(self, tip: int = 1_000, script: dict[int, list[Any]] | None = None) -> None:
        self.tip = tip
        self.script = script or {}
        self.calls: list[int] = []
        self.slot_calls = 0

    async def get_block(self, slot: int) -> dict[str, Any]:
        self.calls.append(slot)
        responses = self.script.get(slot)
        if not responses:
            return make_block(slot)
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, BaseException):
            raise response
        if response is None:
            raise RpcSlotUnavailableError(f"getBlock: no block for slot {slot}")
        return response

    async def get_slot(self) -> int:
        self.slot_calls += 1
        if isinstance(self.tip, BaseException):
            raise self.tip
        return self.tip


class RecordingSleep:
    """Async sleep stand-in that records requested delays and returns at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite database with all tables and the seeded program registry."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    database = Database(f"sqlite:///{tmp_path / 'block_fetcher_test.db'}")
    init_db(database)
    yield database
    database.dispose()


@pytest.fixture
def registry():
    return ProgramRegistry.from_seed()


@pytest.fixture
def instruction_classifier(registry):
    return InstructionClassifier(registry)


@pytest.fixture
def transaction_classifier(instruction_classifier):
    return TransactionClassifier(instruction_classifier)


@pytest.fixture
def transformer(transaction_classifier):
    return BlockTransformer(transaction_classifier)


@pytest.fixture
def recording_sleep():
    return RecordingSleep()
