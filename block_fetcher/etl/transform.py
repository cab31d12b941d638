"""
Transform stage: RawBlock -> ClassifiedBlock.

Classifies every instruction and transaction, renders instruction data
for storage and folds the block's account usage into AccountActivity
aggregates. Source positions (transaction index, instruction index) are
copied, never recomputed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

import base58

from block_fetcher.etl.classifier import TransactionClassifier
from block_fetcher.etl.models import (
    AccountActivity,
    ClassifiedBlock,
    ClassifiedInstruction,
    ClassifiedTransaction,
    InstructionCategory,
    RawBlock,
    RawInstruction,
    RawTransaction,
    TransferDetails,
)
from block_fetcher.etl.parsers import decode_system_data
from block_fetcher.etl.registry import SYSTEM_PROGRAM_ID

# Most specific first.
ACCOUNT_TYPES = ("program", "token_account", "wallet", "account")
_TYPE_RANK = {t: i for i, t in enumerate(ACCOUNT_TYPES)}


def more_specific(a: str | None, b: str | None) -> str | None:
    """Pick the more specific of two account types (program > token_account > wallet > account)."""
    if a is None:
        return b
    if b is None:
        return a
    return a if _TYPE_RANK.get(a, len(ACCOUNT_TYPES)) <= _TYPE_RANK.get(b, len(ACCOUNT_TYPES)) else b


def _earliest(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None or b is None:
        return a or b
    return min(a, b)


def _latest(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None or b is None:
        return a or b
    return max(a, b)


def merge_activity(existing: AccountActivity, new: AccountActivity) -> AccountActivity:
    """
    Combine two aggregates for the same address.

    First-seen only moves earlier, last-seen only later, counters add up.
    Order of arguments does not matter.
    """
    return AccountActivity(
        address=existing.address,
        first_seen_slot=min(existing.first_seen_slot, new.first_seen_slot),
        last_seen_slot=max(existing.last_seen_slot, new.last_seen_slot),
        first_seen_at=_earliest(existing.first_seen_at, new.first_seen_at),
        last_seen_at=_latest(existing.last_seen_at, new.last_seen_at),
        transaction_count=existing.transaction_count + new.transaction_count,
        as_signer_count=existing.as_signer_count + new.as_signer_count,
        as_writable_count=existing.as_writable_count + new.as_writable_count,
        account_type=more_specific(existing.account_type, new.account_type),
    )


def merge_all(activities: Iterable[AccountActivity]) -> dict[str, AccountActivity]:
    """Merge aggregates by address, keeping first-seen address order."""
    out: dict[str, AccountActivity] = {}
    for activity in activities:
        current = out.get(activity.address)
        out[activity.address] = activity if current is None else merge_activity(current, activity)
    return out


def data_to_hex(data: str | None) -> str | None:
    """Base58 instruction data as lowercase hex; None if absent or not base58."""
    if data is None:
        return None
    try:
        return base58.b58decode(data).hex()
    except ValueError:
        return None


def block_datetime(block_time: int | None) -> datetime | None:
    if block_time is None:
        return None
    return datetime.fromtimestamp(block_time, tz=timezone.utc)


class BlockTransformer:
    """Turns decoded blocks into the rows the batch loader writes."""

    def __init__(self, classifier: TransactionClassifier) -> None:
        self._classifier = classifier
        self._instructions = classifier.instruction_classifier
        self._registry = self._instructions.registry

    def transform(self, block: RawBlock) -> ClassifiedBlock:
        when = block_datetime(block.block_time)
        transactions = []
        activities: list[AccountActivity] = []
        for tx in block.transactions:
            transactions.append(self._transform_transaction(tx))
            activities.extend(self._account_activity(tx, block.slot, when))
        return ClassifiedBlock(
            slot=block.slot,
            blockhash=block.blockhash,
            parent_slot=block.parent_slot,
            block_time=when,
            block_height=block.block_height,
            transactions=tuple(transactions),
            accounts=tuple(merge_all(activities).values()),
            raw=block.raw,
        )

    def _transform_transaction(self, tx: RawTransaction) -> ClassifiedTransaction:
        categories = [self._instructions.classify(ix) for ix in tx.instructions]
        classification = self._classifier.classify(tx.instructions, categories)
        instructions = tuple(
            self._transform_instruction(
                i, ix, category,
                classification.transfer if i == classification.transfer_index else None,
            )
            for i, (ix, category) in enumerate(zip(tx.instructions, categories))
        )
        return ClassifiedTransaction(
            signature=tx.signature,
            transaction_index=tx.index,
            success=tx.success,
            fee=tx.fee,
            transaction_type=classification.transaction_type,
            label=classification.label,
            signer=tx.signer,
            num_accounts=len(tx.accounts),
            instructions=instructions,
            raw=tx.raw,
            transfer=classification.transfer,
        )

    def _transform_instruction(
        self,
        index: int,
        ix: RawInstruction,
        category: InstructionCategory,
        transfer: TransferDetails | None = None,
    ) -> ClassifiedInstruction:
        decoded = ix.parsed
        if decoded is None and ix.program_id == SYSTEM_PROGRAM_ID:
            decoded = decode_system_data(ix.data)
        if transfer is not None:
            # The transaction's transfer details live on the instruction they came from.
            base = decoded if isinstance(decoded, dict) else {}
            decoded = {**base, "transfer": transfer.to_dict()}
        return ClassifiedInstruction(
            instruction_index=index,
            program_id=ix.program_id,
            program_name=self._registry.name_of(ix.program_id),
            instruction_type=category,
            accounts=ix.accounts,
            data_hex=data_to_hex(ix.data),
            data_decoded=decoded,
        )

    def _account_activity(
        self, tx: RawTransaction, slot: int, when: datetime | None
    ) -> list[AccountActivity]:
        program_ids = {ix.program_id for ix in tx.instructions}
        seen: dict[str, AccountActivity] = {}
        for ref in tx.accounts:
            if not ref.address:
                continue
            if ref.address in program_ids:
                account_type = "program"
            elif ref.address in tx.token_accounts:
                account_type = "token_account"
            elif ref.signer:
                account_type = "wallet"
            else:
                account_type = "account"
            activity = seen.get(ref.address)
            if activity is None:
                seen[ref.address] = AccountActivity(
                    address=ref.address,
                    first_seen_slot=slot,
                    last_seen_slot=slot,
                    first_seen_at=when,
                    last_seen_at=when,
                    transaction_count=1,
                    as_signer_count=int(ref.signer),
                    as_writable_count=int(ref.writable),
                    account_type=account_type,
                )
            else:
                # Same key listed twice in one transaction: still one transaction.
                activity.as_signer_count = max(activity.as_signer_count, int(ref.signer))
                activity.as_writable_count = max(activity.as_writable_count, int(ref.writable))
                activity.account_type = more_specific(activity.account_type, account_type)
        return list(seen.values())
