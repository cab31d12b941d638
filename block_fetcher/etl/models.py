"""
Data models flowing through the ETL stages.

RawBlock and friends mirror the getBlock response after decoding; the
Classified* types are what the batch loader writes. Ordering fields
(transaction_index, instruction_index) are copied from source positions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class InstructionCategory(str, Enum):
    """Instruction-level (and transaction-level) classification taxonomy."""

    SOL_TRANSFER = "SolTransfer"
    TOKEN_TRANSFER = "TokenTransfer"
    DEX_SWAP = "DexSwap"
    NFT_OPERATION = "NftOperation"
    PROGRAM_INTERACTION = "ProgramInteraction"
    UNKNOWN = "Unknown"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    InstructionCategory.SOL_TRANSFER: "SOL Transfer",
    InstructionCategory.TOKEN_TRANSFER: "Token Transfer",
    InstructionCategory.DEX_SWAP: "DEX Swap",
    InstructionCategory.NFT_OPERATION: "NFT Operation",
    InstructionCategory.PROGRAM_INTERACTION: "Program Interaction",
    InstructionCategory.UNKNOWN: "Unknown",
}

# Transaction types share the instruction taxonomy.
TransactionType = InstructionCategory


@dataclass(frozen=True)
class AccountRef:
    """One entry of a transaction's account list."""

    address: str
    signer: bool = False
    writable: bool = False


@dataclass(frozen=True)
class RawInstruction:
    """
    Top-level instruction as returned by the RPC.

    program_name is the RPC's own name for the program when it decoded the
    instruction (jsonParsed "program", e.g. "system", "spl-token").
    """

    program_id: str
    accounts: tuple[str, ...] = ()
    data: str | None = None
    """Base58 instruction data; None when the RPC returned only a parsed form."""
    parsed: Any = None
    program_name: str | None = None


@dataclass(frozen=True)
class RawTransaction:
    signature: str
    index: int
    """Zero-based position inside the block."""
    success: bool
    fee: int
    instructions: tuple[RawInstruction, ...]
    accounts: tuple[AccountRef, ...]
    pre_balances: tuple[int, ...] = ()
    post_balances: tuple[int, ...] = ()
    token_accounts: frozenset[str] = frozenset()
    """Addresses that appear in pre/post token balance metadata."""
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def signer(self) -> str | None:
        """Fee payer: the first account key."""
        return self.accounts[0].address if self.accounts else None


@dataclass(frozen=True)
class RawBlock:
    slot: int
    blockhash: str
    parent_slot: int | None
    block_time: int | None
    """Unix timestamp (seconds); None if the node did not record one."""
    block_height: int | None
    transactions: tuple[RawTransaction, ...]
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class TransferDetails:
    """First native or SPL transfer found in a transaction."""

    amount: int
    source: str
    destination: str
    mint: str | None = None
    """Token mint; None for native SOL transfers."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "source": self.source,
            "destination": self.destination,
            "mint": self.mint,
        }


@dataclass(frozen=True)
class ClassifiedInstruction:
    instruction_index: int
    program_id: str
    program_name: str | None
    instruction_type: InstructionCategory
    accounts: tuple[str, ...]
    data_hex: str | None
    data_decoded: Any


@dataclass(frozen=True)
class TransactionClassification:
    transaction_type: TransactionType
    label: str
    program_names: tuple[str, ...] = ()
    transfer: TransferDetails | None = None
    transfer_index: int | None = None
    """Position of the instruction the transfer was read from."""


@dataclass(frozen=True)
class ClassifiedTransaction:
    signature: str
    transaction_index: int
    success: bool
    fee: int
    transaction_type: TransactionType
    label: str
    signer: str | None
    num_accounts: int
    instructions: tuple[ClassifiedInstruction, ...]
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    transfer: TransferDetails | None = None


@dataclass
class AccountActivity:
    """Rolling per-address aggregate; merged into the accounts table."""

    address: str
    first_seen_slot: int
    last_seen_slot: int
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    transaction_count: int = 0
    as_signer_count: int = 0
    as_writable_count: int = 0
    account_type: str | None = None


@dataclass(frozen=True)
class ClassifiedBlock:
    slot: int
    blockhash: str
    parent_slot: int | None
    block_time: datetime | None
    block_height: int | None
    transactions: tuple[ClassifiedTransaction, ...]
    accounts: tuple[AccountActivity, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class RowCounts:
    """Rows written by one batch commit."""

    blocks: int = 0
    transactions: int = 0
    instructions: int = 0
    accounts: int = 0
