"""
SQLAlchemy models for the ETL store.

blocks <- transactions <- instructions, plus the rolling accounts aggregate
and the program_registry reference table. Column types degrade from
PostgreSQL (JSONB, TEXT[], BIGSERIAL) to portable JSON/INTEGER on SQLite.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()

JsonType = JSON().with_variant(JSONB(), "postgresql")
AddressList = JSON().with_variant(ARRAY(Text), "postgresql")
# SQLite only autoincrements INTEGER PRIMARY KEY
RowId = BigInteger().with_variant(Integer(), "sqlite")


class Block(Base):
    __tablename__ = "blocks"

    slot = Column(BigInteger, primary_key=True, autoincrement=False)
    blockhash = Column(String(88), unique=True, nullable=False)
    parent_slot = Column(
        BigInteger, ForeignKey("blocks.slot", ondelete="CASCADE"), nullable=True, index=True
    )
    block_time = Column(DateTime(timezone=True), nullable=True, index=True)
    block_height = Column(BigInteger, nullable=True)
    raw_data = Column(JsonType, nullable=True)
    """Block payload without the transaction list (header fields, rewards)."""
    processed_at = Column(DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot": self.slot,
            "blockhash": self.blockhash,
            "parent_slot": self.parent_slot,
            "block_time": self.block_time,
            "block_height": self.block_height,
            "processed_at": self.processed_at,
        }


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("block_slot", "transaction_index", name="uq_transactions_block_index"),
    )

    id = Column(RowId, primary_key=True, autoincrement=True)
    signature = Column(String(88), unique=True, nullable=False)
    block_slot = Column(
        BigInteger, ForeignKey("blocks.slot", ondelete="CASCADE"), nullable=False, index=True
    )
    transaction_index = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False)
    fee = Column(BigInteger, nullable=False, default=0)
    transaction_type = Column(String(32), nullable=False, index=True)
    transaction_label = Column(String(255), nullable=True)
    signer = Column(String(44), nullable=True, index=True)
    num_accounts = Column(Integer, nullable=False, default=0)
    raw_data = Column(JsonType, nullable=True)


class Instruction(Base):
    __tablename__ = "instructions"
    __table_args__ = (
        UniqueConstraint(
            "transaction_signature", "instruction_index", name="uq_instructions_tx_index"
        ),
    )

    id = Column(RowId, primary_key=True, autoincrement=True)
    transaction_signature = Column(
        String(88),
        ForeignKey("transactions.signature", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    instruction_index = Column(Integer, nullable=False)
    program_id = Column(String(44), nullable=False, index=True)
    program_name = Column(String(128), nullable=True)
    instruction_type = Column(String(32), nullable=False, index=True)
    accounts = Column(AddressList, nullable=True)
    num_accounts = Column(Integer, nullable=False, default=0)
    data_hex = Column(Text, nullable=True)
    data_decoded = Column(JsonType, nullable=True)


class Account(Base):
    """Rolling per-address aggregate; merged in place on every batch."""

    __tablename__ = "accounts"

    address = Column(String(44), primary_key=True)
    first_seen_slot = Column(BigInteger, ForeignKey("blocks.slot", ondelete="SET NULL"), nullable=True)
    last_seen_slot = Column(
        BigInteger, ForeignKey("blocks.slot", ondelete="SET NULL"), nullable=True, index=True
    )
    first_seen_at = Column(DateTime(timezone=True), nullable=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    transaction_count = Column(BigInteger, nullable=False, default=0)
    as_signer_count = Column(BigInteger, nullable=False, default=0)
    as_writable_count = Column(BigInteger, nullable=False, default=0)
    account_type = Column(String(32), nullable=True)


class ProgramRegistryEntry(Base):
    __tablename__ = "program_registry"

    program_id = Column(String(44), primary_key=True)
    program_name = Column(String(128), nullable=False)
    program_type = Column(String(32), nullable=False)
    description = Column(Text, nullable=True)
    website = Column(String(256), nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "program_id": self.program_id,
            "program_name": self.program_name,
            "program_type": self.program_type,
            "description": self.description,
            "website": self.website,
        }
