"""
Storage layer: SQLAlchemy models, engine/session management, table
initialization and the atomic batch loader.

PostgreSQL (DATABASE_URL=postgresql+psycopg2://...) in production; SQLite for
local runs and tests.
"""

from block_fetcher.database.connection import Database, create_db_engine
from block_fetcher.database.init_tables import init_db, load_program_registry, seed_program_registry
from block_fetcher.database.loader import BatchLoader
from block_fetcher.database.models import (
    Account,
    Base,
    Block,
    Instruction,
    ProgramRegistryEntry,
    Transaction,
)

__all__ = [
    "Account",
    "Base",
    "BatchLoader",
    "Block",
    "Database",
    "Instruction",
    "ProgramRegistryEntry",
    "Transaction",
    "create_db_engine",
    "init_db",
    "load_program_registry",
    "seed_program_registry",
]
