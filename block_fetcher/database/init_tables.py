"""
Initialize block_fetcher database tables.

Creates blocks, transactions, instructions, accounts and program_registry,
and seeds the registry with the built-in program list.
Safe to run multiple times.
"""

from __future__ import annotations

from sqlalchemy import select

from block_fetcher.database.connection import Database
from block_fetcher.database.models import Base, ProgramRegistryEntry
from block_fetcher.database.upsert import dialect_insert
from block_fetcher.etl.registry import SEED_PROGRAMS, ProgramRegistry
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)


def seed_program_registry(db: Database) -> int:
    """Insert seed programs that are not present yet. Returns the number of seed rows offered."""
    rows = [
        {
            "program_id": program_id,
            "program_name": name,
            "program_type": category,
            "description": description,
        }
        for program_id, name, category, description in SEED_PROGRAMS
    ]
    stmt = dialect_insert(db.dialect, ProgramRegistryEntry.__table__).on_conflict_do_nothing(
        index_elements=["program_id"]
    )
    with db.session_scope() as session:
        session.execute(stmt, rows)
    return len(rows)


def init_db(db: Database, *, seed: bool = True) -> None:
    """Create all tables (idempotent) and optionally seed the program registry."""
    Base.metadata.create_all(db.engine)
    offered = seed_program_registry(db) if seed else 0
    logger.info("db_initialized", dialect=db.dialect, seed_programs=offered)


def load_program_registry(db: Database) -> ProgramRegistry:
    """Registry from the program_registry table; the built-in seed if the table is empty."""
    with db.session_scope() as session:
        rows = [entry.to_dict() for entry in session.scalars(select(ProgramRegistryEntry))]
    if not rows:
        logger.warning("program_registry_empty", fallback="seed")
        return ProgramRegistry.from_seed()
    registry = ProgramRegistry.from_rows(rows)
    logger.info("program_registry_loaded", programs=len(registry))
    return registry
