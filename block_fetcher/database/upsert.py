"""Dialect-specific INSERT ... ON CONFLICT for PostgreSQL and SQLite."""

from __future__ import annotations

from typing import Any, Iterable

from sqlalchemy.dialects import postgresql, sqlite

from block_fetcher.core.exceptions import ConfigurationError


def dialect_insert(dialect: str, table: Any) -> Any:
    """Return the insert() construct that supports on_conflict_* for this dialect."""
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise ConfigurationError(f"unsupported database dialect: {dialect}")


def upsert_statement(dialect: str, table: Any, keys: list[str], *, keep: Iterable[str] = ()) -> Any:
    """
    INSERT for executemany; on conflict with keys, overwrite every other
    non-primary-key column except those named in keep.
    """
    keep = set(keep)
    stmt = dialect_insert(dialect, table)
    update = {
        col.name: stmt.excluded[col.name]
        for col in table.columns
        if col.name not in keys and col.name not in keep and not col.primary_key
    }
    return stmt.on_conflict_do_update(index_elements=keys, set_=update)
