"""
Database connection and session management.

Engine factory for DATABASE_URL (PostgreSQL via psycopg2, or SQLite), a
cached session factory, and session_scope() which commits on success and
rolls back on error. SQLite connections get foreign keys switched on so
cascades and references behave as on PostgreSQL.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from block_fetcher.config.env import mask_url
from block_fetcher.core.exceptions import ConfigurationError
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)

SUPPORTED_DIALECTS = ("postgresql", "sqlite")


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for url. SQLite gets check_same_thread=False and FK enforcement."""
    if not url:
        raise ConfigurationError("database url must be non-empty")
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    try:
        engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True, echo=echo)
    except Exception as e:
        raise ConfigurationError(f"invalid database url {mask_url(url)}: {e}") from e
    if engine.dialect.name not in SUPPORTED_DIALECTS:
        raise ConfigurationError(f"unsupported database dialect: {engine.dialect.name}")
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    logger.info("db_engine_created", url=mask_url(url), dialect=engine.dialect.name)
    return engine


class Database:
    """Engine plus session factory for one database URL."""

    def __init__(self, url: str | None = None, *, engine: Engine | None = None) -> None:
        if engine is None:
            engine = create_db_engine(url or "")
        self._engine = engine
        self._sessions = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Context manager for a single session. Commits on success, rolls back on error."""
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> None:
        """Run SELECT 1; raise ConfigurationError if the database is unreachable."""
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("db_connection_failed", error=str(e))
            raise ConfigurationError(f"database unreachable: {e}") from e

    def dispose(self) -> None:
        self._engine.dispose()
