"""
Structured logging for the ETL pipeline.

Every record carries timestamp, level, logger name and a snake_case
event_type plus keyword fields (slot, slots, attempt, error, ...).
LOG_FORMAT=json (default) renders one JSON object per line on stderr;
LOG_FORMAT=console renders aligned key=value lines for local runs.

Loggers handed out by get_logger() are lazy: they resolve the current
configuration on every call, so a module-level logger follows a later
configure_structlog() (the CLI applies --log-format after import).

No block_fetcher imports here; everything else imports this module.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()

LOG_FORMATS = ("json", "console")


def _add_timestamp(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return event_dict


def _event_type(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """JSON records use event_type instead of structlog's 'event' key."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def _render_chain(fmt: str, out: TextIO) -> list[Any]:
    if fmt == "console":
        return [structlog.dev.ConsoleRenderer(colors=out.isatty())]
    return [_event_type, structlog.processors.JSONRenderer()]


def configure_structlog(
    log_format: str | None = None,
    level: int | None = None,
    stream: TextIO | None = None,
) -> None:
    """
    (Re)configure output format, minimum level and output stream (stderr).

    Safe to call more than once; loggers already created by get_logger()
    pick up the new settings on their next call.
    """
    fmt = (log_format or LOG_FORMAT).strip().lower()
    if fmt not in LOG_FORMATS:
        fmt = "json"
    out = stream or sys.stderr
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_timestamp,
            *_render_chain(fmt, out),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            LOG_LEVEL_VALUE if level is None else level
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        # Cached loggers would keep the processors of the first configuration.
        cache_logger_on_first_use=False,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> Any:
    """
    Lazy logger tagged with the module name.

        logger = get_logger(__name__)
        logger.info("batch_committed", slots=[100, 101], transactions=2431)

    JSON output: {"logger": "block_fetcher.pipeline.coordinator", "slots": [100, 101],
    "transactions": 2431, "level": "info", "timestamp": "...", "event_type": "batch_committed"}
    """
    return structlog.get_logger(name, logger=name)


def bind_slot(slot: int) -> Any:
    """Logger for one block; every record carries the slot."""
    return structlog.get_logger("block_fetcher", logger="block_fetcher", slot=slot)
