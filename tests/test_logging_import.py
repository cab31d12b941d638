"""
Test that etl_logging can be imported without circular import and logger works.
"""

from __future__ import annotations

import io
import json

import pytest


@pytest.fixture
def log_stream():
    """Route log output to a StringIO; json to stderr again afterwards."""
    from block_fetcher.etl_logging import configure_structlog

    stream = io.StringIO()
    yield stream
    configure_structlog("json")


def test_logging_import():
    """Import get_logger from etl_logging and use the logger."""
    from block_fetcher.etl_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", key="value")


def test_json_record_fields(log_stream):
    from block_fetcher.etl_logging import configure_structlog, get_logger

    configure_structlog("json", stream=log_stream)
    get_logger("test").info("batch_committed", slots=[1, 2])
    record = json.loads(log_stream.getvalue().strip())
    assert record["event_type"] == "batch_committed"
    assert record["logger"] == "test"
    assert record["level"] == "info"
    assert record["slots"] == [1, 2]
    assert "timestamp" in record


def test_bind_slot_logger(log_stream):
    """bind_slot returns a logger that accepts further keyword context."""
    from block_fetcher.etl_logging import bind_slot, configure_structlog

    configure_structlog("json", stream=log_stream)
    bind_slot(123).info("slot_message", attempt=1)
    record = json.loads(log_stream.getvalue().strip())
    assert (record["slot"], record["attempt"]) == (123, 1)


def test_module_logger_follows_reconfiguration(log_stream):
    """A logger created at import time (and already used) renders with the latest format."""
    from block_fetcher.database import loader
    from block_fetcher.etl_logging import configure_structlog

    loader.logger.info("before_reconfigure")
    configure_structlog("console", stream=log_stream)
    loader.logger.info("console_event", x=1)

    output = log_stream.getvalue()
    assert "console_event" in output
    assert "x=1" in output
    assert not output.lstrip().startswith("{")
    assert "event_type" not in output


def test_level_filter(log_stream):
    import logging

    from block_fetcher.etl_logging import configure_structlog, get_logger

    configure_structlog("json", level=logging.WARNING, stream=log_stream)
    get_logger("test").info("hidden")
    get_logger("test").warning("shown")
    assert "hidden" not in log_stream.getvalue()
    assert "shown" in log_stream.getvalue()
