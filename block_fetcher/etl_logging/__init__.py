"""
Structured logging for block-data-fetcher.

JSON or console logs with timestamp, level, event_type and slot context.
Use get_logger() in every pipeline module.
"""

from block_fetcher.etl_logging.logger import LOG_FORMATS, bind_slot, configure_structlog, get_logger

__all__ = ["LOG_FORMATS", "bind_slot", "configure_structlog", "get_logger"]
