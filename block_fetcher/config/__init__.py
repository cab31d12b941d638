"""
Configuration management for block-data-fetcher.

Loads settings from environment variables and an optional .env file.
Exposes a single source of truth for endpoints and pipeline defaults.
"""

from block_fetcher.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
