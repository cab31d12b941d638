"""
Application settings.

Defaults for every tunable of a run, read once from the environment
(after .env is loaded). The CLI overrides individual values and folds the
result into a PipelineConfig.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from block_fetcher.config.env import get_database_url, get_rpc_url, load_env
from block_fetcher.core.exceptions import ConfigurationError

DEFAULT_BATCH_SIZE = 10
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SEC = 2.0
DEFAULT_RETRY_MAX_DELAY_SEC = 60.0
DEFAULT_POLL_INTERVAL_SEC = 10.0
DEFAULT_FINALITY_LAG = 20
DEFAULT_LOOKBACK = 30
DEFAULT_REQUEST_TIMEOUT_SEC = 30.0


@dataclass(frozen=True)
class Settings:
    """Typed settings resolved from the environment."""

    rpc_url: str
    database_url: str
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_sec: float = DEFAULT_RETRY_DELAY_SEC
    retry_max_delay_sec: float = DEFAULT_RETRY_MAX_DELAY_SEC
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    finality_lag: int = DEFAULT_FINALITY_LAG
    lookback: int = DEFAULT_LOOKBACK
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def get_settings() -> Settings:
    """
    Return the current application settings.

    Returns:
        Settings with rpc_url, database_url and pipeline defaults
        (BATCH_SIZE, MAX_RETRIES, RETRY_DELAY_SEC, POLL_INTERVAL_SEC, ...).
    """
    load_env()
    return Settings(
        rpc_url=get_rpc_url(),
        database_url=get_database_url(),
        batch_size=_env_int("BATCH_SIZE", DEFAULT_BATCH_SIZE),
        max_retries=_env_int("MAX_RETRIES", DEFAULT_MAX_RETRIES),
        retry_delay_sec=_env_float("RETRY_DELAY_SEC", DEFAULT_RETRY_DELAY_SEC),
        retry_max_delay_sec=_env_float("RETRY_MAX_DELAY_SEC", DEFAULT_RETRY_MAX_DELAY_SEC),
        poll_interval_sec=_env_float("POLL_INTERVAL_SEC", DEFAULT_POLL_INTERVAL_SEC),
        finality_lag=_env_int("FINALITY_LAG", DEFAULT_FINALITY_LAG),
        lookback=_env_int("LOOKBACK", DEFAULT_LOOKBACK),
        request_timeout_sec=_env_float("RPC_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC),
    )
