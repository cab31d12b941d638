"""
Tests for environment-driven configuration.
"""

from __future__ import annotations

import pytest

from block_fetcher.config import env, settings
from block_fetcher.config.env import mask_url
from block_fetcher.core.exceptions import ConfigurationError

ENV_VARS = (
    "SOLANA_RPC_URL",
    "HELIUS_RPC_URL",
    "HELIUS_API_KEY",
    "DATABASE_URL",
    "BLOCK_FETCHER_DB_PATH",
    "BATCH_SIZE",
    "MAX_RETRIES",
    "RETRY_DELAY_SEC",
)


@pytest.fixture
def clean_env(monkeypatch):
    """No .env loading and none of the block_fetcher variables set."""
    monkeypatch.setattr(env, "load_env", lambda: None)
    monkeypatch.setattr(settings, "load_env", lambda: None)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_rpc_url_precedence(clean_env):
    assert env.get_rpc_url() == env.MAINNET_RPC_URL
    clean_env.setenv("HELIUS_API_KEY", "k1")
    assert env.get_rpc_url() == "https://mainnet.helius-rpc.com/?api-key=k1"
    clean_env.setenv("HELIUS_RPC_URL", "https://helius.example")
    assert env.get_rpc_url() == "https://helius.example"
    clean_env.setenv("SOLANA_RPC_URL", "https://solana.example")
    assert env.get_rpc_url() == "https://solana.example"


def test_database_url(clean_env):
    assert env.get_database_url() == "sqlite:///block_fetcher.db"
    clean_env.setenv("BLOCK_FETCHER_DB_PATH", "/tmp/blocks.db")
    assert env.get_database_url() == "sqlite:////tmp/blocks.db"
    clean_env.setenv("DATABASE_URL", "postgresql+psycopg2://u:p@localhost/blocks")
    assert env.get_database_url() == "postgresql+psycopg2://u:p@localhost/blocks"


def test_settings_from_env(clean_env):
    clean_env.setenv("BATCH_SIZE", "25")
    clean_env.setenv("RETRY_DELAY_SEC", "0.5")
    s = settings.get_settings()
    assert s.batch_size == 25
    assert s.retry_delay_sec == 0.5
    assert s.max_retries == settings.DEFAULT_MAX_RETRIES


def test_settings_rejects_non_integer(clean_env):
    clean_env.setenv("MAX_RETRIES", "three")
    with pytest.raises(ConfigurationError, match="MAX_RETRIES"):
        settings.get_settings()


def test_mask_url():
    assert mask_url("https://mainnet.helius-rpc.com/?api-key=abc123") == "https://mainnet.helius-rpc.com/?api-key=***"
    assert mask_url("postgresql+psycopg2://user:pw@db:5432/blocks") == "postgresql+psycopg2://user:***@db:5432/blocks"
    assert mask_url("sqlite:///blocks.db") == "sqlite:///blocks.db"
