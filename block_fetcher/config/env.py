"""
Environment variable loading for block-data-fetcher.

- SOLANA_RPC_URL / HELIUS_RPC_URL: RPC endpoint (read from .env)
- HELIUS_API_KEY: Helius API key (fallback for the RPC URL)
- DATABASE_URL: SQLAlchemy URL (postgresql+psycopg2://... or sqlite:///...)
- BLOCK_FETCHER_DB_PATH: SQLite file used when DATABASE_URL is unset
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is block_fetcher/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
DEFAULT_SQLITE_PATH = "block_fetcher.db"


def load_env() -> None:
    """Load .env from project root. Safe to call multiple times; real env wins."""
    load_dotenv(_ENV_PATH, override=False)


def get_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_RPC_URL > HELIUS_API_KEY (mainnet) > public mainnet.
    """
    load_env()
    for name in ("SOLANA_RPC_URL", "HELIUS_RPC_URL"):
        url = (os.getenv(name) or "").strip()
        if url:
            return url
    key = (os.getenv("HELIUS_API_KEY") or "").strip()
    if key:
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    return MAINNET_RPC_URL


def get_database_url() -> str:
    """Return DATABASE_URL if set; else a SQLite URL from BLOCK_FETCHER_DB_PATH or the default file."""
    load_env()
    url = (os.getenv("DATABASE_URL") or "").strip()
    if url:
        return url
    path = (os.getenv("BLOCK_FETCHER_DB_PATH") or "").strip() or DEFAULT_SQLITE_PATH
    return f"sqlite:///{path}"


def mask_url(url: str) -> str:
    """Hide API keys and passwords before a URL is logged or printed."""
    if "api-key=" in url:
        url = url.split("api-key=")[0] + "api-key=***"
    if "://" in url and "@" in url:
        scheme, rest = url.split("://", 1)
        creds, host = rest.rsplit("@", 1)
        user = creds.split(":", 1)[0]
        url = f"{scheme}://{user}:***@{host}"
    return url
