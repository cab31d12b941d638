"""
Solana JSON-RPC client.

Thin async wrapper over httpx.AsyncClient (JSON-RPC 2.0). Every call
raises a typed RpcError subclass so callers can tell transient failures
(network, timeout, 429/5xx, node lagging) from slots that will never
return a block (skipped, or missing from long-term storage).
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from block_fetcher.config.env import mask_url
from block_fetcher.core.exceptions import RpcError, RpcSlotUnavailableError, RpcTransientError
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0

# Slot skipped, or skipped in long-term storage
SLOT_SKIPPED_CODES = frozenset({-32007, -32009})
# Block cleaned up / not available yet, node unhealthy, min context slot not reached
TRANSIENT_CODES = frozenset({-32001, -32004, -32005, -32014, -32016})

GET_BLOCK_CONFIG: dict[str, Any] = {
    "encoding": "jsonParsed",
    "transactionDetails": "full",
    "rewards": True,
    "maxSupportedTransactionVersion": 0,
}


class SolanaRpcClient:
    """
    JSON-RPC client for one endpoint.

    Use as an async context manager or call aclose(). An httpx.AsyncClient
    may be passed in (tests use one with httpx.MockTransport).
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        commitment: str = "finalized",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.strip()
        self._commitment = commitment
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._ids = itertools.count(1)

    @property
    def endpoint(self) -> str:
        """Endpoint with credentials masked, safe to log."""
        return mask_url(self._rpc_url)

    async def __aenter__(self) -> SolanaRpcClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Perform one JSON-RPC call and return its result (may be None)."""
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            resp = await self._client.post(self._rpc_url, json=body)
        except httpx.HTTPError as e:
            raise RpcTransientError(f"{method}: {type(e).__name__}: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise RpcTransientError(f"{method}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise RpcError(f"{method}: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise RpcTransientError(f"{method}: invalid JSON response") from e

        err = data.get("error") if isinstance(data, dict) else None
        if err:
            code = err.get("code") if isinstance(err, dict) else None
            message = err.get("message", err) if isinstance(err, dict) else err
            text = f"{method}: {message} (code={code})"
            if code in SLOT_SKIPPED_CODES:
                raise RpcSlotUnavailableError(text, code=code)
            if code in TRANSIENT_CODES:
                raise RpcTransientError(text, code=code)
            raise RpcError(text, code=code)
        if not isinstance(data, dict):
            raise RpcTransientError(f"{method}: unexpected response body")
        return data.get("result")

    async def get_block(self, slot: int) -> dict[str, Any]:
        """Full block with jsonParsed transactions. Raises RpcSlotUnavailableError for a null result."""
        config = dict(GET_BLOCK_CONFIG, commitment=self._commitment)
        result = await self.call("getBlock", [slot, config])
        if result is None:
            raise RpcSlotUnavailableError(f"getBlock: no block for slot {slot}")
        return result

    async def get_slot(self) -> int:
        return int(await self.call("getSlot", [{"commitment": self._commitment}]))

    async def get_version(self) -> dict[str, Any]:
        return await self.call("getVersion") or {}

    async def get_latest_blockhash(self) -> str | None:
        result = await self.call("getLatestBlockhash", [{"commitment": self._commitment}]) or {}
        value = result.get("value") or {}
        return value.get("blockhash")

    async def get_block_time(self, slot: int) -> int | None:
        return await self.call("getBlockTime", [slot])

    async def test_connection(self) -> bool:
        """True if getVersion answers; errors are logged, not raised."""
        try:
            version = await self.get_version()
        except RpcError as e:
            logger.error("rpc_connection_failed", endpoint=self.endpoint, error=str(e))
            return False
        logger.info("rpc_connected", endpoint=self.endpoint, version=version.get("solana-core"))
        return True

    async def get_connection_info(self) -> dict[str, Any]:
        """Endpoint, version, latest blockhash, current slot and its block time."""
        slot = await self.get_slot()
        try:
            block_time = await self.get_block_time(slot)
        except RpcError:
            block_time = None
        version = await self.get_version()
        return {
            "endpoint": self.endpoint,
            "version": version.get("solana-core"),
            "latest_blockhash": await self.get_latest_blockhash(),
            "current_slot": slot,
            "block_time": block_time,
        }
