"""
Extract stage: one slot in, one RawBlock out.

Wraps getBlock in the retry policy. Transient RPC failures are retried;
skipped / unavailable slots and undecodable payloads fail immediately.
"""

from __future__ import annotations

from typing import Any, Protocol

from block_fetcher.core.exceptions import (
    PermanentExtractionError,
    RpcError,
    RpcSlotUnavailableError,
    TransientExtractionError,
)
from block_fetcher.etl.decode import decode_block
from block_fetcher.etl.models import RawBlock
from block_fetcher.etl.retry import RetryPolicy
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)


class BlockSource(Protocol):
    async def get_block(self, slot: int) -> dict[str, Any]: ...


def is_transient_rpc_error(exc: BaseException) -> bool:
    """Retry any RPC failure except a slot that has no block."""
    return isinstance(exc, RpcError) and not isinstance(exc, RpcSlotUnavailableError)


class Extractor:
    def __init__(self, rpc: BlockSource, retry_policy: RetryPolicy) -> None:
        self._rpc = rpc
        self._policy = retry_policy
        self._attempts = 0

    async def _get_block(self, slot: int) -> dict[str, Any]:
        self._attempts += 1
        return await self._rpc.get_block(slot)

    async def fetch(self, slot: int) -> RawBlock:
        """
        Fetch and decode one block.

        Raises:
            PermanentExtractionError: slot skipped or payload malformed.
            TransientExtractionError: transient failures outlasted every attempt.
            RetryAborted: a stop was requested while a retry was pending.
        """
        self._attempts = 0
        try:
            payload = await self._policy.run(lambda: self._get_block(slot), slot=slot)
        except RpcSlotUnavailableError as e:
            logger.warning("block_unavailable", slot=slot, error=str(e))
            raise PermanentExtractionError(slot, e, attempts=self._attempts) from e
        except RpcError as e:
            logger.error("block_fetch_failed", slot=slot, attempts=self._attempts, error=str(e))
            raise TransientExtractionError(slot, e, attempts=self._attempts) from e

        try:
            block = decode_block(slot, payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("block_decode_failed", slot=slot, error=str(e))
            raise PermanentExtractionError(slot, e, attempts=self._attempts) from e

        logger.debug(
            "block_extracted",
            slot=slot,
            transactions=len(block.transactions),
            attempts=self._attempts,
        )
        return block
