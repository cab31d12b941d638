"""
Bounded retry with exponential backoff.

One policy type shared by block extraction and batch commits. max_attempts
counts the first try; the delay before attempt k+1 is
base_delay * 2**(k-1), capped at max_delay.

With a stop event the backoff wait is interruptible: once the event is set
no further attempt is made and RetryAborted is raised instead of the last
error.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from block_fetcher.core.exceptions import RetryAborted
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _always(exc: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 60.0
    is_retryable: Callable[[BaseException], bool] = _always
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    stop: asyncio.Event | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given failed attempt (1-based)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    @property
    def stopping(self) -> bool:
        return self.stop is not None and self.stop.is_set()

    async def _backoff(self, delay: float) -> bool:
        """Wait delay seconds; True if the stop event fired first."""
        if self.stop is None:
            await self.sleep(delay)
            return False
        sleeper = asyncio.ensure_future(self.sleep(delay))
        stopper = asyncio.ensure_future(self.stop.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                task.cancel()
            await asyncio.gather(sleeper, stopper, return_exceptions=True)
        return self.stop.is_set()

    async def run(self, operation: Callable[[], Awaitable[T]], **log_fields: Any) -> T:
        """
        Await operation() until it succeeds, raises a non-retryable error,
        or max_attempts is reached. The last exception propagates unchanged.

        Raises:
            RetryAborted: the stop event was set before a retry could run.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.is_retryable(e) or attempt >= self.max_attempts:
                    raise
                if self.stopping:
                    logger.info("retry_aborted", attempt=attempt, error=str(e), **log_fields)
                    raise RetryAborted(e, attempts=attempt) from e
                delay = self.delay_for(attempt)
                logger.warning(
                    "retry_scheduled",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    backoff_sec=round(delay, 2),
                    error=str(e),
                    **log_fields,
                )
                if await self._backoff(delay):
                    logger.info("retry_aborted", attempt=attempt, error=str(e), **log_fields)
                    raise RetryAborted(e, attempts=attempt) from e
                attempt += 1
