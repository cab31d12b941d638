"""
Pipeline coordinator: slot range -> batches -> extract/classify -> atomic commit.

Lifecycle:
- Idle -> Running: the slot range is resolved (explicit start/end,
  start + num_blocks, or a window behind the chain tip) and split into
  ascending batches of batch_size.
- Per block: extract (with retry) and classify. A failure becomes a
  failed BlockOutcome and the run continues with the next slot.
- Per batch: the successful blocks are committed as one unit, retried
  with the same backoff policy. Exhaustion marks every block of the batch
  failed and the run continues with the next batch.
- One-shot runs end after the last batch. Continuous runs wait
  poll_interval (interruptible), re-read the tip and process only the
  slots after the last one attempted, until stopped.

A single task drives everything. A stop request is observed between
blocks, during extraction retry backoff and during the poll wait. A block
whose retry was abandoned that way is dropped, not counted as failed.
Commits are synchronous and are not interrupted: blocks already extracted
for the current batch are committed before exiting.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, Sequence

from block_fetcher.config.settings import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FINALITY_LAG,
    DEFAULT_LOOKBACK,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL_SEC,
    DEFAULT_RETRY_DELAY_SEC,
    DEFAULT_RETRY_MAX_DELAY_SEC,
)
from block_fetcher.core.exceptions import (
    ConfigurationError,
    ExtractionError,
    RetryAborted,
    RpcError,
    StorageCommitError,
)
from block_fetcher.etl.extract import Extractor, is_transient_rpc_error
from block_fetcher.etl.models import ClassifiedBlock, RowCounts
from block_fetcher.etl.retry import RetryPolicy
from block_fetcher.etl.transform import BlockTransformer
from block_fetcher.etl_logging import bind_slot, get_logger
from block_fetcher.pipeline.stats import PipelineStats

logger = get_logger(__name__)


class ChainSource(Protocol):
    async def get_block(self, slot: int) -> dict[str, Any]: ...

    async def get_slot(self) -> int: ...


class BatchSink(Protocol):
    def commit(self, batch: Sequence[ClassifiedBlock]) -> RowCounts: ...


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a run needs besides its collaborators."""

    start_slot: int | None = None
    end_slot: int | None = None
    num_blocks: int | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = DEFAULT_MAX_RETRIES
    """Total attempts per block fetch and per batch commit (first try included)."""
    retry_delay_sec: float = DEFAULT_RETRY_DELAY_SEC
    retry_max_delay_sec: float = DEFAULT_RETRY_MAX_DELAY_SEC
    continuous: bool = False
    poll_interval_sec: float = DEFAULT_POLL_INTERVAL_SEC
    finality_lag: int = DEFAULT_FINALITY_LAG
    """Slots kept behind the tip so only finalized blocks are read."""
    lookback: int = DEFAULT_LOOKBACK
    """Default start is tip - lookback."""

    def validate(self) -> None:
        """Raise ConfigurationError for values that cannot describe a run."""
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be greater than 0")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be greater than 0")
        if self.retry_delay_sec < 0 or self.retry_max_delay_sec < 0:
            raise ConfigurationError("retry delays must be >= 0")
        if self.poll_interval_sec <= 0:
            raise ConfigurationError("poll_interval_sec must be positive")
        if self.finality_lag < 0 or self.lookback < self.finality_lag:
            raise ConfigurationError("lookback must be >= finality_lag >= 0")
        if self.num_blocks is not None and self.end_slot is not None:
            raise ConfigurationError("num_blocks and end_slot are mutually exclusive")
        if self.num_blocks is not None and self.num_blocks < 1:
            raise ConfigurationError("num_blocks must be greater than 0")
        for name in ("start_slot", "end_slot"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigurationError(f"{name} must be >= 0")
        if self.start_slot is not None and self.end_slot is not None and self.start_slot > self.end_slot:
            raise ConfigurationError(
                f"start slot ({self.start_slot}) must be less than or equal to end slot ({self.end_slot})"
            )

    @property
    def needs_tip(self) -> bool:
        """True if the range cannot be resolved without the current chain tip."""
        if self.start_slot is None:
            return True
        return self.end_slot is None and self.num_blocks is None


def resolve_range(config: PipelineConfig, tip: int | None = None) -> tuple[int, int]:
    """
    Inclusive (start, end) for a run.

    start defaults to tip - lookback; end is start + num_blocks - 1, the
    explicit end_slot, or tip - finality_lag.
    """
    if config.needs_tip and tip is None:
        raise ConfigurationError("chain tip required to resolve the slot range")
    start = config.start_slot if config.start_slot is not None else max(tip - config.lookback, 0)
    if config.num_blocks is not None:
        end = start + config.num_blocks - 1
    elif config.end_slot is not None:
        end = config.end_slot
    else:
        end = tip - config.finality_lag
    if start > end:
        raise ConfigurationError(f"start slot ({start}) is after end slot ({end})")
    return start, end


def batch_ranges(start: int, end: int, batch_size: int) -> list[range]:
    """Ascending, contiguous, non-overlapping slot ranges covering [start, end]."""
    return [range(s, min(s + batch_size - 1, end) + 1) for s in range(start, end + 1, batch_size)]


@dataclass(frozen=True)
class BlockOutcome:
    slot: int
    block: ClassifiedBlock | None = None
    error: BaseException | None = None
    stage: str | None = None
    """Stage that failed: extract or transform; "stopped" when dropped on shutdown."""

    @property
    def ok(self) -> bool:
        return self.block is not None

    @property
    def dropped(self) -> bool:
        return self.stage == "stopped"


@dataclass(frozen=True)
class BatchOutcome:
    slots: tuple[int, ...]
    committed: bool
    counts: RowCounts = field(default_factory=RowCounts)
    error: BaseException | None = None


class Pipeline:
    """
    Drives extract -> transform -> load over a slot range.

    rpc provides get_block/get_slot (SolanaRpcClient), loader provides
    commit(batch) (BatchLoader). sleep is used for every retry backoff.
    """

    def __init__(
        self,
        rpc: ChainSource,
        transformer: BlockTransformer,
        loader: BatchSink,
        config: PipelineConfig,
        *,
        stats: PipelineStats | None = None,
        stop_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        config.validate()
        self._rpc = rpc
        self._transformer = transformer
        self._loader = loader
        self._config = config
        self._stats = stats or PipelineStats()
        self._stop_event = stop_event or asyncio.Event()
        self._extractor = Extractor(
            rpc,
            RetryPolicy(
                max_attempts=config.max_retries,
                base_delay=config.retry_delay_sec,
                max_delay=config.retry_max_delay_sec,
                is_retryable=is_transient_rpc_error,
                sleep=sleep,
                stop=self._stop_event,
            ),
        )
        self._commit_policy = RetryPolicy(
            max_attempts=config.max_retries,
            base_delay=config.retry_delay_sec,
            max_delay=config.retry_max_delay_sec,
            is_retryable=lambda e: isinstance(e, StorageCommitError),
            sleep=sleep,
        )
        self._last_slot: int | None = None

    @property
    def stats(self) -> PipelineStats:
        return self._stats

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def last_slot(self) -> int | None:
        """Last slot attempted (committed or reported failed)."""
        return self._last_slot

    def stop(self) -> None:
        """Request shutdown; honoured between blocks, during retry backoff and the poll wait."""
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def process_block(self, slot: int) -> BlockOutcome:
        """Extract and classify one slot. Never raises for block-level failures."""
        log = bind_slot(slot)
        try:
            raw = await self._extractor.fetch(slot)
        except RetryAborted as e:
            log.info("block_dropped_on_stop", attempts=e.attempts)
            return BlockOutcome(slot=slot, error=e, stage="stopped")
        except ExtractionError as e:
            self._stats.record_attempt()
            self._stats.record_block_failed(slot, "extract", str(e.cause))
            return BlockOutcome(slot=slot, error=e, stage="extract")
        except Exception as e:
            log.exception("block_extract_unexpected_error", error=str(e))
            self._stats.record_attempt()
            self._stats.record_block_failed(slot, "extract", str(e))
            return BlockOutcome(slot=slot, error=e, stage="extract")

        self._stats.record_attempt()
        try:
            block = self._transformer.transform(raw)
        except Exception as e:
            log.exception("block_transform_failed", error=str(e))
            self._stats.record_block_failed(slot, "transform", str(e))
            return BlockOutcome(slot=slot, error=e, stage="transform")

        self._stats.record_block_extracted(block)
        log.debug("block_processed", transactions=len(block.transactions))
        return BlockOutcome(slot=slot, block=block)

    async def commit_batch(self, blocks: list[ClassifiedBlock]) -> BatchOutcome:
        """Commit one batch with retry. Never raises for storage failures."""
        slots = tuple(b.slot for b in blocks)
        if not blocks:
            return BatchOutcome(slots=slots, committed=False)

        async def attempt() -> RowCounts:
            return self._loader.commit(blocks)

        try:
            counts = await self._commit_policy.run(attempt, slots=list(slots))
        except StorageCommitError as e:
            logger.error("batch_failed", slots=list(slots), error=str(e.cause))
            self._stats.record_batch_failed(list(slots), str(e.cause))
            return BatchOutcome(slots=slots, committed=False, error=e)
        self._stats.record_batch_committed(blocks, counts)
        return BatchOutcome(slots=slots, committed=True, counts=counts)

    async def run_range(self, start: int, end: int) -> list[BatchOutcome]:
        """Process [start, end] batch by batch. Stops early if a stop was requested."""
        outcomes = []
        for slots in batch_ranges(start, end, self._config.batch_size):
            blocks = []
            for slot in slots:
                if self.stopping:
                    break
                outcome = await self.process_block(slot)
                if outcome.dropped:
                    break
                self._last_slot = slot
                if outcome.ok:
                    blocks.append(outcome.block)
            outcomes.append(await self.commit_batch(blocks))
            if self._config.continuous:
                logger.info("pipeline_progress", **self._stats.to_dict())
            if self.stopping:
                logger.info("pipeline_stop_requested", last_slot=self._last_slot)
                break
        return outcomes

    async def _wait_or_stop(self, timeout: float) -> bool:
        """Wait up to timeout seconds; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def run_continuous(self) -> None:
        """Poll the tip and process newly finalized slots until stopped."""
        logger.info("continuous_mode_started", poll_interval_sec=self._config.poll_interval_sec)
        while not self.stopping:
            if await self._wait_or_stop(self._config.poll_interval_sec):
                break
            try:
                tip = await self._rpc.get_slot()
            except Exception as e:
                logger.warning("tip_query_failed", error=str(e))
                self._stats.record_error("tip", str(e))
                continue
            safe_end = tip - self._config.finality_lag
            next_slot = safe_end if self._last_slot is None else self._last_slot + 1
            if next_slot > safe_end:
                logger.debug("no_new_slots", last_slot=self._last_slot, safe_end=safe_end)
                continue
            logger.info("continuous_cycle", start_slot=next_slot, end_slot=safe_end, tip=tip)
            await self.run_range(next_slot, safe_end)
        logger.info("continuous_mode_stopped", last_slot=self._last_slot)

    async def _chain_tip(self) -> int:
        try:
            return await self._rpc.get_slot()
        except RpcError as e:
            raise ConfigurationError(f"could not read the chain tip: {e}") from e

    async def run(self) -> PipelineStats:
        """
        Run to completion (one-shot) or until stopped (continuous).

        Raises:
            ConfigurationError: the slot range could not be resolved.
        """
        self._stats.start()
        try:
            tip = await self._chain_tip() if self._config.needs_tip else None
            start, end = resolve_range(self._config, tip)
            logger.info(
                "pipeline_started",
                start_slot=start,
                end_slot=end,
                blocks=end - start + 1,
                batch_size=self._config.batch_size,
                continuous=self._config.continuous,
            )
            await self.run_range(start, end)
            if self._config.continuous and not self.stopping:
                await self.run_continuous()
        finally:
            self._stats.finish()
            logger.info("pipeline_finished", **self._stats.to_dict())
        return self._stats
