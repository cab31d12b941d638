"""
Application-level exceptions.

Block-level errors (extraction) are absorbed by the coordinator's per-block
step, batch-level errors (storage) by its per-batch step. Only
ConfigurationError is meant to end a run.
"""

from __future__ import annotations

from typing import Sequence


class BlockFetcherError(Exception):
    """Base class for every error raised by block_fetcher."""


class ConfigurationError(BlockFetcherError):
    """Invalid slot range, bad settings, or an endpoint unreachable at startup."""


# --- RPC collaborator -------------------------------------------------------


class RpcError(BlockFetcherError):
    """Error reported by (or while talking to) the JSON-RPC endpoint."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class RpcTransientError(RpcError):
    """Network failure, timeout, rate limit, or a retryable RPC error code."""


class RpcSlotUnavailableError(RpcError):
    """Slot was skipped or its block is not available; retrying will not help."""


# --- Extraction ---------------------------------------------------------------


class ExtractionError(BlockFetcherError):
    """A block could not be extracted. Carries the slot and the final cause."""

    retryable = False

    def __init__(self, slot: int, cause: BaseException, *, attempts: int = 1) -> None:
        super().__init__(f"slot {slot}: {cause}")
        self.slot = slot
        self.cause = cause
        self.attempts = attempts


class TransientExtractionError(ExtractionError):
    """Transient RPC failures persisted through every retry attempt."""

    retryable = True


class PermanentExtractionError(ExtractionError):
    """Slot skipped, not found, or payload undecodable. Not retried."""


class RetryAborted(BlockFetcherError):
    """A stop was requested while an operation waited to be retried."""

    def __init__(self, cause: BaseException, *, attempts: int) -> None:
        super().__init__(f"retry abandoned after {attempts} attempt(s): {cause}")
        self.cause = cause
        self.attempts = attempts


# --- Classification -----------------------------------------------------------


class ClassificationAnomaly(BlockFetcherError):
    """Malformed instruction shape. Never fatal; resolves to the Unknown category."""


# --- Storage --------------------------------------------------------------------


class StorageCommitError(BlockFetcherError):
    """A batch commit failed and was rolled back as a whole."""

    def __init__(self, slots: Sequence[int], cause: BaseException) -> None:
        slots = list(slots)
        span = f"{slots[0]}-{slots[-1]}" if slots else "empty"
        super().__init__(f"batch {span} ({len(slots)} blocks): {cause}")
        self.slots = slots
        self.cause = cause
