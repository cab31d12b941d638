"""
Pipeline orchestration: coordinator and run statistics.
"""

from block_fetcher.pipeline.coordinator import (
    BatchOutcome,
    BlockOutcome,
    Pipeline,
    PipelineConfig,
    batch_ranges,
    resolve_range,
)
from block_fetcher.pipeline.stats import PipelineStats, format_number

__all__ = [
    "BatchOutcome",
    "BlockOutcome",
    "Pipeline",
    "PipelineConfig",
    "PipelineStats",
    "batch_ranges",
    "format_number",
    "resolve_range",
]
