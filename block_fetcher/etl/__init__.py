"""
ETL stages: decode, extract, classify and transform blocks.

Extractor (RPC + retry) -> RawBlock -> BlockTransformer (classifiers,
account activity) -> ClassifiedBlock, ready for the batch loader.
"""

from block_fetcher.etl.classifier import InstructionClassifier, TransactionClassifier
from block_fetcher.etl.extract import Extractor
from block_fetcher.etl.models import (
    ClassifiedBlock,
    InstructionCategory,
    RawBlock,
    RowCounts,
    TransactionType,
)
from block_fetcher.etl.registry import ProgramRegistry
from block_fetcher.etl.retry import RetryPolicy
from block_fetcher.etl.transform import BlockTransformer

__all__ = [
    "BlockTransformer",
    "ClassifiedBlock",
    "Extractor",
    "InstructionCategory",
    "InstructionClassifier",
    "ProgramRegistry",
    "RawBlock",
    "RetryPolicy",
    "RowCounts",
    "TransactionClassifier",
    "TransactionType",
]
