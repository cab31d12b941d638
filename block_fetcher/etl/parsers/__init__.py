"""
Instruction parsers for individual Solana programs.

Each parser extracts transfer details from one instruction, or returns None.
"""

from block_fetcher.etl.parsers.system import decode_system_data, parse_system_transfer
from block_fetcher.etl.parsers.token import parse_token_transfer

__all__ = ["decode_system_data", "parse_system_transfer", "parse_token_transfer"]
