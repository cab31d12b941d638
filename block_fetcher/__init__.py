"""
block-data-fetcher: Solana block ETL.

Fetches blocks over JSON-RPC, classifies every transaction and
instruction, and stores the result in PostgreSQL or SQLite with
idempotent, atomic batch commits. Runs once over a slot range or
continuously behind the chain tip.
"""

__version__ = "0.1.0"
