"""Solana JSON-RPC collaborator."""

from block_fetcher.rpc.client import SolanaRpcClient

__all__ = ["SolanaRpcClient"]
