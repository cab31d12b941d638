"""
Program registry: program id -> {name, category}.

Loaded once at start (program_registry table or the built-in seed list)
and shared read-only with the classifiers. Unknown ids resolve to None;
that is the normal "unrecognized program" case, not an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from solders.pubkey import Pubkey

from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"

CATEGORY_SYSTEM = "System"
CATEGORY_TOKEN = "Token"
CATEGORY_DEX = "DEX"
CATEGORY_NFT = "NFT"
CATEGORY_LENDING = "Lending"
CATEGORY_STAKING = "Staking"
CATEGORY_UTILITY = "Utility"
CATEGORY_DERIVATIVES = "Derivatives"
CATEGORY_UNKNOWN = "Unknown"


@dataclass(frozen=True)
class ProgramInfo:
    program_id: str
    name: str
    category: str
    description: str | None = None


# (program_id, name, category, description)
SEED_PROGRAMS: tuple[tuple[str, str, str, str], ...] = (
    (SYSTEM_PROGRAM_ID, "System Program", CATEGORY_SYSTEM, "Native Solana system program for account management and transfers"),
    (TOKEN_PROGRAM_ID, "Token Program", CATEGORY_TOKEN, "SPL Token program for fungible tokens"),
    (ASSOCIATED_TOKEN_PROGRAM_ID, "Associated Token Program", CATEGORY_TOKEN, "Creates associated token accounts"),
    (TOKEN_2022_PROGRAM_ID, "Token-2022 Program", CATEGORY_TOKEN, "SPL Token-2022 program with extensions"),
    ("JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4", "Jupiter Aggregator v6", CATEGORY_DEX, "Jupiter DEX aggregator for best swap rates"),
    ("whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc", "Orca Whirlpool", CATEGORY_DEX, "Orca concentrated liquidity pools"),
    ("9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQP", "Orca v2", CATEGORY_DEX, "Orca v2 liquidity pools"),
    ("675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8", "Raydium AMM v4", CATEGORY_DEX, "Raydium automated market maker"),
    ("CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK", "Raydium CLMM", CATEGORY_DEX, "Raydium concentrated liquidity market maker"),
    ("M2mx93ekt1fmXSVkTrUL9xVFHkmME8HTUi5Cyc5aF7K", "Magic Eden v2", CATEGORY_NFT, "Magic Eden NFT marketplace"),
    ("CJsLwbP1iu5DuUikHEJnLfANgKy6stB2uFgvBBHoyxwz", "Solanart", CATEGORY_NFT, "Solanart NFT marketplace"),
    ("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s", "Metaplex Token Metadata", CATEGORY_NFT, "Metaplex token metadata program"),
    ("p1exdMJcjVao65QdewkaZRUnU6VPSXhus9n2GzWfh98", "Metaplex Auction House", CATEGORY_NFT, "Metaplex auction house for NFT sales"),
    ("So1endDq2YkqhipRh3WViPa8hdiSpxWy6z3Z6tMCpAo", "Solend", CATEGORY_LENDING, "Solend lending protocol"),
    ("MarBmsSgKXdrN1egZf5sqe1TMai9K1rChYNDJgjq7aD", "Marginfi", CATEGORY_LENDING, "Marginfi lending protocol"),
    ("CRaTQLhLmP93f5YeEdoVvfDwHp2FyokBME6MpF9pxLx9", "Marinade Finance", CATEGORY_STAKING, "Marinade liquid staking"),
    ("J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn", "Jito Stake Pool", CATEGORY_STAKING, "Jito MEV liquid staking"),
    ("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr", "Memo Program", CATEGORY_UTILITY, "On-chain memo/message program"),
    (COMPUTE_BUDGET_PROGRAM_ID, "Compute Budget Program", CATEGORY_SYSTEM, "Adjust compute unit price and limits"),
    ("KLend2g3cP87fffoy8q1mQqGKjrxjC8boSyAYavgmjD", "Kamino Lend", CATEGORY_LENDING, "Kamino lending protocol"),
    ("dRiftyHA39MWEi3m9aunc5MzRF1JYuBsbn6VPcn33UH", "Drift Protocol", CATEGORY_DERIVATIVES, "Drift perpetuals and derivatives exchange"),
)


def is_valid_address(value: str) -> bool:
    """True if value is a base58 32-byte public key."""
    try:
        Pubkey.from_string(value)
    except Exception:
        return False
    return True


class ProgramRegistry:
    """Immutable program id lookup shared by every classifier of a run."""

    def __init__(self, programs: Iterable[ProgramInfo]) -> None:
        entries: dict[str, ProgramInfo] = {}
        for info in programs:
            if not is_valid_address(info.program_id):
                logger.warning("registry_invalid_program_id", program_id=info.program_id, name=info.name)
                continue
            entries[info.program_id] = info
        self._programs: Mapping[str, ProgramInfo] = MappingProxyType(entries)

    @classmethod
    def from_seed(cls) -> "ProgramRegistry":
        """Registry built from the built-in seed list."""
        return cls(ProgramInfo(pid, name, cat, desc) for pid, name, cat, desc in SEED_PROGRAMS)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, object]]) -> "ProgramRegistry":
        """Build from program_registry rows (program_id, program_name, program_type, description)."""
        return cls(
            ProgramInfo(
                program_id=str(row["program_id"]),
                name=str(row["program_name"]),
                category=str(row.get("program_type") or CATEGORY_UNKNOWN),
                description=row.get("description"),  # type: ignore[arg-type]
            )
            for row in rows
        )

    @property
    def programs(self) -> Mapping[str, ProgramInfo]:
        return self._programs

    def __len__(self) -> int:
        return len(self._programs)

    def __contains__(self, program_id: object) -> bool:
        return program_id in self._programs

    def resolve(self, program_id: str) -> ProgramInfo | None:
        """Return name/category for program_id, or None when unrecognized."""
        return self._programs.get(program_id)

    def name_of(self, program_id: str) -> str | None:
        info = self._programs.get(program_id)
        return info.name if info else None

    def category_of(self, program_id: str) -> str | None:
        info = self._programs.get(program_id)
        return info.category if info else None
