"""
Run statistics: block/batch/transaction counters and the final report.

Mutated only by the pipeline coordinator. render() produces the
human-readable table printed at the end of a run; to_dict() is what gets
logged after every batch in continuous mode.
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from block_fetcher.etl.models import ClassifiedBlock, InstructionCategory, RowCounts

SEP = "=" * 60
SEP_THIN = "-" * 60
MAX_ERRORS_SHOWN = 5


def format_number(value: int | float) -> str:
    """Thousands separators; floats keep two decimals."""
    if isinstance(value, float):
        return f"{value:,.2f}"
    return f"{value:,}"


@dataclass(frozen=True)
class ErrorRecord:
    stage: str
    """extract, transform or commit."""
    slot: int | None
    message: str


@dataclass
class PipelineStats:
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    blocks_attempted: int = 0
    blocks_succeeded: int = 0
    blocks_failed: int = 0
    batches_committed: int = 0
    batches_failed: int = 0
    transactions_processed: int = 0
    transactions_inserted: int = 0
    instructions_inserted: int = 0
    accounts_upserted: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    total_fees: int = 0
    failed_slots: list[int] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)
    by_category: Counter = field(default_factory=Counter)
    started_at: float | None = None
    finished_at: float | None = None

    def start(self) -> None:
        if self.started_at is None:
            self.started_at = self.clock()

    def finish(self) -> None:
        self.finished_at = self.clock()

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else self.clock()
        return max(end - self.started_at, 0.0)

    @property
    def success_rate(self) -> float:
        """Percent of attempted blocks that were committed."""
        if not self.blocks_attempted:
            return 0.0
        return 100.0 * self.blocks_succeeded / self.blocks_attempted

    @property
    def blocks_per_second(self) -> float:
        return self.blocks_succeeded / self.elapsed if self.elapsed > 0 else 0.0

    @property
    def transactions_per_second(self) -> float:
        return self.transactions_inserted / self.elapsed if self.elapsed > 0 else 0.0

    def record_attempt(self) -> None:
        self.blocks_attempted += 1

    def record_block_failed(self, slot: int, stage: str, message: str) -> None:
        self.blocks_failed += 1
        self.failed_slots.append(slot)
        self.errors.append(ErrorRecord(stage=stage, slot=slot, message=message))

    def record_block_extracted(self, block: ClassifiedBlock) -> None:
        """Count transactions seen; success is only recorded once the batch commits."""
        self.transactions_processed += len(block.transactions)

    def record_batch_committed(self, blocks: list[ClassifiedBlock], counts: RowCounts) -> None:
        self.batches_committed += 1
        self.blocks_succeeded += len(blocks)
        self.transactions_inserted += counts.transactions
        self.instructions_inserted += counts.instructions
        self.accounts_upserted += counts.accounts
        for block in blocks:
            for tx in block.transactions:
                self.by_category[InstructionCategory(tx.transaction_type).value] += 1
                self.total_fees += tx.fee
                if tx.success:
                    self.successful_transactions += 1
                else:
                    self.failed_transactions += 1

    def record_batch_failed(self, slots: list[int], message: str) -> None:
        self.batches_failed += 1
        self.blocks_failed += len(slots)
        self.failed_slots.extend(slots)
        self.errors.append(ErrorRecord(stage="commit", slot=slots[0] if slots else None, message=message))

    def record_error(self, stage: str, message: str, slot: int | None = None) -> None:
        """Error not tied to a block outcome (e.g. a failed tip query)."""
        self.errors.append(ErrorRecord(stage=stage, slot=slot, message=message))

    def to_dict(self) -> dict[str, object]:
        return {
            "blocks_attempted": self.blocks_attempted,
            "blocks_succeeded": self.blocks_succeeded,
            "blocks_failed": self.blocks_failed,
            "failed_slots": list(self.failed_slots),
            "batches_committed": self.batches_committed,
            "batches_failed": self.batches_failed,
            "transactions_processed": self.transactions_processed,
            "transactions_inserted": self.transactions_inserted,
            "instructions_inserted": self.instructions_inserted,
            "accounts_upserted": self.accounts_upserted,
            "by_category": dict(self.by_category),
            "success_rate": round(self.success_rate, 2),
            "elapsed_sec": round(self.elapsed, 3),
            "blocks_per_second": round(self.blocks_per_second, 3),
            "transactions_per_second": round(self.transactions_per_second, 3),
            "errors": len(self.errors),
        }

    def render(self) -> str:
        rows = [
            ("Blocks attempted", format_number(self.blocks_attempted)),
            ("Blocks succeeded", format_number(self.blocks_succeeded)),
            ("Blocks failed", format_number(self.blocks_failed)),
            ("Success rate", f"{self.success_rate:.1f}%"),
            ("Batches committed", format_number(self.batches_committed)),
            ("Batches failed", format_number(self.batches_failed)),
            ("Transactions processed", format_number(self.transactions_processed)),
            ("Transactions inserted", format_number(self.transactions_inserted)),
            ("  successful", format_number(self.successful_transactions)),
            ("  failed", format_number(self.failed_transactions)),
            ("Instructions inserted", format_number(self.instructions_inserted)),
            ("Accounts upserted", format_number(self.accounts_upserted)),
            ("Total fees (lamports)", format_number(self.total_fees)),
            ("Elapsed (s)", format_number(round(self.elapsed, 2))),
            ("Blocks / s", format_number(round(self.blocks_per_second, 2))),
            ("Transactions / s", format_number(round(self.transactions_per_second, 2))),
        ]
        label_w = max(len(label) for label, _ in rows)
        lines = [SEP, "Pipeline statistics", SEP]
        lines += [f"{label:<{label_w}}  {value}" for label, value in rows]

        if self.by_category:
            lines.append(SEP_THIN)
            lines.append("Transactions by type")
            for category in InstructionCategory:
                count = self.by_category.get(category.value, 0)
                if count:
                    lines.append(f"  {category.display_name:<{label_w - 2}}  {format_number(count)}")

        if self.failed_slots:
            lines.append(SEP_THIN)
            lines.append(f"Failed slots: {', '.join(str(s) for s in self.failed_slots)}")

        if self.errors:
            lines.append(SEP_THIN)
            lines.append(f"Errors ({len(self.errors)}):")
            for err in self.errors[:MAX_ERRORS_SHOWN]:
                where = f"slot {err.slot}" if err.slot is not None else "-"
                lines.append(f"  [{err.stage}] {where}: {err.message}")
            if len(self.errors) > MAX_ERRORS_SHOWN:
                lines.append(f"  ... and {len(self.errors) - MAX_ERRORS_SHOWN} more")
        lines.append(SEP)
        return "\n".join(lines)
