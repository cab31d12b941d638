"""
Instruction and transaction classification.

Instruction level: program id -> category via the registry, falling back to
ProgramInteraction for recognized programs and Unknown otherwise. Never raises.

Transaction level: the highest-precedence instruction category wins,
independent of instruction order. Precedence (highest first):
DexSwap > NftOperation > TokenTransfer > SolTransfer > ProgramInteraction > Unknown.
A swap routed through a DEX also carries token and system instructions; the
rarer category dominates so swaps are not counted as plain transfers.
"""

from __future__ import annotations

from typing import Callable, Sequence

from block_fetcher.etl.models import (
    InstructionCategory,
    RawInstruction,
    TransactionClassification,
    TransferDetails,
)
from block_fetcher.etl.parsers import parse_system_transfer, parse_token_transfer
from block_fetcher.etl.registry import (
    CATEGORY_DEX,
    CATEGORY_NFT,
    CATEGORY_TOKEN,
    SYSTEM_PROGRAM_ID,
    ProgramRegistry,
    is_valid_address,
)
from block_fetcher.etl_logging import get_logger

logger = get_logger(__name__)

MAX_LABEL_LENGTH = 255

PRECEDENCE: tuple[InstructionCategory, ...] = (
    InstructionCategory.DEX_SWAP,
    InstructionCategory.NFT_OPERATION,
    InstructionCategory.TOKEN_TRANSFER,
    InstructionCategory.SOL_TRANSFER,
    InstructionCategory.PROGRAM_INTERACTION,
    InstructionCategory.UNKNOWN,
)
_RANK = {category: rank for rank, category in enumerate(PRECEDENCE)}

_CATEGORY_MAP = {
    CATEGORY_TOKEN: InstructionCategory.TOKEN_TRANSFER,
    CATEGORY_DEX: InstructionCategory.DEX_SWAP,
    CATEGORY_NFT: InstructionCategory.NFT_OPERATION,
}

# (instruction, registry) -> is this a real on-chain program we just don't categorize?
ProgramRecognizer = Callable[[RawInstruction, ProgramRegistry], bool]


def registry_or_rpc_recognizer(instruction: RawInstruction, registry: ProgramRegistry) -> bool:
    """Recognized if the registry knows the id, or the RPC decoded the instruction itself."""
    return instruction.program_id in registry or bool(instruction.program_name)


def address_recognizer(instruction: RawInstruction, registry: ProgramRegistry) -> bool:
    """Recognized if the program id is any well-formed 32-byte base58 address."""
    return registry_or_rpc_recognizer(instruction, registry) or is_valid_address(instruction.program_id)


class InstructionClassifier:
    """Maps one instruction to an InstructionCategory. Total: every input gets a label."""

    def __init__(
        self,
        registry: ProgramRegistry,
        *,
        recognizer: ProgramRecognizer = registry_or_rpc_recognizer,
    ) -> None:
        self._registry = registry
        self._recognizer = recognizer

    @property
    def registry(self) -> ProgramRegistry:
        return self._registry

    def classify(self, instruction: RawInstruction) -> InstructionCategory:
        program_id = getattr(instruction, "program_id", None)
        if not isinstance(program_id, str) or not program_id:
            logger.debug("classification_anomaly", reason="missing_program_id")
            return InstructionCategory.UNKNOWN
        if program_id == SYSTEM_PROGRAM_ID:
            return InstructionCategory.SOL_TRANSFER
        category = self._registry.category_of(program_id)
        mapped = _CATEGORY_MAP.get(category) if category else None
        if mapped is not None:
            return mapped
        try:
            recognized = self._recognizer(instruction, self._registry)
        except Exception as e:
            logger.warning("classification_recognizer_failed", program_id=program_id, error=str(e))
            recognized = False
        return InstructionCategory.PROGRAM_INTERACTION if recognized else InstructionCategory.UNKNOWN


def highest_precedence(categories: Sequence[InstructionCategory]) -> InstructionCategory:
    """Highest-precedence category present; Unknown for an empty sequence."""
    if not categories:
        return InstructionCategory.UNKNOWN
    return min(categories, key=lambda c: _RANK[c])


def build_label(transaction_type: InstructionCategory, program_names: Sequence[str]) -> str:
    """'Token Transfer (Token Program, System Program)' style label, truncated to the column size."""
    label = transaction_type.display_name
    if program_names:
        label = f"{label} ({', '.join(program_names)})"
    if len(label) > MAX_LABEL_LENGTH:
        label = label[: MAX_LABEL_LENGTH - 3] + "..."
    return label


class TransactionClassifier:
    """Derives one transaction-level type + label from its ordered instructions."""

    def __init__(self, instruction_classifier: InstructionClassifier) -> None:
        self._instructions = instruction_classifier

    @property
    def instruction_classifier(self) -> InstructionClassifier:
        return self._instructions

    def classify(
        self,
        instructions: Sequence[RawInstruction],
        categories: Sequence[InstructionCategory] | None = None,
    ) -> TransactionClassification:
        """
        Classify a transaction.

        categories may be passed when the caller already classified each
        instruction (same order as instructions); otherwise they are computed.
        """
        if categories is None:
            categories = [self._instructions.classify(ix) for ix in instructions]
        registry = self._instructions.registry

        names: list[str] = []
        for ix in instructions:
            name = registry.name_of(ix.program_id)
            if name and name not in names:
                names.append(name)

        transaction_type = highest_precedence(categories)
        found = find_transfer(instructions, categories)
        return TransactionClassification(
            transaction_type=transaction_type,
            label=build_label(transaction_type, names),
            program_names=tuple(names),
            transfer=found[1] if found else None,
            transfer_index=found[0] if found else None,
        )


def find_transfer(
    instructions: Sequence[RawInstruction],
    categories: Sequence[InstructionCategory],
) -> tuple[int, TransferDetails] | None:
    """First System or SPL Token transfer in instruction order, with its instruction index."""
    for index, (ix, category) in enumerate(zip(instructions, categories)):
        if category is InstructionCategory.SOL_TRANSFER:
            details = parse_system_transfer(ix)
        elif category is InstructionCategory.TOKEN_TRANSFER:
            details = parse_token_transfer(ix)
        else:
            continue
        if details is not None:
            return index, details
    return None
