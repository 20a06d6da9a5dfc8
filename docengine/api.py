"""
Caller-facing API of the document engine.

Five operations, each a thin wrapper over the services and domain objects:

    allocate_document_number(session, document_type)   -> str
    compute_line_totals(line)                          -> LineTotals
    aggregate_document(lines, discount)                -> DocumentTotals
    transition_journal_entry(session, entry_id, target) -> TransitionResult
    compute_ledger_balance(bonds, sign_fn)             -> Decimal

Functions that take a session flush inside the caller's transaction and
never commit.  ``transition_journal_entry`` reports domain failures in its
result instead of raising; infrastructure errors still propagate.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from docengine.domain.aggregator import DocumentAggregator, DocumentTotals
from docengine.domain.clock import Clock
from docengine.domain.journal import EntryStatus
from docengine.domain.ledger import BondRecord, LedgerBalanceTracker, SignFn, customer_sign
from docengine.domain.line_calculator import DocumentLineSpec, LineItemCalculator, LineTotals
from docengine.domain.money import ZERO
from docengine.exceptions import DocEngineError
from docengine.logging_config import get_logger
from docengine.services.journal_service import DEFAULT_VALIDATION_TIMEOUT_MS, JournalService
from docengine.services.sequence_allocator import (
    DEFAULT_ALLOCATION_TIMEOUT_MS,
    SequenceAllocator,
)

logger = get_logger("api")

# Actor recorded when the caller does not identify one
SYSTEM_ACTOR_ID = UUID(int=0)

_calculator = LineItemCalculator()
_aggregator = DocumentAggregator(_calculator)


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of a journal entry transition.

    On failure ``error_code`` is the ``code`` of the domain error and
    ``retryable`` tells the caller whether trying again can succeed.
    """

    success: bool
    entry_id: UUID
    target_status: str
    previous_status: str | None = None
    new_status: str | None = None
    error_code: str | None = None
    reason: str | None = None
    retryable: bool = False

    @classmethod
    def ok(
        cls, entry_id: UUID, previous: EntryStatus, new: EntryStatus
    ) -> TransitionResult:
        return cls(
            success=True,
            entry_id=entry_id,
            target_status=new.value,
            previous_status=previous.value,
            new_status=new.value,
        )

    @classmethod
    def failed(
        cls, entry_id: UUID, target: str, error: DocEngineError
    ) -> TransitionResult:
        return cls(
            success=False,
            entry_id=entry_id,
            target_status=target,
            previous_status=getattr(error, "entry_status", None),
            error_code=error.code,
            reason=str(error),
            retryable=error.retryable,
        )


def allocate_document_number(
    session: Session,
    document_type: str,
    *,
    actor_id: UUID = SYSTEM_ACTOR_ID,
    clock: Clock | None = None,
    timeout_ms: int = DEFAULT_ALLOCATION_TIMEOUT_MS,
) -> str:
    """
    Issue the next formatted number for ``document_type``.

    Raises:
        UnknownDocumentTypeError, DocumentTypeDisabledError,
        AllocationTimeoutError.
    """
    allocator = SequenceAllocator(session, actor_id, clock, timeout_ms=timeout_ms)
    return allocator.allocate(document_type).formatted


def compute_line_totals(line: DocumentLineSpec) -> LineTotals:
    """Unrounded totals for one line; call ``.rounded()`` to store or show."""
    return _calculator.compute_line(line)


def aggregate_document(
    lines: Sequence[DocumentLineSpec],
    discount: Decimal | int | str = ZERO,
) -> DocumentTotals:
    return _aggregator.aggregate(lines, discount)


def transition_journal_entry(
    session: Session,
    entry_id: UUID,
    target: EntryStatus | str,
    *,
    actor_id: UUID = SYSTEM_ACTOR_ID,
    clock: Clock | None = None,
    timeout_ms: int = DEFAULT_VALIDATION_TIMEOUT_MS,
) -> TransitionResult:
    """
    Move a journal entry to ``target``.  Never raises a DocEngineError.
    """
    target_value = str(getattr(target, "value", target))
    allocator = SequenceAllocator(session, actor_id, clock)
    service = JournalService(session, allocator, actor_id, clock, timeout_ms=timeout_ms)

    try:
        before, entry = service.apply_transition(entry_id, target)
    except DocEngineError as exc:
        logger.info(
            "journal_transition_failed",
            extra={
                "entry_id": str(entry_id),
                "to_status": target_value,
                "error_code": exc.code,
                "retryable": exc.retryable,
            },
        )
        return TransitionResult.failed(entry_id, target_value, exc)

    return TransitionResult.ok(entry_id, before, EntryStatus(entry.status))


def compute_ledger_balance(
    bonds: Iterable[BondRecord],
    sign_fn: SignFn = customer_sign,
) -> Decimal:
    """Net signed balance of the posted bonds in ``bonds``."""
    return LedgerBalanceTracker(sign_fn).net_balance(bonds)
