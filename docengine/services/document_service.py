"""
DocumentService -- quotes, invoices and credit notes.

Responsibility:
    Creates financial documents with a number from SequenceAllocator and
    totals from LineItemCalculator / DocumentAggregator, edits drafts,
    issues and cancels them, and compensates issued invoices with credit
    notes.

Architecture position:
    Engine > Services -- imperative shell over domain/line_calculator.py and
    domain/aggregator.py.

Invariants enforced:
    - Stored totals always equal a fresh aggregation of the stored lines and
      document discount; they are rewritten together, never edited alone.
    - Lines are validated and totals computed BEFORE a number is allocated,
      so invalid input never consumes a number.
    - Only drafts change.  An issued document is corrected by a credit note
      that references it (``compensates_id``).

Failure modes:
    - CalculationError subclasses for invalid lines or a negative total.
    - DocumentNotFoundError, DocumentFinalizedError,
      InvalidStateTransitionError.
    - Any allocator error (UnknownDocumentTypeError, AllocationTimeoutError).
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from docengine.domain.aggregator import DocumentAggregator, DocumentTotals
from docengine.domain.clock import Clock
from docengine.domain.document import (
    COMPENSABLE_KINDS,
    DOCUMENT_TRANSITIONS,
    DocumentKind,
    DocumentStatus,
)
from docengine.domain.line_calculator import DocumentLineSpec
from docengine.domain.money import ZERO, to_decimal
from docengine.exceptions import (
    DocumentFinalizedError,
    DocumentNotFoundError,
    InvalidAmountError,
    InvalidStateTransitionError,
)
from docengine.logging_config import LogContext, get_logger
from docengine.models.document import DocumentLine, FinancialDocument
from docengine.services.base import BaseService
from docengine.services.sequence_allocator import SequenceAllocator

logger = get_logger("services.document")


class DocumentService(BaseService[FinancialDocument]):
    """
    Write workflows for FinancialDocument.

    Usage:
        with session_scope() as session:
            allocator = SequenceAllocator(session, actor_id, clock)
            service = DocumentService(session, allocator, actor_id, clock)
            invoice = service.create(
                DocumentKind.SALES_INVOICE,
                [DocumentLineSpec(Decimal("3"), Decimal("100"), Decimal("10"), Decimal("15"))],
                issue_date=date(2026, 3, 1),
            )
    """

    def __init__(
        self,
        session: Session,
        allocator: SequenceAllocator,
        actor_id: UUID,
        clock: Clock | None = None,
        aggregator: DocumentAggregator | None = None,
    ):
        super().__init__(session, actor_id, clock or allocator.clock)
        self.allocator = allocator
        self.aggregator = aggregator or DocumentAggregator()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        kind: DocumentKind | str,
        lines: Sequence[DocumentLineSpec],
        *,
        issue_date: date | None = None,
        party_id: UUID | None = None,
        due_date: date | None = None,
        discount_amount: Decimal | int | str = ZERO,
        notes: str | None = None,
        compensates_id: UUID | None = None,
    ) -> FinancialDocument:
        """
        Create a draft document.  The number is drawn from the sequence
        whose document type equals ``kind``.

        Postconditions:
            - Document, lines and SequenceAllocation are flushed in the
              caller's transaction.
        """
        kind = DocumentKind(kind)
        discount = self._discount(discount_amount)
        totals = self.aggregator.aggregate(lines, discount)

        number = self.allocator.allocate(kind.value)

        document = FinancialDocument(
            kind=kind.value,
            document_number=number.formatted,
            sequence_value=number.value,
            sequence_period=number.period_key,
            party_id=party_id,
            issue_date=issue_date or self.clock.today(),
            due_date=due_date,
            notes=notes,
            status=DocumentStatus.DRAFT.value,
            compensates_id=compensates_id,
            created_by_id=self.actor_id,
        )
        self._apply_totals(document, totals)
        document.lines = self._line_rows(lines, totals)
        self.session.add(document)
        self.session.flush()

        with LogContext.bind(document_type=kind.value, document_id=str(document.id)):
            logger.info(
                "document_created",
                extra={
                    "document_number": document.document_number,
                    "line_count": len(lines),
                    "total_amount": totals.total_amount,
                },
            )
        return document

    # ------------------------------------------------------------------
    # Draft edits
    # ------------------------------------------------------------------

    def replace_lines(
        self,
        document_id: UUID,
        lines: Sequence[DocumentLineSpec],
    ) -> FinancialDocument:
        document = self._load_draft(document_id)
        totals = self.aggregator.aggregate(lines, document.discount_amount)

        # Old rows go first so line numbers can be reused
        document.lines.clear()
        self.session.flush()

        document.lines.extend(self._line_rows(lines, totals))
        self._apply_totals(document, totals)
        document.updated_by_id = self.actor_id
        self.session.flush()

        logger.info(
            "document_lines_replaced",
            extra={
                "document_id": str(document.id),
                "line_count": len(lines),
                "total_amount": totals.total_amount,
            },
        )
        return document

    def set_discount(
        self,
        document_id: UUID,
        discount_amount: Decimal | int | str,
    ) -> FinancialDocument:
        document = self._load_draft(document_id)
        discount = self._discount(discount_amount)
        totals = self.aggregator.aggregate(document.line_specs(), discount)

        self._apply_totals(document, totals)
        document.updated_by_id = self.actor_id
        self.session.flush()

        logger.info(
            "document_discount_set",
            extra={
                "document_id": str(document.id),
                "discount_amount": totals.document_discount,
                "total_amount": totals.total_amount,
            },
        )
        return document

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def issue(self, document_id: UUID) -> FinancialDocument:
        """
        Freeze a draft.  Totals are recomputed from the stored lines one
        last time so the frozen figures can never be stale.
        """
        document = self.get(document_id)
        self._check_transition(document, DocumentStatus.ISSUED)
        if not document.lines:
            raise InvalidAmountError("lines", "0", "a document needs at least one line")

        totals = self.aggregator.aggregate(document.line_specs(), document.discount_amount)
        self._apply_totals(document, totals)
        document.status = DocumentStatus.ISSUED.value
        document.issued_at = self.clock.now()
        document.updated_by_id = self.actor_id
        self.session.flush()

        logger.info(
            "document_issued",
            extra={
                "document_id": str(document.id),
                "document_number": document.document_number,
                "total_amount": totals.total_amount,
                "totals_fingerprint": totals.fingerprint(),
            },
        )
        return document

    def cancel(self, document_id: UUID) -> FinancialDocument:
        """Cancel a draft.  Its number stays consumed (a documented gap)."""
        document = self.get(document_id)
        self._check_transition(document, DocumentStatus.CANCELLED)
        document.status = DocumentStatus.CANCELLED.value
        document.cancelled_at = self.clock.now()
        document.updated_by_id = self.actor_id
        self.session.flush()

        logger.info(
            "document_cancelled",
            extra={
                "document_id": str(document.id),
                "document_number": document.document_number,
            },
        )
        return document

    def compensate(
        self,
        document_id: UUID,
        *,
        issue_date: date | None = None,
        notes: str | None = None,
    ) -> FinancialDocument:
        """
        Create a draft credit note mirroring an issued invoice.

        The credit note copies the invoice's lines and document discount
        and points back at it through ``compensates_id``.
        """
        original = self.get(document_id)
        kind = DocumentKind(original.kind)
        if DocumentStatus(original.status) != DocumentStatus.ISSUED:
            raise InvalidStateTransitionError(
                "FinancialDocument", DocumentStatus(original.status).value, "compensated"
            )
        if kind not in COMPENSABLE_KINDS:
            raise InvalidStateTransitionError("FinancialDocument", kind.value, "compensated")

        credit_note = self.create(
            DocumentKind.CREDIT_NOTE,
            original.line_specs(),
            issue_date=issue_date,
            party_id=original.party_id,
            discount_amount=original.discount_amount,
            notes=notes or f"Compensates {original.document_number}",
            compensates_id=original.id,
        )

        logger.info(
            "document_compensated",
            extra={
                "document_id": str(original.id),
                "document_number": original.document_number,
                "credit_note_id": str(credit_note.id),
                "credit_note_number": credit_note.document_number,
            },
        )
        return credit_note

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, document_id: UUID) -> FinancialDocument:
        document = self.session.get(FinancialDocument, document_id)
        if document is None:
            raise DocumentNotFoundError(str(document_id))
        return document

    def totals(self, document_id: UUID) -> DocumentTotals:
        """Recompute totals from the stored lines without mutating anything."""
        document = self.get(document_id)
        return self.aggregator.aggregate(document.line_specs(), document.discount_amount)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_draft(self, document_id: UUID) -> FinancialDocument:
        document = self.get(document_id)
        if DocumentStatus(document.status) != DocumentStatus.DRAFT:
            raise DocumentFinalizedError(str(document.id), DocumentStatus(document.status).value)
        return document

    @staticmethod
    def _check_transition(document: FinancialDocument, target: DocumentStatus) -> None:
        current = DocumentStatus(document.status)
        if target not in DOCUMENT_TRANSITIONS[current]:
            raise InvalidStateTransitionError("FinancialDocument", current.value, target.value)

    @staticmethod
    def _discount(discount_amount) -> Decimal:
        try:
            return to_decimal(discount_amount, "discount_amount")
        except ValueError as exc:
            raise InvalidAmountError("discount_amount", str(discount_amount), str(exc)) from exc

    @staticmethod
    def _apply_totals(document: FinancialDocument, totals: DocumentTotals) -> None:
        document.subtotal = totals.subtotal
        document.line_discount_total = totals.line_discount_total
        document.discount_amount = totals.document_discount
        document.tax_amount = totals.tax_total
        document.total_amount = totals.total_amount
        document.totals_fingerprint = totals.fingerprint()

    def _line_rows(
        self,
        lines: Sequence[DocumentLineSpec],
        totals: DocumentTotals,
    ) -> list[DocumentLine]:
        return [
            DocumentLine(
                line_number=number,
                description=spec.description,
                quantity=spec.quantity,
                unit_price=spec.unit_price,
                discount_rate=spec.discount_rate,
                tax_rate=spec.tax_rate,
                discount_amount=line.discount_amount,
                taxable_base=line.taxable_base,
                tax_amount=line.tax_amount,
                line_total=line.line_total,
                created_by_id=self.actor_id,
            )
            for number, (spec, line) in enumerate(zip(lines, totals.lines), start=1)
        ]
