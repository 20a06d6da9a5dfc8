"""
Module: docengine.models.document
Responsibility: ORM persistence for quotes, sales invoices, purchase
    invoices and credit notes, and their lines.
Architecture position: Engine > Models.  Imports db/base.py and the enums in
    domain/document.py.

Invariants enforced:
    - Stored totals are rounded results of DocumentAggregator and satisfy
      total_amount = subtotal - line_discount_total - discount_amount
      + tax_amount, total_amount >= 0 (CHECK).
    - Line derived amounts are never edited independently; DocumentService
      rewrites them together with their inputs.
    - Once issued, header totals and lines are frozen (db/immutability.py).

Failure modes:
    - IntegrityError if a (kind, period, value) number were stored twice.
    - ImmutabilityViolationError on edits to an issued document.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docengine.db.base import TrackedBase, UUIDString
from docengine.domain.document import DocumentKind, DocumentStatus
from docengine.domain.line_calculator import DocumentLineSpec
from docengine.domain.money import ZERO


class FinancialDocument(TrackedBase):
    """
    Header of a quote, invoice or credit note.

    Contract:
        ``sequence_value`` is the raw integer from SequenceAllocator and
        ``document_number`` its formatted form.  A credit note points at the
        document it compensates through ``compensates_id``.
    """

    __tablename__ = "financial_documents"

    __table_args__ = (
        UniqueConstraint(
            "kind", "sequence_period", "sequence_value", name="uq_document_sequence"
        ),
        CheckConstraint("total_amount >= 0", name="ck_document_total_non_negative"),
        CheckConstraint("discount_amount >= 0", name="ck_document_discount_non_negative"),
        Index("idx_document_kind_status", "kind", "status"),
        Index("idx_document_party", "party_id"),
    )

    kind: Mapped[DocumentKind] = mapped_column(
        String(30),
        nullable=False,
    )

    document_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    sequence_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    # Reset period the number was issued in ("all", "2026", "2026-03")
    sequence_period: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    # Customer for quotes and sales invoices, supplier for purchase invoices
    party_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    issue_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    due_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    status: Mapped[DocumentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=DocumentStatus.DRAFT,
    )

    # Document-level discount, applied after line discounts
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    line_discount_total: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    # SHA-256 of the canonical totals, see DocumentTotals.fingerprint()
    totals_fingerprint: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    compensates_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("financial_documents.id"),
        nullable=True,
    )

    lines: Mapped[list["DocumentLine"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentLine.line_number",
    )

    compensates: Mapped["FinancialDocument | None"] = relationship(
        remote_side="FinancialDocument.id",
        foreign_keys=[compensates_id],
    )

    def __repr__(self) -> str:
        return f"<FinancialDocument {self.document_number} {self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == DocumentStatus.DRAFT

    def line_specs(self) -> list[DocumentLineSpec]:
        return [line.to_spec() for line in self.lines]


class DocumentLine(TrackedBase):
    """
    One quote/invoice line.

    Inputs (quantity, unit_price, rates) are the truth; the amount columns
    are LineItemCalculator output rounded for storage.
    """

    __tablename__ = "document_lines"

    __table_args__ = (
        UniqueConstraint("document_id", "line_number", name="uq_document_line_number"),
        CheckConstraint("quantity > 0", name="ck_document_line_quantity"),
        CheckConstraint("unit_price >= 0", name="ck_document_line_unit_price"),
        Index("idx_document_line_document", "document_id"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("financial_documents.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    quantity: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    discount_rate: Mapped[Decimal] = mapped_column(
        Numeric(9, 4),
        nullable=False,
        default=ZERO,
    )

    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(9, 4),
        nullable=False,
        default=ZERO,
    )

    # Derived amounts (rounded)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    taxable_base: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    line_total: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    document: Mapped["FinancialDocument"] = relationship(
        back_populates="lines",
    )

    def __repr__(self) -> str:
        return f"<DocumentLine {self.line_number} total={self.line_total}>"

    def to_spec(self) -> DocumentLineSpec:
        return DocumentLineSpec(
            quantity=self.quantity,
            unit_price=self.unit_price,
            discount_rate=self.discount_rate,
            tax_rate=self.tax_rate,
            description=self.description,
        )
