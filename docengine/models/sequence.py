"""
Module: docengine.models.sequence
Responsibility: ORM persistence for per-document-type numbering sequences and
    the append-only record of every number handed out.
Architecture position: Engine > Models.  Imports db/base.py and the
    ResetFrequency enum from domain/numbering.py.

Invariants enforced:
    - One SequenceConfig row per document_type (UNIQUE).
    - next_number >= 1 and number_length >= 1 (CHECK constraints).
    - (document_type, period_key, value) is UNIQUE in sequence_allocations,
      a database-level guard behind the atomic counter UPDATE.

Failure modes:
    - IntegrityError on a second config for the same document_type.
    - IntegrityError if a number were ever issued twice in one period.

Audit relevance:
    SequenceAllocation rows answer "who was given INV-00042, and when",
    including numbers whose documents were later abandoned (gaps).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from docengine.db.base import Base, TrackedBase, UUIDString
from docengine.domain.numbering import NumberFormat, ResetFrequency


class SequenceConfig(TrackedBase):
    """
    Numbering configuration and live counter for one document type.

    Contract:
        ``next_number`` is the value the NEXT allocation will issue within
        ``last_reset_period``.  It is mutated only by
        SequenceAllocator.allocate() in a single atomic UPDATE; presentation
        fields may be re-configured administratively.  Rows are never
        deleted, only deactivated.
    """

    __tablename__ = "sequence_configs"

    __table_args__ = (
        UniqueConstraint("document_type", name="uq_sequence_document_type"),
        CheckConstraint("next_number >= 1", name="ck_sequence_next_number"),
        CheckConstraint("number_length >= 1", name="ck_sequence_number_length"),
    )

    # e.g. "sales_invoice", "customer_bond"
    document_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    prefix: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="",
    )

    separator: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
        default="",
    )

    # Zero-pad width of the numeric part
    number_length: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=5,
    )

    suffix: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="",
    )

    next_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=1,
    )

    reset_frequency: Mapped[ResetFrequency] = mapped_column(
        String(10),
        nullable=False,
        default=ResetFrequency.NEVER,
    )

    # Period key already consumed; NULL until the first allocation
    last_reset_period: Mapped[str | None] = mapped_column(
        String(10),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    def __repr__(self) -> str:
        return f"<SequenceConfig {self.document_type} next={self.next_number}>"

    @property
    def number_format(self) -> NumberFormat:
        return NumberFormat(
            prefix=self.prefix,
            separator=self.separator,
            number_length=self.number_length,
            suffix=self.suffix,
        )


class SequenceAllocation(Base):
    """
    One issued number.  Append-only; never updated or deleted.
    """

    __tablename__ = "sequence_allocations"

    __table_args__ = (
        UniqueConstraint(
            "document_type",
            "period_key",
            "value",
            name="uq_sequence_allocation_value",
        ),
        Index("idx_sequence_allocation_type", "document_type"),
    )

    document_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    period_key: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    formatted: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    allocated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    allocated_by_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<SequenceAllocation {self.formatted}>"
