"""
Module: docengine.models.journal
Responsibility: ORM persistence for manual journal entries and their
    debit/credit lines.
Architecture position: Engine > Models.  Imports db/base.py and the
    lifecycle enums from domain/journal.py.

Invariants enforced:
    - Balance (sum debit == sum credit) is checked by JournalValidator on
      draft -> approved and again on approved -> posted; ``is_balanced`` is
      a read-side convenience only.
    - Immutability: ORM listeners in db/immutability.py reject UPDATE and
      DELETE of non-draft entries and their lines, except for the lifecycle
      columns written by a valid transition.
    - At most one reversing entry per entry (UNIQUE reversal_of_id).
    - Line sides are non-negative (CHECK constraints).

Failure modes:
    - IntegrityError on a duplicate sequence number or a second reversal.
    - ImmutabilityViolationError on edits after approval.

Audit relevance:
    Posted entries are corrected only by a reversing entry that points back
    at the original through reversal_of_id.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
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
from docengine.domain.journal import EntryStatus, EntryType, JournalLineSpec
from docengine.domain.money import ZERO

if TYPE_CHECKING:
    from docengine.models.account import Account


class JournalEntry(TrackedBase):
    """
    Journal entry header.

    Contract:
        Lines may be replaced only while status is DRAFT.  approved_at,
        posted_at and cancelled_at are stamped by JournalService from the
        injected clock.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint("sequence_period", "sequence_value", name="uq_journal_sequence"),
        UniqueConstraint("reversal_of_id", name="uq_journal_reversal_of"),
        Index("idx_journal_status", "status"),
        Index("idx_journal_entry_date", "entry_date"),
    )

    # Formatted number from the journal_entry sequence, e.g. "JE-00012"
    entry_number: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    sequence_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    sequence_period: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
    )

    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    entry_type: Mapped[EntryType] = mapped_column(
        String(20),
        nullable=False,
        default=EntryType.MANUAL,
    )

    reference_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    fiscal_year: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    status: Mapped[EntryStatus] = mapped_column(
        String(20),
        nullable=False,
        default=EntryStatus.DRAFT,
    )

    # Totals as of the last validated transition
    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # If this is a reversal, points to the original entry
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_number",
    )

    reversal_of: Mapped["JournalEntry | None"] = relationship(
        remote_side="JournalEntry.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == EntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == EntryStatus.POSTED

    @property
    def is_balanced(self) -> bool:
        """Read-side convenience; the write-time gate is JournalValidator."""
        debits = sum((line.debit_amount for line in self.lines), ZERO)
        credits = sum((line.credit_amount for line in self.lines), ZERO)
        return debits == credits

    def line_specs(self) -> list[JournalLineSpec]:
        """Lines as validated domain values, in line_number order."""
        return [line.to_spec() for line in self.lines]


class JournalLine(TrackedBase):
    """
    One debit or credit line of a journal entry.

    Contract:
        Exactly one of debit_amount / credit_amount is non-zero.  The shape
        is validated through JournalLineSpec before a row is built.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_number", name="uq_journal_line_number"),
        CheckConstraint("debit_amount >= 0", name="ck_journal_line_debit"),
        CheckConstraint("credit_amount >= 0", name="ck_journal_line_credit"),
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # Nullable so a draft can hold an incomplete line; approval rejects it
    account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
        default=ZERO,
    )

    entry: Mapped["JournalEntry"] = relationship(
        back_populates="lines",
    )

    account: Mapped["Account | None"] = relationship(
        back_populates="journal_lines",
    )

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.line_number} "
            f"Dr {self.debit_amount} Cr {self.credit_amount}>"
        )

    def to_spec(self) -> JournalLineSpec:
        return JournalLineSpec(
            account_id=self.account_id,
            debit_amount=self.debit_amount,
            credit_amount=self.credit_amount,
            description=self.description,
        )
