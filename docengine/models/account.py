"""
Module: docengine.models.account
Responsibility: ORM persistence for the chart of accounts referenced by
    journal lines.
Architecture position: Engine > Models.  May import from db/base.py only.

Failure modes:
    - IntegrityError on a duplicate account code.
    - MissingAccountError (raised by JournalValidator, not here) when a line
      targets an unknown or inactive account.
"""

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docengine.db.base import TrackedBase

if TYPE_CHECKING:
    from docengine.models.journal import JournalLine


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class Account(TrackedBase):
    """
    Chart-of-accounts row.

    Contract:
        Accounts are deactivated, never deleted, once journal lines
        reference them.  Inactive accounts cannot be used by entries moving
        to approved or posted.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
    )

    code: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    account_type: Mapped[AccountType] = mapped_column(
        String(20),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"
