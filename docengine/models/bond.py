"""
Module: docengine.models.bond
Responsibility: ORM persistence for customer and supplier receipt/payment
    bonds.
Architecture position: Engine > Models.  Imports db/base.py and the enums in
    domain/ledger.py.

Invariants enforced:
    - amount > 0 (CHECK); direction comes from bond_type, never the sign.
    - Only posted bonds feed ledger balances.
    - Posted bonds are frozen (db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from docengine.db.base import TrackedBase, UUIDString
from docengine.domain.ledger import (
    BondRecord,
    BondStatus,
    BondType,
    PartyKind,
    PaymentMethod,
)


class Bond(TrackedBase):
    """
    Receipt (money in) or payment (money out) against one party.
    """

    __tablename__ = "bonds"

    __table_args__ = (
        UniqueConstraint(
            "party_kind", "sequence_period", "sequence_value", name="uq_bond_sequence"
        ),
        CheckConstraint("amount > 0", name="ck_bond_amount_positive"),
        Index("idx_bond_party", "party_kind", "party_id"),
        Index("idx_bond_status", "status"),
    )

    bond_number: Mapped[str] = mapped_column(
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

    party_kind: Mapped[PartyKind] = mapped_column(
        String(20),
        nullable=False,
    )

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    bond_type: Mapped[BondType] = mapped_column(
        String(20),
        nullable=False,
    )

    bond_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        nullable=False,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    # Cheque or transfer reference
    reference_number: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    bank_name: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(4000),
        nullable=True,
    )

    status: Mapped[BondStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BondStatus.DRAFT,
    )

    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Bond {self.bond_number} {self.bond_type} {self.amount}>"

    def to_record(self) -> BondRecord:
        return BondRecord(
            id=self.id,
            bond_number=self.bond_number,
            bond_type=BondType(self.bond_type),
            bond_date=self.bond_date,
            amount=self.amount,
            status=BondStatus(self.status),
            sequence_value=self.sequence_value,
        )
