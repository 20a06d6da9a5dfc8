"""
BondService -- customer and supplier receipt/payment bonds.

Responsibility:
    Creates numbered draft bonds and posts or cancels them.  Customer bonds
    draw from the ``customer_bond`` sequence, supplier bonds from
    ``supplier_bond``.

Architecture position:
    Engine > Services.  Posted bonds are what LedgerSelector feeds into
    LedgerBalanceTracker.

Invariants enforced:
    - amount > 0 at cent precision; direction comes from bond_type.
    - draft -> posted and draft -> cancelled only (BOND_TRANSITIONS).
    - Posted bonds are frozen (db/immutability.py).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from docengine.domain.clock import Clock
from docengine.domain.ledger import (
    BOND_TRANSITIONS,
    BondStatus,
    BondType,
    PartyKind,
    PaymentMethod,
)
from docengine.domain.money import ZERO, has_cent_precision, to_decimal
from docengine.exceptions import (
    BondNotFoundError,
    InvalidAmountError,
    InvalidStateTransitionError,
)
from docengine.logging_config import get_logger
from docengine.models.bond import Bond
from docengine.services.base import BaseService
from docengine.services.sequence_allocator import SequenceAllocator

logger = get_logger("services.bond")

BOND_DOCUMENT_TYPES: dict[PartyKind, str] = {
    PartyKind.CUSTOMER: "customer_bond",
    PartyKind.SUPPLIER: "supplier_bond",
}


class BondService(BaseService[Bond]):
    """Write workflows for Bond."""

    def __init__(
        self,
        session: Session,
        allocator: SequenceAllocator,
        actor_id: UUID,
        clock: Clock | None = None,
    ):
        super().__init__(session, actor_id, clock or allocator.clock)
        self.allocator = allocator

    def create_bond(
        self,
        party_kind: PartyKind | str,
        party_id: UUID,
        bond_type: BondType | str,
        amount: Decimal | int | str,
        *,
        bond_date: date | None = None,
        payment_method: PaymentMethod | str = PaymentMethod.CASH,
        reference_number: str | None = None,
        bank_name: str | None = None,
        notes: str | None = None,
    ) -> Bond:
        """
        Raises:
            InvalidAmountError: amount not positive or finer than a cent.
        """
        party_kind = PartyKind(party_kind)
        bond_type = BondType(bond_type)
        payment_method = PaymentMethod(payment_method)
        amount = self._amount(amount)

        number = self.allocator.allocate(BOND_DOCUMENT_TYPES[party_kind])

        bond = Bond(
            bond_number=number.formatted,
            sequence_value=number.value,
            sequence_period=number.period_key,
            party_kind=party_kind.value,
            party_id=party_id,
            bond_type=bond_type.value,
            bond_date=bond_date or self.clock.today(),
            amount=amount,
            payment_method=payment_method.value,
            reference_number=reference_number,
            bank_name=bank_name,
            notes=notes,
            status=BondStatus.DRAFT.value,
            created_by_id=self.actor_id,
        )
        self.session.add(bond)
        self.session.flush()

        logger.info(
            "bond_created",
            extra={
                "bond_id": str(bond.id),
                "bond_number": bond.bond_number,
                "party_kind": party_kind.value,
                "bond_type": bond_type.value,
                "amount": amount,
            },
        )
        return bond

    def post(self, bond_id: UUID) -> Bond:
        bond = self._transition(bond_id, BondStatus.POSTED)
        bond.posted_at = self.clock.now()
        self.session.flush()
        logger.info(
            "bond_posted",
            extra={"bond_id": str(bond.id), "bond_number": bond.bond_number},
        )
        return bond

    def cancel(self, bond_id: UUID) -> Bond:
        bond = self._transition(bond_id, BondStatus.CANCELLED)
        bond.cancelled_at = self.clock.now()
        self.session.flush()
        logger.info(
            "bond_cancelled",
            extra={"bond_id": str(bond.id), "bond_number": bond.bond_number},
        )
        return bond

    def get(self, bond_id: UUID) -> Bond:
        bond = self.session.get(Bond, bond_id)
        if bond is None:
            raise BondNotFoundError(str(bond_id))
        return bond

    def _transition(self, bond_id: UUID, target: BondStatus) -> Bond:
        bond = self.get(bond_id)
        current = BondStatus(bond.status)
        if target not in BOND_TRANSITIONS[current]:
            raise InvalidStateTransitionError("Bond", current.value, target.value)
        bond.status = target.value
        bond.updated_by_id = self.actor_id
        return bond

    @staticmethod
    def _amount(amount) -> Decimal:
        try:
            value = to_decimal(amount, "amount")
        except ValueError as exc:
            raise InvalidAmountError("amount", str(amount), str(exc)) from exc
        if value <= ZERO:
            raise InvalidAmountError("amount", str(value), "must be greater than zero")
        if not has_cent_precision(value):
            raise InvalidAmountError("amount", str(value), "limited to 2 decimal places")
        return value
