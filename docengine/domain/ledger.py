"""
Ledger -- signed balances over receipt and payment bonds.

Responsibility
--------------
Turn a collection of bonds into a party's net balance, or into the running
balance after each bond in date order.  Which bond type adds and which
subtracts is a parameter (the sign function), so customer and supplier
ledgers share one implementation.

Architecture position
---------------------
**Engine domain layer** -- pure, ZERO I/O.  LedgerSelector feeds it rows
already read from the database; nothing here mutates its input.

Invariants enforced
-------------------
* Only POSTED bonds contribute.  Draft and cancelled bonds are skipped.
* Ordering is total: bond date, then sequence value, then id.  Two
  iterations over the same input yield identical points.
* ``RunningBalance`` is lazy and restartable: each ``iter()`` starts again
  from zero over the same snapshot of bonds.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from docengine.domain.money import ZERO


class PartyKind(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class BondType(str, Enum):
    """Receipt = money in from the party; payment = money out to the party."""

    RECEIPT = "receipt"
    PAYMENT = "payment"


class BondStatus(str, Enum):
    DRAFT = "draft"
    POSTED = "posted"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHECK = "check"
    CARD = "card"


BOND_TRANSITIONS: dict[BondStatus, frozenset[BondStatus]] = {
    BondStatus.DRAFT: frozenset({BondStatus.POSTED, BondStatus.CANCELLED}),
    BondStatus.POSTED: frozenset(),
    BondStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class BondRecord:
    """Read-only view of a bond as the tracker sees it."""

    id: UUID
    bond_number: str
    bond_type: BondType
    bond_date: date
    amount: Decimal
    status: BondStatus
    sequence_value: int = 0

    @property
    def is_posted(self) -> bool:
        return BondStatus(self.status) == BondStatus.POSTED


SignFn = Callable[[BondType], int]


def customer_sign(bond_type: BondType | str) -> int:
    """Customer ledger: receipts +1, payments -1."""
    return 1 if BondType(bond_type) == BondType.RECEIPT else -1


def supplier_sign(bond_type: BondType | str) -> int:
    """Supplier ledger: the inverse of the customer convention."""
    return -customer_sign(bond_type)


@dataclass(frozen=True)
class BalancePoint:
    """Balance immediately after ``bond_number`` was applied."""

    date: date
    balance: Decimal
    bond_number: str


def _ordering_key(bond: BondRecord) -> tuple[date, int, str]:
    return (bond.bond_date, bond.sequence_value, str(bond.id))


class RunningBalance:
    """
    Lazy, finite, restartable sequence of BalancePoint.

    The posted bonds are snapshotted and sorted once at construction;
    points are produced on demand.
    """

    def __init__(self, bonds: Iterable[BondRecord], sign_fn: SignFn):
        self._bonds = tuple(
            sorted((b for b in bonds if b.is_posted), key=_ordering_key)
        )
        self._sign_fn = sign_fn

    def __iter__(self) -> Iterator[BalancePoint]:
        balance = ZERO
        for bond in self._bonds:
            balance += self._sign_fn(BondType(bond.bond_type)) * bond.amount
            yield BalancePoint(
                date=bond.bond_date,
                balance=balance,
                bond_number=bond.bond_number,
            )

    @property
    def bonds(self) -> tuple[BondRecord, ...]:
        """Posted bonds in the order points are produced."""
        return self._bonds

    def __len__(self) -> int:
        return len(self._bonds)

    @property
    def closing_balance(self) -> Decimal:
        closing = ZERO
        for point in self:
            closing = point.balance
        return closing


class LedgerBalanceTracker:
    """
    Net and running balances under one sign convention.

    Usage:
        tracker = LedgerBalanceTracker(customer_sign)
        tracker.net_balance(bonds)          # Decimal("300.00")
        for point in tracker.running_balance(bonds):
            ...
    """

    def __init__(self, sign_fn: SignFn = customer_sign):
        self._sign_fn = sign_fn

    @property
    def sign_fn(self) -> SignFn:
        return self._sign_fn

    def net_balance(self, bonds: Iterable[BondRecord]) -> Decimal:
        """Signed sum of posted bond amounts."""
        return sum(
            (
                self._sign_fn(BondType(b.bond_type)) * b.amount
                for b in bonds
                if b.is_posted
            ),
            ZERO,
        )

    def running_balance(self, bonds: Iterable[BondRecord]) -> RunningBalance:
        return RunningBalance(bonds, self._sign_fn)
