"""
Module: docengine.selectors.ledger_selector
Responsibility: Read-only party ledgers -- net balance, running balance and
    statement of a customer or supplier, derived from posted bonds.
Architecture position: Engine > Selectors.  Reads models/bond.py and hands
    the rows to domain/ledger.py (LedgerBalanceTracker).

Invariants enforced:
    - Balances are always derived from bonds; none is stored.
    - Only posted bonds are read.  The tracker filters again, so passing
      it unfiltered data can never count a draft.
    - Customer ledgers use customer_sign, supplier ledgers supplier_sign.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from docengine.domain.ledger import (
    BondRecord,
    BondStatus,
    BondType,
    LedgerBalanceTracker,
    PartyKind,
    RunningBalance,
    SignFn,
    customer_sign,
    supplier_sign,
)
from docengine.domain.money import round_money
from docengine.models.bond import Bond
from docengine.selectors.base import BaseSelector

_SIGN_BY_PARTY: dict[PartyKind, SignFn] = {
    PartyKind.CUSTOMER: customer_sign,
    PartyKind.SUPPLIER: supplier_sign,
}


@dataclass(frozen=True)
class StatementLine:
    """One bond on a party statement."""

    bond_number: str
    bond_date: date
    bond_type: BondType
    amount: Decimal
    signed_amount: Decimal
    balance: Decimal


@dataclass(frozen=True)
class LedgerStatement:
    """Chronological statement of a party's posted bonds."""

    party_kind: PartyKind
    party_id: UUID
    as_of: date | None
    lines: tuple[StatementLine, ...]
    closing_balance: Decimal

    @property
    def line_count(self) -> int:
        return len(self.lines)


class LedgerSelector(BaseSelector[Bond]):
    """
    Party balances over posted bonds.

    Usage:
        selector = LedgerSelector(session)
        balance = selector.net_balance(PartyKind.CUSTOMER, customer_id)
    """

    def posted_bonds(
        self,
        party_kind: PartyKind | str,
        party_id: UUID,
        as_of: date | None = None,
    ) -> list[BondRecord]:
        party_kind = PartyKind(party_kind)
        stmt = (
            select(Bond)
            .where(Bond.party_kind == party_kind.value)
            .where(Bond.party_id == party_id)
            .where(Bond.status == BondStatus.POSTED.value)
            .order_by(Bond.bond_date, Bond.sequence_value, Bond.id)
        )
        if as_of is not None:
            stmt = stmt.where(Bond.bond_date <= as_of)
        return [bond.to_record() for bond in self.session.execute(stmt).scalars()]

    def tracker_for(self, party_kind: PartyKind | str) -> LedgerBalanceTracker:
        return LedgerBalanceTracker(_SIGN_BY_PARTY[PartyKind(party_kind)])

    def net_balance(
        self,
        party_kind: PartyKind | str,
        party_id: UUID,
        as_of: date | None = None,
    ) -> Decimal:
        bonds = self.posted_bonds(party_kind, party_id, as_of)
        return round_money(self.tracker_for(party_kind).net_balance(bonds))

    def running_balance(
        self,
        party_kind: PartyKind | str,
        party_id: UUID,
        as_of: date | None = None,
    ) -> RunningBalance:
        bonds = self.posted_bonds(party_kind, party_id, as_of)
        return self.tracker_for(party_kind).running_balance(bonds)

    def statement(
        self,
        party_kind: PartyKind | str,
        party_id: UUID,
        as_of: date | None = None,
    ) -> LedgerStatement:
        party_kind = PartyKind(party_kind)
        tracker = self.tracker_for(party_kind)
        running = tracker.running_balance(self.posted_bonds(party_kind, party_id, as_of))

        lines = []
        for bond, point in zip(running.bonds, running):
            lines.append(
                StatementLine(
                    bond_number=bond.bond_number,
                    bond_date=bond.bond_date,
                    bond_type=bond.bond_type,
                    amount=round_money(bond.amount),
                    signed_amount=round_money(tracker.sign_fn(bond.bond_type) * bond.amount),
                    balance=round_money(point.balance),
                )
            )

        closing = lines[-1].balance if lines else round_money(Decimal("0"))
        return LedgerStatement(
            party_kind=party_kind,
            party_id=party_id,
            as_of=as_of,
            lines=tuple(lines),
            closing_balance=closing,
        )
