"""
Journal domain -- double-entry line rules and the entry lifecycle.

Responsibility
--------------
Pure validation for manual journal entries: line shape, balance, account
references, and the draft -> approved -> posted / cancelled state machine.
JournalService calls into this module before every persisted transition.

Architecture position
---------------------
**Engine domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* A line carries exactly one non-zero side; neither side is negative and
  neither has digits beyond the cent.
* Sum of debits equals sum of credits, compared with exact Decimal equality.
  No tolerance: a one-cent difference is unbalanced.
* ``JOURNAL_TRANSITIONS`` defines the only valid status changes.  Posted
  and cancelled are terminal.
* Balance is re-checked on BOTH forward edges (draft -> approved and
  approved -> posted), never only once.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from docengine.domain.money import ZERO, has_cent_precision, to_decimal
from docengine.exceptions import (
    EmptyEntryError,
    InvalidLineAmountError,
    InvalidStateTransitionError,
    MissingAccountError,
    UnbalancedEntryError,
)


class EntryStatus(str, Enum):
    """Lifecycle states of a journal entry."""

    DRAFT = "draft"
    APPROVED = "approved"
    POSTED = "posted"
    CANCELLED = "cancelled"


class EntryType(str, Enum):
    """How the entry came to exist."""

    MANUAL = "manual"
    REVERSAL = "reversal"


JOURNAL_TRANSITIONS: dict[EntryStatus, frozenset[EntryStatus]] = {
    EntryStatus.DRAFT: frozenset({
        EntryStatus.APPROVED,
        EntryStatus.CANCELLED,
    }),
    EntryStatus.APPROVED: frozenset({
        EntryStatus.POSTED,
        EntryStatus.CANCELLED,
    }),
    EntryStatus.POSTED: frozenset(),
    EntryStatus.CANCELLED: frozenset(),
}

# Target states whose edge must see a balanced, fully-referenced entry
BALANCE_REQUIRED_TARGETS: frozenset[EntryStatus] = frozenset({
    EntryStatus.APPROVED,
    EntryStatus.POSTED,
})


@dataclass(frozen=True)
class JournalLineSpec:
    """
    One debit or credit line, validated at construction.

    Raises:
        InvalidLineAmountError: both sides zero, both non-zero, a negative
            side, or sub-cent precision.
    """

    account_id: UUID | None
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        debit = to_decimal(self.debit_amount, "debit_amount")
        credit = to_decimal(self.credit_amount, "credit_amount")
        object.__setattr__(self, "debit_amount", debit)
        object.__setattr__(self, "credit_amount", credit)

        if debit < ZERO or credit < ZERO:
            raise InvalidLineAmountError(
                str(debit), str(credit), "amounts must not be negative"
            )
        if (debit == ZERO) == (credit == ZERO):
            raise InvalidLineAmountError(
                str(debit), str(credit), "exactly one side must be non-zero"
            )
        if not (has_cent_precision(debit) and has_cent_precision(credit)):
            raise InvalidLineAmountError(
                str(debit), str(credit), "amounts are limited to 2 decimal places"
            )

    @property
    def is_debit(self) -> bool:
        return self.debit_amount > ZERO

    def swapped(self) -> JournalLineSpec:
        """Mirror image of this line, used for reversing entries."""
        return JournalLineSpec(
            account_id=self.account_id,
            debit_amount=self.credit_amount,
            credit_amount=self.debit_amount,
            description=self.description,
        )


@dataclass(frozen=True)
class AccountRef:
    """The part of an account the validator needs."""

    id: UUID
    is_active: bool = True


@dataclass(frozen=True)
class BalanceSummary:
    """Totals of a balanced line set."""

    total_debit: Decimal
    total_credit: Decimal
    line_count: int


def entry_totals(lines: Iterable[JournalLineSpec]) -> tuple[Decimal, Decimal]:
    """Return (sum of debits, sum of credits)."""
    debits = ZERO
    credits = ZERO
    for line in lines:
        debits += line.debit_amount
        credits += line.credit_amount
    return debits, credits


class JournalValidator:
    """
    Validates journal lines and lifecycle edges.

    Contract:
        Stateless.  Every method either returns normally or raises a typed
        JournalError; none of them mutate their inputs.
    """

    def validate_balance(self, lines: Sequence[JournalLineSpec]) -> BalanceSummary:
        """
        Raises:
            EmptyEntryError: No lines.
            UnbalancedEntryError: Debits != credits.
        """
        if not lines:
            raise EmptyEntryError()
        debits, credits = entry_totals(lines)
        if debits != credits:
            raise UnbalancedEntryError(str(debits), str(credits))
        return BalanceSummary(
            total_debit=debits,
            total_credit=credits,
            line_count=len(lines),
        )

    def require_account(
        self,
        line: JournalLineSpec,
        accounts: Mapping[UUID, AccountRef],
    ) -> AccountRef:
        """
        Resolve the account a line references.

        Raises:
            MissingAccountError: No account id, unknown id, or inactive.
        """
        if line.account_id is None:
            raise MissingAccountError(None, "line has no account")
        account = accounts.get(line.account_id)
        if account is None:
            raise MissingAccountError(str(line.account_id), "account does not exist")
        if not account.is_active:
            raise MissingAccountError(str(line.account_id), "account is inactive")
        return account

    def check_transition(
        self,
        current: EntryStatus | str,
        target: EntryStatus | str,
    ) -> None:
        """
        Raises:
            InvalidStateTransitionError: ``target`` is not an edge from
                ``current``.  Fatal to the call; never retried.
        """
        try:
            current = EntryStatus(current)
            target = EntryStatus(target)
        except ValueError:
            raise InvalidStateTransitionError(
                "JournalEntry", str(current), str(target)
            ) from None
        if target not in JOURNAL_TRANSITIONS[current]:
            raise InvalidStateTransitionError(
                "JournalEntry", current.value, target.value
            )

    def validate_lines(
        self,
        lines: Sequence[JournalLineSpec],
        accounts: Mapping[UUID, AccountRef],
    ) -> BalanceSummary:
        """Account references first, then balance."""
        if not lines:
            raise EmptyEntryError()
        for line in lines:
            self.require_account(line, accounts)
        return self.validate_balance(lines)

    def validate_for(
        self,
        target: EntryStatus | str,
        lines: Sequence[JournalLineSpec],
        accounts: Mapping[UUID, AccountRef],
        current: EntryStatus | str | None = None,
    ) -> BalanceSummary | None:
        """
        Gate for moving an entry into ``target``.

        When ``current`` is given the edge itself is checked first.  Returns
        the balance summary on edges that require balance, None for
        cancellation.
        """
        if current is not None:
            self.check_transition(current, target)
        if EntryStatus(target) in BALANCE_REQUIRED_TARGETS:
            return self.validate_lines(lines, accounts)
        return None
