"""
JournalService -- manual journal entries and their lifecycle.

Responsibility:
    Creates numbered draft entries, replaces draft lines, drives the
    draft -> approved -> posted / cancelled state machine, and reverses
    posted entries.

Architecture position:
    Engine > Services -- imperative shell over domain/journal.py
    (JournalValidator).

Invariants enforced:
    - Every transition runs under a row lock on the entry
      (``SELECT ... FOR UPDATE``), so two concurrent callers cannot both
      move the same entry.
    - Balance and account references are re-validated on draft -> approved
      AND on approved -> posted, against the lines as stored at that moment.
    - Lines change only while the entry is a draft; afterwards the ORM
      listeners in db/immutability.py reject edits as well.
    - A posted entry is corrected by exactly one reversing entry.

Failure modes:
    - EntryNotFoundError, InvalidStateTransitionError,
      UnbalancedEntryError, MissingAccountError / EmptyEntryError.
    - ValidationTimeoutError when the entry lock is not obtained in time.
    - EntryNotPostedError / EntryAlreadyReversedError on reversal.
"""

from collections.abc import Iterable, Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from docengine.db.locking import apply_lock_timeout, claim_sqlite_write_lock, is_lock_timeout
from docengine.domain.clock import Clock
from docengine.domain.journal import (
    AccountRef,
    EntryStatus,
    EntryType,
    JournalLineSpec,
    JournalValidator,
)
from docengine.exceptions import (
    EntryAlreadyReversedError,
    EntryNotFoundError,
    EntryNotPostedError,
    ImmutabilityViolationError,
    JournalError,
    MissingAccountError,
    ValidationTimeoutError,
)
from docengine.logging_config import LogContext, get_logger
from docengine.models.account import Account
from docengine.models.journal import JournalEntry, JournalLine
from docengine.services.base import BaseService
from docengine.services.sequence_allocator import SequenceAllocator

logger = get_logger("services.journal")

JOURNAL_DOCUMENT_TYPE = "journal_entry"
DEFAULT_VALIDATION_TIMEOUT_MS = 5000


class JournalService(BaseService[JournalEntry]):
    """
    Write workflows for JournalEntry.

    Contract:
        Flushes only.  A failed transition leaves the entry exactly as it
        was; the caller decides whether to roll back the transaction.
    """

    def __init__(
        self,
        session: Session,
        allocator: SequenceAllocator,
        actor_id: UUID,
        clock: Clock | None = None,
        validator: JournalValidator | None = None,
        timeout_ms: int = DEFAULT_VALIDATION_TIMEOUT_MS,
    ):
        super().__init__(session, actor_id, clock or allocator.clock)
        self.allocator = allocator
        self.validator = validator or JournalValidator()
        self.timeout_ms = timeout_ms

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_entry(
        self,
        lines: Sequence[JournalLineSpec],
        *,
        entry_date: date | None = None,
        description: str | None = None,
        reference_number: str | None = None,
        fiscal_year: int | None = None,
        notes: str | None = None,
    ) -> JournalEntry:
        """
        Create a numbered draft.  Drafts may be unbalanced or incomplete;
        the checks run when the entry leaves draft.

        Raises:
            MissingAccountError: A line names an account id that does not
                exist.  Checked before a number is allocated.
        """
        entry_date = entry_date or self.clock.today()
        self._require_known_accounts(lines)
        number = self.allocator.allocate(JOURNAL_DOCUMENT_TYPE)

        entry = JournalEntry(
            entry_number=number.formatted,
            sequence_value=number.value,
            sequence_period=number.period_key,
            entry_date=entry_date,
            entry_type=EntryType.MANUAL.value,
            reference_number=reference_number,
            description=description,
            fiscal_year=fiscal_year or entry_date.year,
            notes=notes,
            status=EntryStatus.DRAFT.value,
            created_by_id=self.actor_id,
        )
        entry.lines = self._line_rows(lines)
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "journal_entry_created",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "line_count": len(lines),
            },
        )
        return entry

    def replace_lines(
        self,
        entry_id: UUID,
        lines: Sequence[JournalLineSpec],
    ) -> JournalEntry:
        """
        Raises:
            ImmutabilityViolationError: The entry is no longer a draft.
            MissingAccountError: A line names an account id that does not exist.
        """
        entry = self.get(entry_id)
        status = EntryStatus(entry.status)
        if status != EntryStatus.DRAFT:
            raise ImmutabilityViolationError(
                "JournalEntry",
                str(entry.id),
                f"lines cannot change once the entry is {status.value}",
            )
        self._require_known_accounts(lines)

        # Old rows go first so line numbers can be reused
        entry.lines.clear()
        self.session.flush()

        entry.lines.extend(self._line_rows(lines))
        entry.updated_by_id = self.actor_id
        self.session.flush()

        logger.info(
            "journal_lines_replaced",
            extra={"entry_id": str(entry.id), "line_count": len(lines)},
        )
        return entry

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def transition(self, entry_id: UUID, target: EntryStatus | str) -> JournalEntry:
        """Move an entry along one edge of the state machine."""
        _, entry = self.apply_transition(entry_id, target)
        return entry

    def apply_transition(
        self,
        entry_id: UUID,
        target: EntryStatus | str,
    ) -> tuple[EntryStatus, JournalEntry]:
        """
        Transition and also report the status seen under the lock.

        Preconditions:
            - ``target`` is approved, posted or cancelled.
        Postconditions:
            - On success the status and the matching ``*_at`` stamp are
              flushed; on approval/posting the validated totals are stored.

        Raises:
            EntryNotFoundError, InvalidStateTransitionError,
            UnbalancedEntryError, MissingAccountError,
            ValidationTimeoutError.
        """
        with LogContext.bind(entry_id=str(entry_id)):
            entry = self._lock_entry(entry_id)
            current = EntryStatus(entry.status)
            specs = entry.line_specs()

            try:
                summary = self.validator.validate_for(
                    target,
                    specs,
                    self._account_refs(spec.account_id for spec in specs),
                    current=current,
                )
            except JournalError as exc:
                exc.entry_status = current.value
                logger.warning(
                    "journal_transition_rejected",
                    extra={
                        "from_status": current.value,
                        "to_status": str(getattr(target, "value", target)),
                        "error_code": exc.code,
                    },
                )
                raise

            target = EntryStatus(target)
            now = self.clock.now()
            entry.status = target.value
            if summary is not None:
                entry.total_debit = summary.total_debit
                entry.total_credit = summary.total_credit
            if target == EntryStatus.APPROVED:
                entry.approved_at = now
            elif target == EntryStatus.POSTED:
                entry.posted_at = now
            elif target == EntryStatus.CANCELLED:
                entry.cancelled_at = now
            entry.updated_by_id = self.actor_id
            self.session.flush()

            logger.info(
                "journal_transitioned",
                extra={
                    "entry_number": entry.entry_number,
                    "from_status": current.value,
                    "to_status": target.value,
                },
            )
            return current, entry

    def approve(self, entry_id: UUID) -> JournalEntry:
        return self.transition(entry_id, EntryStatus.APPROVED)

    def post(self, entry_id: UUID) -> JournalEntry:
        return self.transition(entry_id, EntryStatus.POSTED)

    def cancel(self, entry_id: UUID) -> JournalEntry:
        return self.transition(entry_id, EntryStatus.CANCELLED)

    def reverse(
        self,
        entry_id: UUID,
        *,
        entry_date: date | None = None,
        description: str | None = None,
    ) -> JournalEntry:
        """
        Create a posted entry with every line's sides swapped.

        The original stays untouched; the reversal references it through
        ``reversal_of_id``.

        Raises:
            EntryNotPostedError: The original is not posted.
            EntryAlreadyReversedError: A reversal already exists.
        """
        with LogContext.bind(entry_id=str(entry_id)):
            original = self._lock_entry(entry_id)
            status = EntryStatus(original.status)
            if status != EntryStatus.POSTED:
                raise EntryNotPostedError(str(original.id), status.value)

            existing = self.session.execute(
                select(JournalEntry.id).where(JournalEntry.reversal_of_id == original.id)
            ).scalar_one_or_none()
            if existing is not None:
                raise EntryAlreadyReversedError(str(original.id))

            swapped = [spec.swapped() for spec in original.line_specs()]
            summary = self.validator.validate_balance(swapped)

            now = self.clock.now()
            entry_date = entry_date or now.date()
            number = self.allocator.allocate(JOURNAL_DOCUMENT_TYPE)

            reversal = JournalEntry(
                entry_number=number.formatted,
                sequence_value=number.value,
                sequence_period=number.period_key,
                entry_date=entry_date,
                entry_type=EntryType.REVERSAL.value,
                reference_number=original.entry_number,
                description=description or f"Reversal of {original.entry_number}",
                fiscal_year=entry_date.year,
                status=EntryStatus.POSTED.value,
                total_debit=summary.total_debit,
                total_credit=summary.total_credit,
                approved_at=now,
                posted_at=now,
                reversal_of_id=original.id,
                created_by_id=self.actor_id,
            )
            reversal.lines = self._line_rows(swapped)
            self.session.add(reversal)
            self.session.flush()

            logger.info(
                "journal_entry_reversed",
                extra={
                    "original_entry_number": original.entry_number,
                    "reversal_entry_id": str(reversal.id),
                    "reversal_entry_number": reversal.entry_number,
                },
            )
            return reversal

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, entry_id: UUID) -> JournalEntry:
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock_entry(self, entry_id: UUID) -> JournalEntry:
        """Load the entry under a row lock bounded by ``timeout_ms``."""
        try:
            apply_lock_timeout(self.session, self.timeout_ms)
            claim_sqlite_write_lock(self.session, JournalEntry, entry_id)
            entry = self.session.execute(
                select(JournalEntry)
                .where(JournalEntry.id == entry_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as exc:
            if not is_lock_timeout(exc):
                raise
            logger.warning(
                "journal_lock_timeout",
                extra={"timeout_ms": self.timeout_ms},
            )
            raise ValidationTimeoutError(str(entry_id), self.timeout_ms) from exc

        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry

    def _account_refs(self, account_ids: Iterable[UUID | None]) -> dict[UUID, AccountRef]:
        ids = {account_id for account_id in account_ids if account_id is not None}
        if not ids:
            return {}
        rows = self.session.execute(
            select(Account.id, Account.is_active).where(Account.id.in_(ids))
        ).all()
        return {row.id: AccountRef(id=row.id, is_active=row.is_active) for row in rows}

    def _require_known_accounts(self, lines: Sequence[JournalLineSpec]) -> None:
        """Drafts may leave accounts unset or inactive, but never unknown."""
        known = self._account_refs(spec.account_id for spec in lines)
        for spec in lines:
            if spec.account_id is not None and spec.account_id not in known:
                raise MissingAccountError(str(spec.account_id), "account does not exist")

    def _line_rows(self, lines: Sequence[JournalLineSpec]) -> list[JournalLine]:
        return [
            JournalLine(
                line_number=number,
                account_id=spec.account_id,
                description=spec.description,
                debit_amount=spec.debit_amount,
                credit_amount=spec.credit_amount,
                created_by_id=self.actor_id,
            )
            for number, spec in enumerate(lines, start=1)
        ]
