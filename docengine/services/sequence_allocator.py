"""
SequenceAllocator -- gap-free, collision-free document numbering.

Responsibility:
    Issues the next number for a document type (sales_invoice, quote,
    customer_bond, journal_entry, ...) and formats it for presentation.
    Also registers, re-configures, activates and deactivates sequences.

Architecture position:
    Engine > Services -- imperative shell.  Uses the pure helpers in
    domain/numbering.py for periods and formatting.

Invariants enforced:
    - One atomic statement per allocation.  The counter read, the period
      reset decision and the increment happen in a single
      ``UPDATE ... SET next_number = CASE ... RETURNING``.  The database row
      lock serialises concurrent callers; two callers can never receive the
      same value, and no value inside a period is skipped.
    - The MAX(...)+1 anti-pattern is NEVER used.
    - A reset can never be undone: a caller whose clock falls in an older
      period than the stored one continues the current period's counter.
    - Every issued number is also written to sequence_allocations, whose
      UNIQUE (document_type, period_key, value) is a second guard.

Failure modes:
    - UnknownDocumentTypeError / DocumentTypeDisabledError.
    - AllocationTimeoutError (retryable) when the row lock is not obtained
      within ``timeout_ms``.  On PostgreSQL the transaction is aborted and
      must be rolled back by the caller before retrying.

Gap policy:
    The increment is part of the caller's transaction.  If that transaction
    rolls back, the counter rolls back with it and no number was handed
    out.  Once it commits, the number is consumed for good: a workflow that
    later abandons its document leaves a gap, never a duplicate.
"""

from uuid import UUID

from sqlalchemy import case, or_, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from docengine.db.locking import apply_lock_timeout, is_lock_timeout
from docengine.domain.clock import Clock
from docengine.domain.numbering import AllocatedNumber, ResetFrequency, period_key
from docengine.exceptions import (
    AllocationTimeoutError,
    DocumentTypeDisabledError,
    DuplicateDocumentTypeError,
    InvalidSequenceConfigError,
    UnknownDocumentTypeError,
)
from docengine.logging_config import get_logger
from docengine.models.sequence import SequenceAllocation, SequenceConfig
from docengine.services.base import BaseService

logger = get_logger("services.sequence_allocator")

DEFAULT_ALLOCATION_TIMEOUT_MS = 5000


class SequenceAllocator(BaseService[SequenceConfig]):
    """
    Issues document numbers.

    Contract:
        ``allocate()`` flushes the counter update and the allocation record
        and returns; it never commits.  Allocate and write the document
        that carries the number in ONE transaction.

    Usage:
        with session_scope() as session:
            allocator = SequenceAllocator(session, actor_id)
            number = allocator.allocate("sales_invoice")
            print(number.formatted)  # INV-00042
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
        timeout_ms: int = DEFAULT_ALLOCATION_TIMEOUT_MS,
    ):
        super().__init__(session, actor_id, clock)
        self.timeout_ms = timeout_ms

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate(self, document_type: str) -> AllocatedNumber:
        """
        Issue the next number for ``document_type``.

        Preconditions:
            - The caller is inside a transaction it will commit or roll back.
        Postconditions:
            - The returned value is >= 1 and was never issued before for
              this document type within its period.
            - The counter row and a SequenceAllocation row are flushed.

        Raises:
            UnknownDocumentTypeError: No sequence registered.
            DocumentTypeDisabledError: Sequence deactivated.
            AllocationTimeoutError: Row lock wait exceeded ``timeout_ms``.
        """
        now = self.clock.now()
        frequency = self._reset_frequency(document_type)
        current_period = period_key(frequency, now)

        cfg = SequenceConfig
        # NULL period: first allocation, issue the seeded next_number
        unset = cfg.last_reset_period.is_(None)
        continues = or_(unset, cfg.last_reset_period >= current_period)
        enters_period = or_(unset, cfg.last_reset_period < current_period)
        stmt = (
            update(cfg)
            .where(cfg.document_type == document_type)
            .where(cfg.is_active.is_(True))
            .values(
                # Right-hand sides see the pre-update row
                next_number=case((continues, cfg.next_number + 1), else_=2),
                last_reset_period=case(
                    (enters_period, current_period),
                    else_=cfg.last_reset_period,
                ),
                updated_by_id=self.actor_id,
            )
            .returning(cfg.next_number, cfg.last_reset_period)
            .execution_options(synchronize_session=False)
        )

        try:
            apply_lock_timeout(self.session, self.timeout_ms)
            row = self.session.execute(stmt).one_or_none()
        except OperationalError as exc:
            if not is_lock_timeout(exc):
                raise
            logger.warning(
                "sequence_allocation_timeout",
                extra={"document_type": document_type, "timeout_ms": self.timeout_ms},
            )
            raise AllocationTimeoutError(document_type, self.timeout_ms) from exc

        if row is None:
            self._raise_unavailable(document_type)

        next_number, stored_period = row
        value = next_number - 1
        config = self._load(document_type)
        formatted = config.number_format.render(value)

        self.session.add(
            SequenceAllocation(
                document_type=document_type,
                period_key=stored_period,
                value=value,
                formatted=formatted,
                allocated_at=now,
                allocated_by_id=self.actor_id,
            )
        )
        self.session.flush()

        if stored_period != current_period:
            logger.warning(
                "sequence_stale_period",
                extra={
                    "document_type": document_type,
                    "requested_period": current_period,
                    "current_period": stored_period,
                },
            )
        elif value == 1:
            logger.info(
                "sequence_period_started",
                extra={"document_type": document_type, "period_key": stored_period},
            )

        logger.debug(
            "sequence_allocated",
            extra={
                "document_type": document_type,
                "value": value,
                "period_key": stored_period,
                "formatted": formatted,
            },
        )

        return AllocatedNumber(
            document_type=document_type,
            value=value,
            next_number=next_number,
            period_key=stored_period,
            formatted=formatted,
        )

    def _reset_frequency(self, document_type: str) -> ResetFrequency:
        frequency = self.session.execute(
            select(SequenceConfig.reset_frequency).where(
                SequenceConfig.document_type == document_type
            )
        ).scalar_one_or_none()
        if frequency is None:
            raise UnknownDocumentTypeError(document_type)
        return ResetFrequency(frequency)

    def _raise_unavailable(self, document_type: str) -> None:
        is_active = self.session.execute(
            select(SequenceConfig.is_active).where(
                SequenceConfig.document_type == document_type
            )
        ).scalar_one_or_none()
        if is_active is None:
            raise UnknownDocumentTypeError(document_type)
        logger.warning(
            "sequence_disabled_allocation_rejected",
            extra={"document_type": document_type},
        )
        raise DocumentTypeDisabledError(document_type)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def register(self, definition) -> SequenceConfig:
        """
        Create the sequence for a new document type.

        ``definition`` is a docengine_config SequenceDefinition (or any
        object with the same attributes).

        Raises:
            DuplicateDocumentTypeError: Already registered.
            InvalidSequenceConfigError: number_length or next_number < 1.
        """
        document_type = definition.document_type
        if not document_type:
            raise InvalidSequenceConfigError(str(document_type), "document_type is required")
        if definition.number_length < 1:
            raise InvalidSequenceConfigError(document_type, "number_length must be >= 1")
        if definition.next_number < 1:
            raise InvalidSequenceConfigError(document_type, "next_number must be >= 1")
        try:
            frequency = ResetFrequency(definition.reset_frequency)
        except ValueError:
            raise InvalidSequenceConfigError(
                document_type,
                f"unknown reset_frequency {definition.reset_frequency!r}",
            ) from None

        if self._find(document_type) is not None:
            raise DuplicateDocumentTypeError(document_type)

        config = SequenceConfig(
            document_type=document_type,
            prefix=definition.prefix,
            separator=definition.separator,
            number_length=definition.number_length,
            suffix=definition.suffix,
            next_number=definition.next_number,
            reset_frequency=frequency.value,
            is_active=definition.is_active,
            created_by_id=self.actor_id,
        )
        self.session.add(config)
        self.session.flush()

        logger.info(
            "sequence_registered",
            extra={
                "document_type": document_type,
                "prefix": definition.prefix,
                "reset_frequency": frequency.value,
                "next_number": definition.next_number,
            },
        )
        return config

    def install_definitions(self, definitions) -> list[str]:
        """
        Register every definition whose document type is not yet known.

        Existing sequences are left untouched (their counters are live
        state).  Returns the document types that were newly registered.
        """
        installed = []
        for definition in definitions:
            if self._find(definition.document_type) is None:
                self.register(definition)
                installed.append(definition.document_type)
        logger.info(
            "sequence_definitions_installed",
            extra={"installed": installed, "installed_count": len(installed)},
        )
        return installed

    def reconfigure(
        self,
        document_type: str,
        *,
        prefix: str | None = None,
        separator: str | None = None,
        number_length: int | None = None,
        suffix: str | None = None,
    ) -> SequenceConfig:
        """
        Change presentation fields only.  The counter is never touched, so
        numbers already issued keep their values.
        """
        config = self._load(document_type)
        if number_length is not None and number_length < 1:
            raise InvalidSequenceConfigError(document_type, "number_length must be >= 1")
        if prefix is not None:
            config.prefix = prefix
        if separator is not None:
            config.separator = separator
        if number_length is not None:
            config.number_length = number_length
        if suffix is not None:
            config.suffix = suffix
        config.updated_by_id = self.actor_id
        self.session.flush()
        logger.info("sequence_reconfigured", extra={"document_type": document_type})
        return config

    def activate(self, document_type: str) -> SequenceConfig:
        return self._set_active(document_type, True)

    def deactivate(self, document_type: str) -> SequenceConfig:
        """Sequences are never deleted; deactivation blocks new numbers."""
        return self._set_active(document_type, False)

    def _set_active(self, document_type: str, is_active: bool) -> SequenceConfig:
        config = self._load(document_type)
        config.is_active = is_active
        config.updated_by_id = self.actor_id
        self.session.flush()
        logger.info(
            "sequence_activated" if is_active else "sequence_deactivated",
            extra={"document_type": document_type},
        )
        return config

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_config(self, document_type: str) -> SequenceConfig:
        """Fresh read of the sequence row.  Raises UnknownDocumentTypeError."""
        return self._load(document_type)

    def preview(self, document_type: str) -> str:
        """
        Format of the number the next call would probably receive.

        Non-authoritative: a concurrent caller may take it first.  Never
        use a preview as a document number.
        """
        config = self._load(document_type)
        current = period_key(ResetFrequency(config.reset_frequency), self.clock.now())
        if config.last_reset_period is not None and current > config.last_reset_period:
            value = 1
        else:
            value = config.next_number
        return config.number_format.render(value)

    def _find(self, document_type: str) -> SequenceConfig | None:
        return self.session.execute(
            select(SequenceConfig)
            .where(SequenceConfig.document_type == document_type)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _load(self, document_type: str) -> SequenceConfig:
        config = self._find(document_type)
        if config is None:
            raise UnknownDocumentTypeError(document_type)
        return config
