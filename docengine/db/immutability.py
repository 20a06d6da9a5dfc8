"""
ORM-level immutability enforcement.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners below inspect attribute history to find the status a
row had BEFORE the current flush, and reject changes the lifecycle forbids:

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Because the check looks at the committed status, the transition that
finalises a record (draft -> posted, draft -> issued) is itself allowed; only
changes AFTER that transition has been flushed are blocked.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When immutable                  | What may still change
--------------------|---------------------------------|---------------------------------
JournalEntry        | status != draft                 | lifecycle columns, on a valid
                    |                                 | approved -> posted/cancelled edge
JournalLine         | parent entry status != draft    | nothing
FinancialDocument   | status != draft                 | nothing
DocumentLine        | parent document status != draft | nothing
Bond                | status != draft                 | nothing
SequenceAllocation  | always                          | nothing

``updated_at`` and ``updated_by_id`` are audit metadata and always allowed.

===============================================================================
USAGE
===============================================================================

    from docengine.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup, idempotent

Tests that must tamper on purpose call ``unregister_immutability_listeners()``
and re-register afterwards.
"""

from enum import Enum

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from docengine.exceptions import ImmutabilityViolationError
from docengine.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Columns a valid approved -> posted/cancelled transition writes
_JOURNAL_LIFECYCLE_FIELDS = frozenset({
    "status",
    "approved_at",
    "posted_at",
    "cancelled_at",
    "total_debit",
    "total_credit",
})

_DRAFT = "draft"


def _status_value(status) -> str | None:
    if status is None:
        return None
    if isinstance(status, Enum):
        return status.value
    return str(status)


def _committed_status(target) -> str | None:
    """Status as of the last flush; None for a row not yet inserted."""
    hist = get_history(target, "status")
    if hist.deleted:
        return _status_value(hist.deleted[0])
    if hist.unchanged:
        return _status_value(hist.unchanged[0])
    return None


def _parent(target, relationship_key: str):
    """Parent object, including one just detached from its collection."""
    parent = getattr(target, relationship_key)
    if parent is None:
        hist = get_history(target, relationship_key)
        if hist.deleted:
            parent = hist.deleted[0]
    return parent


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _AUDIT_FIELDS
        and insp.attrs[attr.key].history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, **fields) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_finalized_update(entity_type: str, target) -> None:
    status = _committed_status(target)
    if status in (None, _DRAFT):
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            entity_type,
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on {status} {entity_type}",
            field=changed[0],
            status=status,
        )


def _check_finalized_delete(entity_type: str, target) -> None:
    status = _committed_status(target)
    if status not in (None, _DRAFT):
        _block(entity_type, target, "DELETE", f"{status} {entity_type} cannot be deleted")


def _check_child_of_finalized(
    entity_type: str, target, parent_key: str, operation: str
) -> None:
    parent = _parent(target, parent_key)
    if parent is None:
        return
    status = _committed_status(parent)
    if status not in (None, _DRAFT):
        _block(
            entity_type,
            target,
            operation,
            f"{entity_type} rows are frozen once the parent is {status}",
            parent_id=str(parent.id),
        )


# JournalEntry


def _check_journal_entry_update(mapper, connection, target):
    """
    Allow:
        - anything while the committed status is draft;
        - lifecycle columns only, when status itself is changing from
          approved (approved -> posted / cancelled).
    Block everything else on a non-draft entry.
    """
    status = _committed_status(target)
    if status in (None, _DRAFT):
        return

    changed = _changed_fields(target)
    if not changed:
        return

    status_changing = bool(get_history(target, "status").deleted)
    illegal = [f for f in changed if f not in _JOURNAL_LIFECYCLE_FIELDS]
    if status_changing and not illegal:
        return

    field = illegal[0] if illegal else changed[0]
    _block(
        "JournalEntry",
        target,
        "UPDATE",
        f"Cannot modify field '{field}' on {status} journal entry",
        field=field,
        status=status,
    )


def _check_journal_entry_delete(mapper, connection, target):
    _check_finalized_delete("JournalEntry", target)


def _check_journal_line_update(mapper, connection, target):
    _check_child_of_finalized("JournalLine", target, "entry", "UPDATE")


def _check_journal_line_insert(mapper, connection, target):
    _check_child_of_finalized("JournalLine", target, "entry", "INSERT")


def _check_journal_line_delete(mapper, connection, target):
    _check_child_of_finalized("JournalLine", target, "entry", "DELETE")


# FinancialDocument


def _check_document_update(mapper, connection, target):
    _check_finalized_update("FinancialDocument", target)


def _check_document_delete(mapper, connection, target):
    _check_finalized_delete("FinancialDocument", target)


def _check_document_line_update(mapper, connection, target):
    _check_child_of_finalized("DocumentLine", target, "document", "UPDATE")


def _check_document_line_insert(mapper, connection, target):
    _check_child_of_finalized("DocumentLine", target, "document", "INSERT")


def _check_document_line_delete(mapper, connection, target):
    _check_child_of_finalized("DocumentLine", target, "document", "DELETE")


# Bond


def _check_bond_update(mapper, connection, target):
    _check_finalized_update("Bond", target)


def _check_bond_delete(mapper, connection, target):
    _check_finalized_delete("Bond", target)


# SequenceAllocation (append-only)


def _check_allocation_update(mapper, connection, target):
    _block("SequenceAllocation", target, "UPDATE", "Allocation records are append-only")


def _check_allocation_delete(mapper, connection, target):
    _block("SequenceAllocation", target, "DELETE", "Allocation records are append-only")


def _listener_table():
    from docengine.models.bond import Bond
    from docengine.models.document import DocumentLine, FinancialDocument
    from docengine.models.journal import JournalEntry, JournalLine
    from docengine.models.sequence import SequenceAllocation

    return [
        (JournalEntry, "before_update", _check_journal_entry_update),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalLine, "before_insert", _check_journal_line_insert),
        (JournalLine, "before_update", _check_journal_line_update),
        (JournalLine, "before_delete", _check_journal_line_delete),
        (FinancialDocument, "before_update", _check_document_update),
        (FinancialDocument, "before_delete", _check_document_delete),
        (DocumentLine, "before_insert", _check_document_line_insert),
        (DocumentLine, "before_update", _check_document_line_update),
        (DocumentLine, "before_delete", _check_document_line_delete),
        (Bond, "before_update", _check_bond_update),
        (Bond, "before_delete", _check_bond_delete),
        (SequenceAllocation, "before_update", _check_allocation_update),
        (SequenceAllocation, "before_delete", _check_allocation_delete),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent.  Call after the models are importable and before any write.
    """
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally tamper with records.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
