"""
Module: docengine.db.locking
Responsibility: Bound every row-lock wait so allocation and validation finish
    in bounded time, and recognise the driver errors a lock timeout produces.
Architecture position: Engine > DB.  Used by services that take row locks
    (SequenceAllocator, JournalService).

Failure modes:
    - PostgreSQL raises SQLSTATE 55P03 (lock_not_available) once
      ``lock_timeout`` expires.  The transaction is then aborted and the
      caller must roll back before reusing the session.
    - SQLite raises "database is locked" once ``busy_timeout`` expires.
"""

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

_PG_LOCK_NOT_AVAILABLE = "55P03"
_PG_QUERY_CANCELED = "57014"


def apply_lock_timeout(session: Session, timeout_ms: int) -> None:
    """
    Bound lock waits for the rest of the current transaction.

    Preconditions: timeout_ms > 0.
    Postconditions: The next lock wait in this session gives up after
        ``timeout_ms`` instead of blocking indefinitely.
    """
    dialect = session.get_bind().dialect.name
    timeout_ms = int(timeout_ms)
    if dialect == "postgresql":
        # SET LOCAL is scoped to the enclosing transaction
        session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
    elif dialect == "sqlite":
        session.execute(text(f"PRAGMA busy_timeout = {timeout_ms}"))


def claim_sqlite_write_lock(session: Session, model, row_id) -> None:
    """
    Take SQLite's database write lock before a read-modify-write.

    SQLite ignores ``FOR UPDATE``; a no-op UPDATE of the row opens the write
    transaction so the following SELECT sees the latest committed state and
    competing writers queue behind ``busy_timeout``.  No-op on other
    dialects, where ``with_for_update()`` takes a real row lock.
    """
    if session.get_bind().dialect.name != "sqlite":
        return
    table = model.__table__
    session.execute(
        table.update()
        .where(table.c.id == str(row_id))
        # Self-assignment, including updated_at so its onupdate does not fire
        .values(status=table.c.status, updated_at=table.c.updated_at)
    )


def is_lock_timeout(exc: OperationalError) -> bool:
    """Return True if ``exc`` is a lock wait that ran out of time."""
    orig = exc.orig
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in (_PG_LOCK_NOT_AVAILABLE, _PG_QUERY_CANCELED):
        return True
    message = str(orig).lower()
    return "database is locked" in message or "lock timeout" in message
