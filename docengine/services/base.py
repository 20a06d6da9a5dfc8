"""
BaseService -- abstract base for the engine's write services.

Responsibility:
    Common constructor for every service that mutates state.  A service
    receives the caller's SQLAlchemy ``Session``, an injected ``Clock`` and
    the acting user, and persists through ``session.flush()`` only.

Architecture position:
    Engine > Services -- imperative shell around the pure domain layer.

Invariants enforced:
    - Services never call ``session.commit()`` or ``session.rollback()``.
      The caller owns the transaction (see db.engine.session_scope), so a
      number allocation and the document carrying it commit or roll back
      together.
    - Services never read wall-clock time directly; stamps come from the
      injected clock.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from docengine.db.base import Base
from docengine.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write services.

    Non-goals:
        - Does NOT manage transaction lifecycle.
        - Does NOT provide reporting reads; those belong in
          ``docengine/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        actor_id: UUID,
        clock: Clock | None = None,
    ):
        """
        Preconditions:
            - ``session`` is a valid, open SQLAlchemy session.
            - ``actor_id`` identifies who is acting; it is written to the
              audit columns of every row this service creates or updates.
        """
        self.session = session
        self.actor_id = actor_id
        self.clock = clock or SystemClock()
