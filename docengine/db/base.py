"""
Module: docengine.db.base
Responsibility: Declarative base for every ORM model: UUID primary keys,
    the Python-type to column-type map, and the audit columns shared by
    all mutable rows.
Architecture position: Engine > DB.  Imported by models/, services/ and
    selectors/; imports nothing from them.

Invariants enforced:
    - Every row has a uuid4 primary key stored as a 36-character string so
      SQLite and PostgreSQL hold identical values.
    - ``Decimal`` annotations map to Numeric(38, 9); no float columns.
    - ``created_by_id`` is mandatory on tracked rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

# Applies to constraints the models leave unnamed (primary and foreign keys)
NAMING_CONVENTION = {
    "pk": "pk_%(table_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
}


class UUIDString(TypeDecorator[UUID]):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> str | None:
        return None if value is None else str(value)

    def process_result_value(self, value: Any, dialect) -> UUID | None:
        if value is None or isinstance(value, UUID):
            return value
        return UUID(value)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when audit columns.

    ``updated_at`` and ``updated_by_id`` may change on any row, including
    rows that are otherwise frozen (see db/immutability.py).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )
    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString())
