"""Database layer - engine, base classes, column types, locking and immutability."""

from docengine.db.base import Base, TrackedBase, UUIDString
from docengine.db.engine import create_tables, get_engine, get_session, session_scope
from docengine.db.types import LongText, Money, Rate, ShortCode

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "Money",
    "Rate",
    "ShortCode",
    "LongText",
]
