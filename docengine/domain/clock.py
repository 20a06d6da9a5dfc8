"""
Clock -- injectable source of the current time.

Sequence reset periods, issue dates and the approval/posting stamps are
all derived from ``Clock.now()``; nothing in the engine reads the wall
clock directly.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Returns timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a given instant until moved explicitly.

    Naive datetimes are taken to be UTC, so a test can write
    ``DeterministicClock(datetime(2026, 3, 31, 23, 59))``.
    """

    def __init__(self, at: datetime | None = None):
        self._at = self._aware(at or datetime(2026, 1, 1, 12, tzinfo=timezone.utc))

    @staticmethod
    def _aware(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._at

    def set_time(self, at: datetime) -> None:
        self._at = self._aware(at)

    def advance(self, **delta: float) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._at += timedelta(**delta)
        return self._at
