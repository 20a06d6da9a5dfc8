"""
Numbering -- reset periods and document number formatting.

Responsibility:
    Pure helpers used by SequenceAllocator: derive the reset period for an
    allocation timestamp and compose the presentation string of a number.

Architecture position:
    Engine > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Period keys are zero-padded ("2026", "2026-03") so that lexical order
      equals chronological order; the allocator compares them in SQL.
    - Formatting never changes the raw integer.  A number may be
      re-formatted later (new prefix, wider padding) without re-allocating.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ResetFrequency(str, Enum):
    """How often a document sequence restarts at 1."""

    NEVER = "never"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# Period key used by sequences that never reset
PERMANENT_PERIOD = "all"


def period_key(frequency: ResetFrequency, at: datetime) -> str:
    """
    Return the reset period an allocation at ``at`` belongs to.

    never -> "all"; yearly -> "YYYY"; monthly -> "YYYY-MM".
    """
    frequency = ResetFrequency(frequency)
    if frequency == ResetFrequency.NEVER:
        return PERMANENT_PERIOD
    if frequency == ResetFrequency.YEARLY:
        return f"{at.year:04d}"
    return f"{at.year:04d}-{at.month:02d}"


def format_number(
    value: int,
    *,
    prefix: str = "",
    separator: str = "",
    number_length: int = 1,
    suffix: str = "",
) -> str:
    """
    Compose ``prefix + separator + zero-padded value + suffix``.

    A value wider than ``number_length`` is never truncated.

    >>> format_number(7, prefix="INV", separator="-", number_length=5)
    'INV-00007'
    """
    if value < 1:
        raise ValueError(f"Document numbers start at 1, got {value}")
    return f"{prefix}{separator}{str(value).zfill(number_length)}{suffix}"


@dataclass(frozen=True)
class NumberFormat:
    """Presentation fields of a sequence."""

    prefix: str = ""
    separator: str = ""
    number_length: int = 1
    suffix: str = ""

    def render(self, value: int) -> str:
        return format_number(
            value,
            prefix=self.prefix,
            separator=self.separator,
            number_length=self.number_length,
            suffix=self.suffix,
        )


@dataclass(frozen=True)
class AllocatedNumber:
    """
    Result of one successful allocation.

    ``value`` is the durable state; ``formatted`` is presentation only.
    ``next_number`` is the counter value left behind for the next caller.
    """

    document_type: str
    value: int
    next_number: int
    period_key: str
    formatted: str

    def __str__(self) -> str:
        return self.formatted
