"""ORM models for the document engine."""

from docengine.models.account import Account, AccountType
from docengine.models.bond import Bond
from docengine.models.document import DocumentLine, FinancialDocument
from docengine.models.journal import JournalEntry, JournalLine
from docengine.models.sequence import SequenceAllocation, SequenceConfig

__all__ = [
    "Account",
    "AccountType",
    "Bond",
    "DocumentLine",
    "FinancialDocument",
    "JournalEntry",
    "JournalLine",
    "SequenceAllocation",
    "SequenceConfig",
]
