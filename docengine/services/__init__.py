"""Write services.  Each flushes within the caller's transaction."""

from docengine.services.bond_service import BondService
from docengine.services.document_service import DocumentService
from docengine.services.journal_service import JournalService
from docengine.services.sequence_allocator import SequenceAllocator

__all__ = [
    "BondService",
    "DocumentService",
    "JournalService",
    "SequenceAllocator",
]
