"""
Financial document kinds and lifecycle.

Each kind doubles as the document type of its numbering sequence, so a
sales invoice draws from the ``sales_invoice`` sequence and so on.
"""

from enum import Enum


class DocumentKind(str, Enum):
    QUOTE = "quote"
    SALES_INVOICE = "sales_invoice"
    PURCHASE_INVOICE = "purchase_invoice"
    CREDIT_NOTE = "credit_note"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    CANCELLED = "cancelled"


DOCUMENT_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.DRAFT: frozenset({DocumentStatus.ISSUED, DocumentStatus.CANCELLED}),
    DocumentStatus.ISSUED: frozenset(),
    DocumentStatus.CANCELLED: frozenset(),
}

# Kinds an issued document can be compensated from
COMPENSABLE_KINDS: frozenset[DocumentKind] = frozenset({
    DocumentKind.SALES_INVOICE,
    DocumentKind.PURCHASE_INVOICE,
})
