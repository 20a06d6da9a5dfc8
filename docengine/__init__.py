"""
Financial Document Engine

The correctness-critical core behind quotes, invoices, bonds and manual
journal entries:
- Atomic per-document-type numbering with periodic reset
- Deterministic line and document totals (round half up, once)
- Double-entry validation with a draft/approved/posted lifecycle
- Running balances over posted customer and supplier bonds
"""

__version__ = "0.1.0"
