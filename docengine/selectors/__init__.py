"""Read-only query selectors."""

from docengine.selectors.ledger_selector import (
    LedgerSelector,
    LedgerStatement,
    StatementLine,
)

__all__ = ["LedgerSelector", "LedgerStatement", "StatementLine"]
