"""
Document aggregator -- quote/invoice totals from lines.

Pure functions with no I/O.

    subtotal            = sum(quantity_i * unit_price_i)
    line_discount_total = sum(discount_amount_i)
    tax_total           = sum(tax_amount_i)
    total_amount        = subtotal - line_discount_total
                          - document_discount + tax_total

Sums are taken over UNROUNDED line values and rounded once at the end, so a
document of many small lines does not drift by a cent per line.

A negative total raises NegativeTotalNotAllowedError; it is never clamped.
The result carries no timestamps or identity, so aggregating the same input
twice yields identical ``as_dict()`` output and ``fingerprint()``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from docengine.domain.line_calculator import (
    DocumentLineSpec,
    LineItemCalculator,
    LineTotals,
)
from docengine.domain.money import ZERO, round_money, to_decimal
from docengine.exceptions import InvalidAmountError, NegativeTotalNotAllowedError


@dataclass(frozen=True)
class DocumentTotals:
    """Rounded document totals plus the rounded per-line breakdown."""

    subtotal: Decimal
    line_discount_total: Decimal
    document_discount: Decimal
    tax_total: Decimal
    total_amount: Decimal
    lines: tuple[LineTotals, ...] = ()

    @property
    def discount_total(self) -> Decimal:
        """Line discounts plus the document-level discount."""
        return self.line_discount_total + self.document_discount

    def as_dict(self) -> dict[str, object]:
        """Canonical serialisation (strings, fixed key order)."""
        return {
            "subtotal": str(self.subtotal),
            "line_discount_total": str(self.line_discount_total),
            "document_discount": str(self.document_discount),
            "tax_total": str(self.tax_total),
            "total_amount": str(self.total_amount),
            "lines": [
                {
                    "subtotal": str(line.subtotal),
                    "discount_amount": str(line.discount_amount),
                    "taxable_base": str(line.taxable_base),
                    "tax_amount": str(line.tax_amount),
                    "line_total": str(line.line_total),
                }
                for line in self.lines
            ],
        }

    def fingerprint(self) -> str:
        """SHA-256 over the canonical serialisation."""
        canonical = json.dumps(self.as_dict(), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class DocumentAggregator:
    """
    Sums a document's lines into DocumentTotals.

    Contract:
        Stateless and deterministic; the same lines and discount always
        produce equal results.
    """

    def __init__(self, calculator: LineItemCalculator | None = None):
        self._calculator = calculator or LineItemCalculator()

    def aggregate(
        self,
        lines: Iterable[DocumentLineSpec],
        document_discount: Decimal | int | str = ZERO,
    ) -> DocumentTotals:
        """
        Compute document totals.

        Raises:
            InvalidAmountError: document_discount is negative.
            NegativeTotalNotAllowedError: the total would be below zero.
        """
        document_discount = to_decimal(document_discount, "document_discount")
        if document_discount < ZERO:
            raise InvalidAmountError(
                "document_discount", str(document_discount), "must not be negative"
            )

        computed = [self._calculator.compute_line(line) for line in lines]

        # Each aggregate is rounded once, from unrounded line values
        subtotal = round_money(sum((t.subtotal for t in computed), ZERO))
        line_discount_total = round_money(
            sum((t.discount_amount for t in computed), ZERO)
        )
        tax_total = round_money(sum((t.tax_amount for t in computed), ZERO))
        discount = round_money(document_discount)

        # Derived from the rounded figures so the stored equation holds exactly
        total = subtotal - line_discount_total - discount + tax_total
        if total < ZERO:
            raise NegativeTotalNotAllowedError(str(total), str(discount))

        return DocumentTotals(
            subtotal=subtotal,
            line_discount_total=line_discount_total,
            document_discount=discount,
            tax_total=tax_total,
            total_amount=total,
            lines=tuple(t.rounded() for t in computed),
        )
