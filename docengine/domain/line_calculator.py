"""
Line calculator -- per-line discount, tax and total.

Pure functions with no I/O.  Fixed order of operations:

    subtotal        = quantity * unit_price
    discount_amount = subtotal * discount_rate / 100
    taxable_base    = subtotal - discount_amount
    tax_amount      = taxable_base * tax_rate / 100
    line_total      = taxable_base + tax_amount

Results are UNROUNDED.  ``LineTotals.rounded()`` applies the rounding policy
of docengine.domain.money when a line is stored or displayed; document
aggregation sums the unrounded values and rounds once.

Usage:
    from decimal import Decimal
    from docengine.domain.line_calculator import LineItemCalculator

    totals = LineItemCalculator().compute(
        quantity=Decimal("3"),
        unit_price=Decimal("100"),
        discount_rate=Decimal("10"),
        tax_rate=Decimal("15"),
    )
    print(totals.line_total)  # 310.5
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from docengine.domain.money import HUNDRED, ZERO, round_money, to_decimal
from docengine.exceptions import (
    InvalidQuantityError,
    InvalidRateError,
    InvalidUnitPriceError,
)


def _validated_inputs(
    quantity, unit_price, discount_rate, tax_rate
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    quantity = to_decimal(quantity, "quantity")
    unit_price = to_decimal(unit_price, "unit_price")
    discount_rate = to_decimal(discount_rate, "discount_rate")
    tax_rate = to_decimal(tax_rate, "tax_rate")

    if quantity <= ZERO:
        raise InvalidQuantityError(str(quantity))
    if unit_price < ZERO:
        raise InvalidUnitPriceError(str(unit_price))
    if not ZERO <= discount_rate <= HUNDRED:
        raise InvalidRateError("discount_rate", str(discount_rate))
    if not ZERO <= tax_rate <= HUNDRED:
        raise InvalidRateError("tax_rate", str(tax_rate))
    return quantity, unit_price, discount_rate, tax_rate


@dataclass(frozen=True)
class DocumentLineSpec:
    """
    One quote/invoice line, validated at construction.

    Raises:
        InvalidQuantityError: quantity <= 0.
        InvalidUnitPriceError: unit_price < 0.
        InvalidRateError: a rate outside 0..100.
    """

    quantity: Decimal
    unit_price: Decimal
    discount_rate: Decimal = ZERO
    tax_rate: Decimal = ZERO
    description: str | None = None

    def __post_init__(self) -> None:
        quantity, unit_price, discount_rate, tax_rate = _validated_inputs(
            self.quantity, self.unit_price, self.discount_rate, self.tax_rate
        )
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "unit_price", unit_price)
        object.__setattr__(self, "discount_rate", discount_rate)
        object.__setattr__(self, "tax_rate", tax_rate)


@dataclass(frozen=True)
class LineTotals:
    """Derived amounts for one line."""

    subtotal: Decimal
    discount_amount: Decimal
    taxable_base: Decimal
    tax_amount: Decimal
    line_total: Decimal

    def rounded(self) -> LineTotals:
        """Copy rounded half-up to 2 places for storage/presentation."""
        return LineTotals(
            subtotal=round_money(self.subtotal),
            discount_amount=round_money(self.discount_amount),
            taxable_base=round_money(self.taxable_base),
            tax_amount=round_money(self.tax_amount),
            line_total=round_money(self.line_total),
        )


class LineItemCalculator:
    """
    Computes LineTotals for a single line.

    Contract:
        compute() validates its inputs exactly like DocumentLineSpec and
        applies the fixed order of operations.  Stateless: one instance may
        be shared freely.
    """

    def compute(
        self,
        quantity: Decimal | int | str,
        unit_price: Decimal | int | str,
        discount_rate: Decimal | int | str = ZERO,
        tax_rate: Decimal | int | str = ZERO,
    ) -> LineTotals:
        quantity, unit_price, discount_rate, tax_rate = _validated_inputs(
            quantity, unit_price, discount_rate, tax_rate
        )

        subtotal = quantity * unit_price
        discount_amount = subtotal * discount_rate / HUNDRED
        taxable_base = subtotal - discount_amount
        tax_amount = taxable_base * tax_rate / HUNDRED
        line_total = taxable_base + tax_amount

        assert line_total >= ZERO, "line_total must never be negative"

        return LineTotals(
            subtotal=subtotal,
            discount_amount=discount_amount,
            taxable_base=taxable_base,
            tax_amount=tax_amount,
            line_total=line_total,
        )

    def compute_line(self, line: DocumentLineSpec) -> LineTotals:
        """Compute totals for an already-validated line."""
        return self.compute(
            line.quantity, line.unit_price, line.discount_rate, line.tax_rate
        )
