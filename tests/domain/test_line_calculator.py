"""
Tests for per-line discount, tax and total.

Order of operations: subtotal, discount, taxable base, tax, total.  Results
are unrounded until ``rounded()``.
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from docengine.domain.line_calculator import (
    DocumentLineSpec,
    LineItemCalculator,
)
from docengine.exceptions import (
    InvalidQuantityError,
    InvalidRateError,
    InvalidUnitPriceError,
)


@pytest.fixture
def calculator() -> LineItemCalculator:
    return LineItemCalculator()


class TestLineTotals:
    """Worked examples of the fixed order of operations."""

    def test_discount_then_tax(self, calculator):
        totals = calculator.compute(
            quantity=Decimal("3"),
            unit_price=Decimal("100"),
            discount_rate=Decimal("10"),
            tax_rate=Decimal("15"),
        )

        assert totals.subtotal == Decimal("300")
        assert totals.discount_amount == Decimal("30")
        assert totals.taxable_base == Decimal("270")
        assert totals.tax_amount == Decimal("40.5")
        assert totals.line_total == Decimal("310.5")

    def test_no_discount_no_tax(self, calculator):
        totals = calculator.compute(2, "19.99")
        assert totals.line_total == Decimal("39.98")
        assert totals.tax_amount == Decimal("0")

    def test_full_discount_is_zero_total(self, calculator):
        totals = calculator.compute(1, 50, discount_rate=100, tax_rate=20)
        assert totals.line_total == Decimal("0")

    def test_free_line_allowed(self, calculator):
        totals = calculator.compute(5, 0)
        assert totals.line_total == Decimal("0")

    def test_fractional_results_stay_unrounded(self, calculator):
        totals = calculator.compute(Decimal("1"), Decimal("0.10"), tax_rate=Decimal("5"))
        assert totals.tax_amount == Decimal("0.005")
        assert totals.rounded().tax_amount == Decimal("0.01")

    def test_rounded_copy(self, calculator):
        totals = calculator.compute(Decimal("3"), Decimal("33.333"), tax_rate=Decimal("7"))
        rounded = totals.rounded()
        assert rounded.subtotal == Decimal("100.00")
        assert rounded.line_total == Decimal("107.00")
        # Original untouched
        assert totals.subtotal == Decimal("99.999")

    def test_compute_line_matches_compute(self, calculator):
        spec = DocumentLineSpec(Decimal("3"), Decimal("100"), Decimal("10"), Decimal("15"))
        assert calculator.compute_line(spec) == calculator.compute(3, 100, 10, 15)


class TestLineValidation:
    """Invalid inputs raise typed errors before any arithmetic."""

    @pytest.mark.parametrize("quantity", ["0", "-1"])
    def test_quantity_must_be_positive(self, calculator, quantity):
        with pytest.raises(InvalidQuantityError) as exc_info:
            calculator.compute(Decimal(quantity), Decimal("10"))
        assert exc_info.value.code == "INVALID_QUANTITY"

    def test_negative_unit_price_rejected(self, calculator):
        with pytest.raises(InvalidUnitPriceError):
            calculator.compute(Decimal("1"), Decimal("-0.01"))

    @pytest.mark.parametrize("rate", ["-1", "100.01"])
    def test_discount_rate_range(self, calculator, rate):
        with pytest.raises(InvalidRateError) as exc_info:
            calculator.compute(1, 10, discount_rate=Decimal(rate))
        assert exc_info.value.rate_name == "discount_rate"

    def test_tax_rate_range(self, calculator):
        with pytest.raises(InvalidRateError) as exc_info:
            calculator.compute(1, 10, tax_rate=Decimal("101"))
        assert exc_info.value.rate_name == "tax_rate"

    def test_spec_validates_at_construction(self):
        with pytest.raises(InvalidQuantityError):
            DocumentLineSpec(quantity=Decimal("0"), unit_price=Decimal("10"))

    def test_spec_normalises_to_decimal(self):
        spec = DocumentLineSpec(quantity="2", unit_price=5)
        assert spec.quantity == Decimal("2")
        assert spec.unit_price == Decimal("5")

    def test_line_is_frozen(self):
        spec = DocumentLineSpec(Decimal("1"), Decimal("1"))
        with pytest.raises(AttributeError):
            spec.quantity = Decimal("2")


quantities = st.decimals(min_value="0.001", max_value="10000", places=3)
prices = st.decimals(min_value="0", max_value="100000", places=2)
rates = st.decimals(min_value="0", max_value="100", places=2)


class TestLineProperties:
    @settings(max_examples=200)
    @given(quantity=quantities, unit_price=prices, discount_rate=rates, tax_rate=rates)
    def test_derived_amounts_consistent(self, quantity, unit_price, discount_rate, tax_rate):
        totals = LineItemCalculator().compute(quantity, unit_price, discount_rate, tax_rate)

        assert totals.taxable_base == totals.subtotal - totals.discount_amount
        assert totals.line_total == totals.taxable_base + totals.tax_amount
        assert totals.line_total >= 0
        assert totals.discount_amount <= totals.subtotal

    @settings(max_examples=200)
    @given(quantity=quantities, unit_price=prices, discount_rate=rates, tax_rate=rates)
    def test_rounded_has_cent_precision(self, quantity, unit_price, discount_rate, tax_rate):
        rounded = LineItemCalculator().compute(quantity, unit_price, discount_rate, tax_rate).rounded()

        for amount in (rounded.subtotal, rounded.tax_amount, rounded.line_total):
            assert amount == amount.quantize(Decimal("0.01"))
