"""
Money -- Decimal conversion and the one sanctioned rounding policy.

Responsibility:
    Every monetary input enters the engine through ``to_decimal`` and every
    stored or displayed amount leaves through ``round_money``.  Intermediate
    sums stay unrounded; rounding happens once, at the boundary.

Architecture position:
    Engine > Domain -- pure functional core, zero I/O.

Rounding policy:
    ROUND_HALF_UP to MONEY_DECIMAL_PLACES (2).  0.005 -> 0.01,
    0.004999 -> 0.00, -0.005 -> -0.01 (half away from zero).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")
HUNDRED = Decimal("100")

_CENT = Decimal("0.01")


def to_decimal(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """
    Convert a caller-supplied number to Decimal.

    Floats are refused; pass amounts as strings or Decimals.

    Raises:
        ValueError: If value is a float or bool, not numeric, NaN or
            infinite.
    """
    if isinstance(value, float):
        raise ValueError(f"{field} must not be a float, got {value!r}")
    if isinstance(value, bool):
        raise ValueError(f"{field} must be numeric, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"{field} must be numeric, got {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value for storage or presentation.

    This is the ONLY rounding function for amounts in the engine.

    Postconditions: Returns value quantized to ``decimal_places``; the
        result compares equal across calls for equal input.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    result = value.quantize(Decimal(quantize_str), rounding=rounding)
    # Normalise negative zero so -0.00 and 0.00 serialise identically
    if result.is_zero():
        return abs(result)
    return result


def has_cent_precision(value: Decimal) -> bool:
    """True if value carries no digits beyond the cent."""
    return value == value.quantize(_CENT)


def format_amount(value: Decimal) -> str:
    """Presentation string with exactly two decimals (``1234.5`` -> ``1234.50``)."""
    return f"{round_money(value):.2f}"
