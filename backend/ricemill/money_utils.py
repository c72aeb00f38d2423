from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
MILLI = Decimal("0.001")


def to_decimal(value: Any) -> Decimal:
    """
    Convert JSON-ish numeric input to Decimal.

    Floats go through str() so 5.5 becomes Decimal("5.5"), not its binary expansion.
    Raises ValueError for booleans, NaN/Infinity and non-numeric strings.
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"not a number: {value!r}")
    else:
        raise ValueError(f"not a number: {value!r}")
    if not result.is_finite():
        raise ValueError("number must be finite")
    return result


def round_money(value: Decimal | int | float) -> Decimal:
    """Half-up rounding to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_quantity(value: Decimal | int | float) -> Decimal:
    return to_decimal(value).quantize(MILLI, rounding=ROUND_HALF_UP)


def as_float(value: Optional[Decimal]) -> Optional[float]:
    """JSON serialization helper; keeps None as None."""
    if value is None:
        return None
    return float(value)


def as_money_float(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(round_money(value))
