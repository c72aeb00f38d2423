"""
Request payload validation for the mill API.

Routes pass the decoded JSON body together with the target model and a
ModelValidationPolicy. validate_payload checks the keys against the policy
allowlist, then converts each value according to its SQLAlchemy column type
(Numeric to Decimal, ISO strings to UTC-naive datetimes, and so on). The
enforce_rules_* functions add the business checks column metadata can't
express.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text

from ricemill.models import PRODUCT_CATEGORIES, STOCK_UNITS, TRANSACTION_TYPES
from ricemill.money_utils import MILLI, to_decimal
from ricemill.time_utils import parse_iso_datetime

# Numeric(12, 2)
MAX_MONEY = Decimal("9999999999.99")
# Numeric(14, 3)
MAX_QUANTITY = Decimal("99999999999.999")


class ValidationError(ValueError):
    """Bad client input (400)."""


class NotFoundError(ValueError):
    """Referenced product, transaction or withdrawal is missing (404)."""


class ConflictError(ValueError):
    """Request clashes with existing data, e.g. a taken SKU (409)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """Which columns a route lets clients write, and which a create must carry."""
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _as_integer(name: str, value: Any) -> int:
    # bool is an int subclass; floats and "1e3" style strings are refused
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    text = value.strip() if isinstance(value, str) else ""
    if not text.lstrip("-").isdigit():
        raise ValidationError(f"{name} must be an integer")
    return int(text)


def _as_decimal(name: str, value: Any) -> Decimal:
    try:
        return to_decimal(value)
    except ValueError:
        raise ValidationError(f"{name} must be a number")


def _as_boolean(name: str, value: Any) -> bool:
    return value if isinstance(value, bool) else bool(value)


def _as_datetime(name: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a datetime")
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")
    return parsed


def _as_text(name: str, value: Any) -> str:
    return str(value).strip()


# First matching column type wins; Integer precedes Numeric
_COERCERS: tuple[tuple[type, Callable[[str, Any], Any]], ...] = (
    (Integer, _as_integer),
    (Numeric, _as_decimal),
    (Boolean, _as_boolean),
    (DateTime, _as_datetime),
    (String, _as_text),
    (Text, _as_text),
)


def _coerce_value(col, value: Any):
    for sa_type, coerce in _COERCERS:
        if isinstance(col.type, sa_type):
            return coerce(col.key, value)
    return value


def _clean(col, raw: Any):
    if raw is None:
        if not col.nullable:
            raise ValidationError(f"{col.key} cannot be null")
        return None

    value = _coerce_value(col, raw)
    if isinstance(value, str):
        if value == "" and not col.nullable:
            raise ValidationError(f"{col.key} cannot be blank")
        limit = getattr(col.type, "length", None)
        if limit and len(value) > limit:
            raise ValidationError(f"{col.key} exceeds max length {limit}")
    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Return a cleaned copy of payload holding only policy-writable columns.

    With partial=False (POST) every required_on_create field must be present
    and non-empty; with partial=True (PUT) only the supplied keys are checked.
    """
    body = {} if payload is None else payload
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(k for k in policy.required_on_create if body.get(k) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    for key in body:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in columns:
            raise ValidationError(f"Unknown field: {key}")

    return {key: _clean(columns[key], raw) for key, raw in body.items()}


def _require_non_negative(patch: dict, key: str, maximum: Decimal) -> None:
    value = patch.get(key)
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > maximum:
        raise ValidationError(f"{key} cannot exceed {maximum}")


def coerce_positive_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Quantities on stock transactions must be strictly positive."""
    if value is None:
        raise ValidationError(f"{field} is required")
    try:
        qty = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{field} must be a number")
    if qty <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    if qty != qty.quantize(MILLI):
        raise ValidationError(f"{field} allows at most 3 decimal places")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} cannot exceed {MAX_QUANTITY}")
    return qty


def coerce_transaction_type(value: Any) -> str:
    if value not in TRANSACTION_TYPES:
        raise ValidationError(
            f"Invalid transaction type; expected one of: {', '.join(TRANSACTION_TYPES)}"
        )
    return value


def enforce_rules_product(patch: dict) -> None:
    """Category and unit from the fixed lists; prices and stock levels non-negative."""
    if "category" in patch and patch["category"] not in PRODUCT_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(PRODUCT_CATEGORIES)}")

    if "unit" in patch and patch["unit"] not in STOCK_UNITS:
        raise ValidationError(f"unit must be one of: {', '.join(STOCK_UNITS)}")

    for key in ("cost_price", "selling_price"):
        _require_non_negative(patch, key, MAX_MONEY)

    for key in ("current_stock", "min_stock_level", "max_stock_level"):
        _require_non_negative(patch, key, MAX_QUANTITY)


def enforce_rules_transaction(patch: dict) -> None:
    patch["type"] = coerce_transaction_type(patch.get("type"))
    patch["quantity"] = coerce_positive_quantity(patch.get("quantity"))
    _require_non_negative(patch, "price", MAX_MONEY)


def enforce_rules_cash_withdrawal(patch: dict) -> None:
    amount = patch.get("amount")
    if amount is None or amount < Decimal("0.01"):
        raise ValidationError("amount must be at least 0.01")
    if amount > MAX_MONEY:
        raise ValidationError(f"amount cannot exceed {MAX_MONEY}")
