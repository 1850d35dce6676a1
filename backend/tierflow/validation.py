from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MAX_QUANTITY = 1_000_000


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for JSON input.

    Rejects bools, floats, decimals and scientific notation so "1e3" or 2.5
    never silently become a quantity.
    """
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    raise ValidationError(f"{field} must be an integer", field=field)


def coerce_positive_int(value: Any, field: str, maximum: int | None = None) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} must be at most {maximum}", field=field)
    return number


def optional_int(value: Any) -> int | None:
    """Lenient parse used for query-string filters: malformed input yields None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return coerce_int(value, "value")
    except ValidationError:
        return None


def money_to_cents(value: Any, field: str = "price") -> int:
    """
    Convert a currency amount ("50", 50, 49.99, "49.99") into integer cents.

    At most two decimal places are accepted; the amount must be positive.
    """
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", field=field)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number", field=field)
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} may have at most 2 decimal places", field=field)

    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return validate_price_cents(cents, field)


def validate_price_cents(cents: Any, field: str = "unit_price_cents") -> int:
    cents = coerce_int(cents, field)
    if cents <= 0:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed price", field=field)
    return cents


def require_text(value: Any, field: str, max_length: int | None = None) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    text = value.strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return text


def optional_text(value: Any, field: str, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return text
