"""
Shared Pydantic validators for common data types.
"""

from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import BeforeValidator


def _to_decimal(v: Any) -> Decimal:
    if isinstance(v, Decimal):
        return v
    try:
        return Decimal(str(v))
    except Exception:
        raise ValueError(f"Invalid decimal value: {v}")


def validate_money(v: Any) -> Decimal:
    """
    Validate a money amount.

    Must be non-negative; quantized to 2 decimal places.
    """
    if v is None:
        raise ValueError("Amount is required")
    amount = _to_decimal(v)
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    return amount.quantize(Decimal("0.01"))


def validate_money_optional(v: Any) -> Optional[Decimal]:
    if v is None:
        return None
    return validate_money(v)


def validate_positive_decimal(v: Any) -> Decimal:
    """Validate a strictly positive quantity (weight, capacity, distance)."""
    if v is None:
        raise ValueError("Value is required")
    value = _to_decimal(v)
    if value <= 0:
        raise ValueError(f"Value must be positive, got {value}")
    return value


def validate_non_negative_decimal(v: Any) -> Decimal:
    if v is None:
        raise ValueError("Value is required")
    value = _to_decimal(v)
    if value < 0:
        raise ValueError(f"Value must be non-negative, got {value}")
    return value


def validate_non_empty(v: Any) -> str:
    """Strip and reject blank strings."""
    if v is None:
        raise ValueError("Value is required")
    text = str(v).strip()
    if not text:
        raise ValueError("Value must not be blank")
    return text


def validate_province(v: Any) -> Optional[str]:
    if v is None:
        return None
    text = " ".join(str(v).split())
    return text or None


Money = Annotated[Decimal, BeforeValidator(validate_money)]
MoneyOptional = Annotated[Optional[Decimal], BeforeValidator(validate_money_optional)]
PositiveDecimal = Annotated[Decimal, BeforeValidator(validate_positive_decimal)]
NonNegativeDecimal = Annotated[Decimal, BeforeValidator(validate_non_negative_decimal)]
NonEmptyStr = Annotated[str, BeforeValidator(validate_non_empty)]
Province = Annotated[Optional[str], BeforeValidator(validate_province)]
