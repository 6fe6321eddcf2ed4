"""Cent-precision helpers for float money amounts."""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_CENT = Decimal("0.01")


def to_decimal(amount: float | int | str | Decimal) -> Decimal:
    """Convert *amount* via its shortest repr so binary float noise is dropped."""
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, float):
        return Decimal(repr(amount))
    return Decimal(str(amount))


def truncate_cents(amount: float | Decimal) -> float:
    """Drop everything past the second decimal place."""
    return float(to_decimal(amount).quantize(_CENT, rounding=ROUND_DOWN))


def round_cents(amount: float | Decimal) -> float:
    return float(to_decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP))


def add_cents(total: float, amount: float) -> float:
    """Return ``total + amount`` rounded to the cent."""
    return round_cents(to_decimal(total) + to_decimal(amount))


def parse_price(value: Any) -> float:
    """Parse a price given as a number or as text such as ``"$12.50"``.

    Raises ValueError when *value* is not a finite, non-negative amount.
    """
    if isinstance(value, bool):
        msg = f"Invalid price: {value!r}"
        raise ValueError(msg)
    text = value.strip().lstrip("$").replace(",", "") if isinstance(value, str) else value
    try:
        amount = to_decimal(text)
    except (InvalidOperation, TypeError):
        msg = f"Invalid price: {value!r}"
        raise ValueError(msg) from None
    if not amount.is_finite() or amount < 0:
        msg = f"Invalid price: {value!r}"
        raise ValueError(msg)
    return round_cents(amount)
