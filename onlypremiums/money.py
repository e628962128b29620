"""
Money — integer minor units, percentage math and INR display.

    >>> apply_percentage(19900, 40)
    7960
    >>> format_currency(11940)
    '₹119.4'
    >>> format_currency(12345600)
    '₹1,23,456'
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from onlypremiums.domain import CartItem

CURRENCY_SYMBOLS = {"INR": "₹"}


# ═══════════════════════════════════════════════════════════════════════════════
# Rounding
# ═══════════════════════════════════════════════════════════════════════════════

def round_half_up(value: Decimal | int | float | str) -> int:
    """Nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def apply_percentage(amount: int, percentage: int | float) -> int:
    """round_half_up(amount * percentage / 100) without float drift."""
    return round_half_up(Decimal(amount) * Decimal(str(percentage)) / 100)


def percent_off(original_price: int, price: int) -> int:
    if original_price <= 0:
        return 0
    return round_half_up(Decimal(original_price - price) / Decimal(original_price) * 100)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart math
# ═══════════════════════════════════════════════════════════════════════════════

def calculate_total(items: Iterable[CartItem]) -> int:
    return sum(item.line_total for item in items)


def calculate_savings(items: Iterable[CartItem]) -> int:
    return sum(item.line_savings for item in items)


# ═══════════════════════════════════════════════════════════════════════════════
# Display
# ═══════════════════════════════════════════════════════════════════════════════

def _group_indian(digits: str) -> str:
    # last three digits, then pairs: 12345678 -> 1,23,45,678
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_currency(amount: int, currency: str = "INR") -> str:
    """
    Format paise as rupees, en-IN style.

    Whole amounts carry no fraction; otherwise up to two digits with
    trailing zeros dropped.
    """
    value = (Decimal(amount) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    whole, _, fraction = f"{abs(value):.2f}".partition(".")
    fraction = fraction.rstrip("0")
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    text = _group_indian(whole)
    if fraction:
        text = f"{text}.{fraction}"
    return f"{sign}{symbol}{text}"


__all__ = (
    "round_half_up",
    "apply_percentage",
    "percent_off",
    "calculate_total",
    "calculate_savings",
    "format_currency",
)
