"""
Formatting helpers for API messages.
Money and dates are rendered the way the storefront shows them to shoppers.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union, Optional

CENT = Decimal('0.01')


def to_decimal(value: Union[int, float, Decimal, str, None]) -> Optional[Decimal]:
    """
    Convert a number-like value to Decimal without float artefacts.

    Returns None for None/empty input and Decimal('NaN') for text that is
    not a number, so callers can detect malformed data explicitly.
    """
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        return Decimal('NaN')


def round_money(value: Decimal) -> Decimal:
    """Round to currency precision using standard (half-up) rounding."""
    if value.is_nan():
        return value
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount as dollars with two decimals.

    Examples:
        money(50) -> "$50.00"
        money(Decimal('9.9')) -> "$9.90"
        money(None) -> "-"
    """
    num = to_decimal(value)
    if num is None or num.is_nan():
        return "-"
    return f"${round_money(num):.2f}"


def date_us(value: Union[date, datetime, None]) -> str:
    """
    Format a date as month/day/year without zero padding.

    Examples:
        date_us(date(2026, 3, 7)) -> "3/7/2026"
    """
    if value is None:
        return "-"
    return f"{value.month}/{value.day}/{value.year}"


def money_json(value: Optional[Decimal]) -> Optional[float]:
    """Render a stored Decimal amount for JSON responses."""
    if value is None:
        return None
    return float(round_money(Decimal(value)))
