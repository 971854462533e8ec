"""
Formatting helpers for quote documents and emails.
Numbers and dates follow the Swedish style used on printed quotes.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional


def money(value: Union[int, float, Decimal, str, None], currency: Optional[str] = None) -> str:
    """
    Format an amount with exactly 2 decimals, space as thousands separator
    and comma as decimal separator.

    Examples:
        money(4050) -> "4 050,00"
        money(Decimal('1234567.5'), 'SEK') -> "1 234 567,50 SEK"
        money(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        normalized = str(value).replace(",", ".")
        num = Decimal(normalized).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    num = abs(num)

    integer_part, decimal_part = f"{num:.2f}".split(".")
    reversed_int = integer_part[::-1]
    groups = [reversed_int[i:i+3] for i in range(0, len(reversed_int), 3)]
    integer_formatted = ' '.join(groups)[::-1]

    formatted = f"{sign}{integer_formatted},{decimal_part}"
    return f"{formatted} {currency}" if currency else formatted


def percent(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format a percentage without trailing zeros.

    Examples:
        percent(Decimal('25.00')) -> "25 %"
        percent('12.50') -> "12,5 %"
    """
    if value is None or value == "":
        return "-"
    try:
        num = Decimal(str(value).replace(",", "."))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    text = format(num.normalize(), 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return f"{text.replace('.', ',')} %"


def date_display(value: Union[date, datetime, None]) -> str:
    """YYYY-MM-DD, or "-" when missing."""
    if value is None:
        return "-"
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        return "-"
    return value.isoformat()
