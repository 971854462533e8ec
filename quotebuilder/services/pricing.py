"""Pricing calculator for quote lines and quote totals.

Everything here is pure: no database access, no exceptions. Invalid numeric
input is clamped to something sane so totals always render while a quote is
being edited.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Mapping, Union

Number = Union[int, float, str, Decimal, None]

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')


@dataclass(frozen=True)
class QuoteTotals:
    """Monetary breakdown of a quote."""
    subtotal: Decimal = Decimal('0.00')
    discount_amount: Decimal = Decimal('0.00')
    discounted_subtotal: Decimal = Decimal('0.00')
    tax_amount: Decimal = Decimal('0.00')
    total: Decimal = Decimal('0.00')
    line_totals: List[Decimal] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'subtotal': str(self.subtotal),
            'discount_amount': str(self.discount_amount),
            'discounted_subtotal': str(self.discounted_subtotal),
            'tax_amount': str(self.tax_amount),
            'total': str(self.total),
        }


def round_money(value: Decimal) -> Decimal:
    """Round to currency precision (half up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Number):
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(',', '.')
        if not value:
            return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def normalize_quantity(value: Number) -> int:
    """Quantities are whole numbers >= 1; anything else becomes 1."""
    number = _to_decimal(value)
    if number is None:
        return 1
    quantity = int(number)
    return quantity if quantity >= 1 else 1


def normalize_percent(value: Number) -> Decimal:
    """Clamp a percentage to [0, 100]."""
    number = _to_decimal(value)
    if number is None or number < ZERO:
        return ZERO
    if number > HUNDRED:
        return HUNDRED
    return number


def normalize_price(value: Number) -> Decimal:
    """Unit prices are >= 0; unparseable input is 0."""
    number = _to_decimal(value)
    if number is None or number < ZERO:
        return ZERO
    return number


def _line_total_unrounded(unit_price: Number, quantity: Number, discount_percent: Number) -> Decimal:
    price = normalize_price(unit_price)
    qty = normalize_quantity(quantity)
    discount = normalize_percent(discount_percent)
    return Decimal(qty) * price * (1 - discount / HUNDRED)


def compute_line_total(unit_price: Number, quantity: Number, discount_percent: Number = 0) -> Decimal:
    """
    Line total = quantity x unit price x (1 - discount/100), rounded to cents.

    Examples:
        compute_line_total(1200, 3, 10) -> Decimal('3240.00')
        compute_line_total('99.90', 0, 150) -> Decimal('0.00')
    """
    return round_money(_line_total_unrounded(unit_price, quantity, discount_percent))


def _line_value(line: Any, key: str):
    if isinstance(line, Mapping):
        return line.get(key)
    return getattr(line, key, None)


def compute_quote_totals(
    lines: Iterable[Any],
    global_discount_percent: Number = 0,
    tax_rate_percent: Number = 0,
) -> QuoteTotals:
    """
    Derive the full breakdown of a quote from its current lines.

    Order is fixed: per-line discount, sum to subtotal, global discount on the
    subtotal, tax on the discounted subtotal. Lines are objects or mappings
    exposing ``unit_price``, ``quantity`` and ``discount_percent``.

    The total is rounded once from the unrounded chain so intermediate
    rounding never compounds. The rounded parts therefore need not add up:
    ``discounted_subtotal + tax_amount`` may differ from ``total`` by 0.01
    (subtotal 0.05, 50 % discount, 25 % tax gives 0.03 + 0.01 against a
    total of 0.03). ``total`` is the amount owed.
    """
    line_totals = [
        compute_line_total(
            _line_value(line, 'unit_price'),
            _line_value(line, 'quantity'),
            _line_value(line, 'discount_percent'),
        )
        for line in (lines or [])
    ]
    subtotal = sum(line_totals, ZERO)

    discount_rate = normalize_percent(global_discount_percent) / HUNDRED
    tax_rate = normalize_percent(tax_rate_percent) / HUNDRED

    discounted = subtotal * (1 - discount_rate)
    tax = discounted * tax_rate
    total = subtotal * (1 - discount_rate) * (1 + tax_rate)

    return QuoteTotals(
        subtotal=round_money(subtotal),
        discount_amount=round_money(subtotal * discount_rate),
        discounted_subtotal=round_money(discounted),
        tax_amount=round_money(tax),
        total=round_money(total),
        line_totals=line_totals,
    )
