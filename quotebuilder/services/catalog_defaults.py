"""Default-filling adapter for catalog rows.

Catalog listings read whichever columns the database actually has and hand
each raw row to the functions below. Optional fields that are absent or
empty get a default; a row without an identity is reported back as ``None``
so the caller can skip it without failing the page.
"""
import logging
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Mapping, Optional

from quotebuilder.services.pricing import normalize_price, round_money

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = 'Uncategorized'
DEFAULT_UNIT = 'piece'


@dataclass(frozen=True)
class ProductRecord:
    id: int
    name: str
    description: str
    category: str
    unit_price: Decimal
    unit: str
    active: bool

    def to_dict(self):
        data = asdict(self)
        data['unit_price'] = str(self.unit_price)
        return data


@dataclass(frozen=True)
class CustomerRecord:
    id: int
    name: str
    email: str
    phone: str
    company_name: str
    address: str
    city: str
    postal_code: str

    def to_dict(self):
        return asdict(self)


def _text(row: Mapping[str, Any], key: str, default: str = '') -> str:
    value = row.get(key)
    if value is None:
        return default
    value = str(value).strip()
    return value or default


def _identity(row: Mapping[str, Any], kind: str):
    row_id = row.get('id')
    name = _text(row, 'name')
    if row_id is None or not name:
        logger.warning(f"Skipping {kind} row without id/name: {dict(row)!r}")
        return None, None
    return row_id, name


def product_from_row(row: Mapping[str, Any]) -> Optional[ProductRecord]:
    """Build a ProductRecord, filling defaults for missing optional fields."""
    row_id, name = _identity(row, 'product')
    if row_id is None:
        return None

    missing = [key for key in ('category', 'unit', 'unit_price') if row.get(key) in (None, '')]
    if missing:
        logger.warning(f"Product {row_id} missing {', '.join(missing)}; using defaults")

    active = row.get('active')
    return ProductRecord(
        id=row_id,
        name=name,
        description=_text(row, 'description'),
        category=_text(row, 'category', DEFAULT_CATEGORY),
        unit_price=round_money(normalize_price(row.get('unit_price'))),
        unit=_text(row, 'unit', DEFAULT_UNIT),
        active=True if active is None else bool(active),
    )


def customer_from_row(row: Mapping[str, Any]) -> Optional[CustomerRecord]:
    """Build a CustomerRecord, filling empty strings for optional fields."""
    row_id, name = _identity(row, 'customer')
    if row_id is None:
        return None

    return CustomerRecord(
        id=row_id,
        name=name,
        email=_text(row, 'email'),
        phone=_text(row, 'phone'),
        company_name=_text(row, 'company_name'),
        address=_text(row, 'address'),
        city=_text(row, 'city'),
        postal_code=_text(row, 'postal_code'),
    )
