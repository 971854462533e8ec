"""Catalog service: products and customers scoped to an organization."""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_, inspect as sa_inspect
from sqlalchemy.orm import Session

from quotebuilder.database import unit_of_work
from quotebuilder.exceptions import ValidationError, NotFoundError
from quotebuilder.models import Product, Customer
from quotebuilder.services.catalog_defaults import (
    ProductRecord, CustomerRecord, product_from_row, customer_from_row, DEFAULT_UNIT
)
from quotebuilder.services.pricing import round_money
from quotebuilder.utils.search import contains_pattern, LIKE_ESCAPE

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

PRODUCT_FIELDS = ('name', 'description', 'category', 'unit_price', 'unit')
CUSTOMER_FIELDS = ('name', 'email', 'phone', 'company_name', 'address', 'city', 'postal_code')


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def _readable_columns(session: Session, table) -> list:
    """Columns of ``table`` that exist in the connected database."""
    available = {col['name'] for col in sa_inspect(session.connection()).get_columns(table.name)}
    skipped = [col.name for col in table.columns if col.name not in available]
    if skipped:
        logger.warning(f"Table {table.name} lacks columns {skipped}; defaults will be used")
    return [col for col in table.columns if col.name in available]


def _read_rows(session: Session, table, organization_id: int, active_only: bool = False):
    columns = _readable_columns(session, table)
    names = {col.name for col in columns}

    query = select(*columns).where(table.c.organization_id == organization_id)
    if active_only and 'active' in names:
        query = query.where(table.c.active == True)  # noqa: E712
    if 'name' in names:
        query = query.order_by(table.c.name)

    return session.execute(query).mappings().all()


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def _parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value).strip().replace(',', '.'))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError('Unit price must be a number.')
    if not price.is_finite() or price < 0:
        raise ValidationError('Unit price must be zero or positive.')
    return round_money(price)


def _product_values(fields: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    values = {}
    if not partial or 'name' in fields:
        name = _clean(fields.get('name'))
        if not name:
            raise ValidationError('Product name is required.')
        values['name'] = name
    if not partial or 'unit_price' in fields:
        if fields.get('unit_price') in (None, ''):
            raise ValidationError('Unit price is required.')
        values['unit_price'] = _parse_price(fields['unit_price'])
    for key in ('description', 'category'):
        if not partial or key in fields:
            values[key] = _clean(fields.get(key))
    if not partial or 'unit' in fields:
        values['unit'] = _clean(fields.get('unit')) or DEFAULT_UNIT
    return values


def list_products(session: Session, organization_id: int, include_inactive: bool = False) -> List[ProductRecord]:
    """List the organization's products with defaults filled for missing fields."""
    rows = _read_rows(session, Product.__table__, organization_id, active_only=not include_inactive)
    records = [product_from_row(row) for row in rows]
    return [record for record in records if record is not None]


def list_products_by_category(session: Session, organization_id: int, category: str) -> List[ProductRecord]:
    """Active products in one category (after defaulting)."""
    return [p for p in list_products(session, organization_id) if p.category == category]


def search_products(session: Session, organization_id: int, query: str) -> List[ProductRecord]:
    """
    Case-insensitive substring search over name, description and category
    of the active products. Matches run on the defaulted records, so a
    product without a stored category is found under the default one.
    """
    term = (query or '').strip().lower()
    products = list_products(session, organization_id)
    if not term:
        return products
    return [
        p for p in products
        if any(term in (value or '').lower() for value in (p.name, p.description, p.category))
    ]


def list_categories(session: Session, organization_id: int) -> List[str]:
    """Distinct categories of the active products, sorted."""
    return sorted({p.category for p in list_products(session, organization_id)})


def get_product(session: Session, organization_id: int, product_id: int) -> Product:
    """Fetch a product of the organization or raise NotFoundError."""
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.organization_id == organization_id
    ).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found.')
    return product


def create_product(session: Session, organization_id: int, fields: Dict[str, Any]) -> Product:
    """Create a product in the organization's catalog."""
    values = _product_values(fields)
    with unit_of_work(session):
        product = Product(organization_id=organization_id, active=True, **values)
        session.add(product)
    logger.info(f"Product {product.id} '{product.name}' created for organization {organization_id}")
    return product


def update_product(session: Session, organization_id: int, product_id: int, fields: Dict[str, Any]) -> Product:
    """Update editable product fields; unknown keys are ignored."""
    values = _product_values({k: v for k, v in fields.items() if k in PRODUCT_FIELDS}, partial=True)
    with unit_of_work(session):
        product = get_product(session, organization_id, product_id)
        for key, value in values.items():
            setattr(product, key, value)
    logger.info(f"Product {product_id} updated: {sorted(values)}")
    return product


def deactivate_product(session: Session, organization_id: int, product_id: int) -> Product:
    """Soft delete: hide the product from new selections."""
    with unit_of_work(session):
        product = get_product(session, organization_id, product_id)
        product.active = False
    logger.info(f"Product {product_id} deactivated")
    return product


def get_product_stats(session: Session, organization_id: int) -> Dict[str, Any]:
    """Catalog figures for the product library header."""
    products = list_products(session, organization_id, include_inactive=True)
    active = [p for p in products if p.active]
    average = Decimal('0.00')
    if active:
        average = round_money(sum((p.unit_price for p in active), Decimal('0')) / len(active))

    return {
        'total_products': len(products),
        'active_products': len(active),
        'inactive_products': len(products) - len(active),
        'categories': len({p.category for p in active}),
        'average_price': average,
    }


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

def validate_customer_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return cleaned customer values or raise ValidationError."""
    values = {key: _clean(fields.get(key)) for key in CUSTOMER_FIELDS}
    if not values['name']:
        raise ValidationError('Customer name is required.')
    if not values['email']:
        raise ValidationError('Customer email is required.')
    if not EMAIL_PATTERN.match(values['email']):
        raise ValidationError(f"Invalid email address: {values['email']}")
    return values


def list_customers(session: Session, organization_id: int) -> List[CustomerRecord]:
    """List the organization's customers with defaults filled."""
    rows = _read_rows(session, Customer.__table__, organization_id)
    records = [customer_from_row(row) for row in rows]
    return [record for record in records if record is not None]


def get_customer(session: Session, organization_id: int, customer_id: int) -> Customer:
    """Fetch a customer of the organization or raise NotFoundError."""
    customer = session.query(Customer).filter(
        Customer.id == customer_id,
        Customer.organization_id == organization_id
    ).first()
    if not customer:
        raise NotFoundError(f'Customer {customer_id} not found.')
    return customer


def create_customer(session: Session, organization_id: int, fields: Dict[str, Any]) -> Customer:
    """Create a customer; name and a valid email are mandatory."""
    values = validate_customer_fields(fields)
    with unit_of_work(session):
        customer = Customer(organization_id=organization_id, **values)
        session.add(customer)
    logger.info(f"Customer {customer.id} '{customer.name}' created for organization {organization_id}")
    return customer


def find_customers_matching(session: Session, organization_id: int, query: str) -> List[CustomerRecord]:
    """Case-insensitive substring search over name, company and email."""
    term = (query or '').strip().lower()
    if not term:
        return list_customers(session, organization_id)

    pattern = contains_pattern(term)
    customers = session.query(Customer).filter(
        Customer.organization_id == organization_id,
        or_(
            func.lower(Customer.name).like(pattern, escape=LIKE_ESCAPE),
            func.lower(Customer.company_name).like(pattern, escape=LIKE_ESCAPE),
            func.lower(Customer.email).like(pattern, escape=LIKE_ESCAPE),
        )
    ).order_by(Customer.name).all()

    records = [customer_from_row({key: getattr(c, key) for key in ('id',) + CUSTOMER_FIELDS}) for c in customers]
    return [record for record in records if record is not None]
