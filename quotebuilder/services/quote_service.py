"""Quote service: creation, numbering and lifecycle transitions of quotes."""

import logging
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Dict, Any, List, Optional

from sqlalchemy import or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from quotebuilder.database import unit_of_work
from quotebuilder.exceptions import (
    ValidationError, StateError, NotFoundError, TransientStorageError, DuplicateQuoteError
)
from quotebuilder.models import (
    Quote, QuoteStatus, QuoteLineItem, QuoteNumberSequence, Customer, Product
)
from quotebuilder.services.pricing import (
    compute_line_total, compute_quote_totals, normalize_quantity, normalize_percent, normalize_price
)
from quotebuilder.utils.app_config import config_value
from quotebuilder.utils.search import contains_pattern, LIKE_ESCAPE

logger = logging.getLogger(__name__)

# Stored statuses only move forward along these edges.
ALLOWED_TRANSITIONS = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT},
    QuoteStatus.SENT: {QuoteStatus.VIEWED, QuoteStatus.ACCEPTED, QuoteStatus.REJECTED},
    QuoteStatus.VIEWED: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: set(),
}

TIMESTAMP_FIELDS = {
    QuoteStatus.SENT: 'sent_at',
    QuoteStatus.VIEWED: 'viewed_at',
    QuoteStatus.ACCEPTED: 'accepted_at',
    QuoteStatus.REJECTED: 'rejected_at',
}

INITIAL_STATUSES = (QuoteStatus.DRAFT, QuoteStatus.SENT)
EXPIRABLE_STATUSES = (QuoteStatus.SENT.value, QuoteStatus.VIEWED.value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def effective_status(quote: Quote, today: Optional[date] = None) -> QuoteStatus:
    """
    Status as displayed: sent/viewed quotes past ``valid_until`` read as expired.

    Accepted and rejected quotes are never reported as expired.
    """
    today = today or date.today()
    if quote.status in EXPIRABLE_STATUSES and quote.valid_until and quote.valid_until < today:
        return QuoteStatus.EXPIRED
    return QuoteStatus(quote.status)


def allocate_quote_number(session: Session, organization_id: int, prefix: Optional[str] = None) -> str:
    """
    Hand out the next quote number of the organization.

    Must run inside the transaction that inserts the quote: the counter row is
    locked until commit and rolled back together with a failed insert, so
    numbers are never skipped or reused.
    """
    prefix = prefix or config_value('QUOTE_NUMBER_PREFIX', 'Q')

    sequence = session.query(QuoteNumberSequence).filter(
        QuoteNumberSequence.organization_id == organization_id
    ).with_for_update().first()

    if sequence is None:
        sequence = QuoteNumberSequence(organization_id=organization_id, last_value=0)
        session.add(sequence)
        try:
            session.flush()
        except IntegrityError as e:
            # Another session created the counter first
            raise TransientStorageError('Quote number allocation conflict, please retry') from e

    sequence.last_value = (sequence.last_value or 0) + 1
    session.flush()
    return f"{prefix}-{sequence.last_value:05d}"


def _get_quote(session: Session, organization_id: int, quote_id: int, for_update: bool = False) -> Quote:
    query = session.query(Quote).filter(Quote.id == quote_id, Quote.organization_id == organization_id)
    if for_update:
        query = query.with_for_update()
    quote = query.first()
    if not quote:
        raise NotFoundError(f'Quote {quote_id} not found.')
    return quote


def get_quote(session: Session, organization_id: int, quote_id: int) -> Quote:
    """Fetch a quote with its customer and ordered line items."""
    quote = session.query(Quote).options(
        joinedload(Quote.customer),
        selectinload(Quote.lines),
    ).filter(
        Quote.id == quote_id,
        Quote.organization_id == organization_id
    ).first()
    if not quote:
        raise NotFoundError(f'Quote {quote_id} not found.')
    return quote


def _build_line(item: Dict[str, Any], position: int) -> QuoteLineItem:
    description = (item.get('description') or '').strip()
    if not description:
        raise ValidationError(f'Line {position + 1} needs a description.')

    unit_price = normalize_price(item.get('unit_price'))
    quantity = normalize_quantity(item.get('quantity'))
    discount = normalize_percent(item.get('discount_percent'))

    return QuoteLineItem(
        product_id=item.get('product_id'),
        description=description,
        unit=item.get('unit'),
        quantity=quantity,
        unit_price=unit_price,
        discount_percent=discount,
        total=compute_line_total(unit_price, quantity, discount),
        sort_order=item.get('sort_order', position),
    )


def _add_line_items(session: Session, quote: Quote, line_items: List[Dict[str, Any]]) -> None:
    for position, item in enumerate(line_items):
        quote.lines.append(_build_line(item, position))
    session.flush()


def _check_references(session: Session, organization_id: int, customer_id: Any, line_items: List[Dict[str, Any]]) -> None:
    customer = session.query(Customer.id).filter(
        Customer.id == customer_id,
        Customer.organization_id == organization_id
    ).first()
    if not customer:
        raise NotFoundError(f'Customer {customer_id} not found.')

    product_ids = {item['product_id'] for item in line_items if item.get('product_id') is not None}
    if product_ids:
        found = session.query(Product.id).filter(
            Product.id.in_(product_ids),
            Product.organization_id == organization_id
        ).count()
        if found != len(product_ids):
            raise NotFoundError('One or more products not found.')


def _ensure_draft_unsaved(session: Session, organization_id: int, draft_token: str) -> None:
    existing = session.query(Quote.id, Quote.quote_number).filter(
        Quote.organization_id == organization_id,
        Quote.draft_token == draft_token
    ).first()
    if existing:
        raise DuplicateQuoteError(existing.quote_number, existing.id)


def create_quote(
    session: Session,
    organization_id: int,
    data: Dict[str, Any],
    line_items: List[Dict[str, Any]],
) -> Quote:
    """
    Persist a quote together with all of its line items.

    Number allocation, the quote row and its lines form one transaction:
    either everything exists afterwards or nothing does. Totals are derived
    from the lines with the pricing calculator, never taken from the caller.

    Args:
        data: customer_id, status ('draft' or 'sent'), title, notes,
            valid_until, global_discount, tax_rate and the optional
            draft_token of the wizard draft (one quote per token)
        line_items: dicts with product_id, description, unit, quantity,
            unit_price, discount_percent and optional sort_order

    Returns:
        The hydrated quote (customer and ordered lines loaded)
    """
    if not line_items:
        raise ValidationError('A quote needs at least one line item.')

    try:
        status = QuoteStatus(data.get('status') or QuoteStatus.DRAFT.value)
    except ValueError:
        raise ValidationError(f"Invalid initial status: {data.get('status')}")
    if status not in INITIAL_STATUSES:
        raise ValidationError(f'A new quote cannot start as {status.value}.')

    global_discount = normalize_percent(data.get('global_discount'))
    tax_rate = normalize_percent(data.get('tax_rate'))

    draft_token = data.get('draft_token') or None

    with unit_of_work(session):
        _check_references(session, organization_id, data.get('customer_id'), line_items)

        # The counter row lock serializes saves within the organization
        quote_number = allocate_quote_number(session, organization_id)
        if draft_token:
            _ensure_draft_unsaved(session, organization_id, draft_token)

        quote = Quote(
            organization_id=organization_id,
            customer_id=data['customer_id'],
            quote_number=quote_number,
            draft_token=draft_token,
            title=(data.get('title') or '').strip() or None,
            status=status.value,
            global_discount=global_discount,
            tax_rate=tax_rate,
            notes=(data.get('notes') or '').strip() or None,
            valid_until=data.get('valid_until'),
            sent_at=_now() if status == QuoteStatus.SENT else None,
        )
        session.add(quote)
        try:
            session.flush()
        except IntegrityError as e:
            if draft_token:
                raise StateError('This draft is already being saved.') from e
            raise

        _add_line_items(session, quote, line_items)

        totals = compute_quote_totals(quote.lines, global_discount, tax_rate)
        quote.subtotal = totals.subtotal
        quote.tax_amount = totals.tax_amount
        quote.total_amount = totals.total

    logger.info(
        f"Quote {quote.quote_number} (id={quote.id}) created for organization {organization_id} "
        f"as {status.value}, total={totals.total}"
    )
    return get_quote(session, organization_id, quote.id)


def _transition(session: Session, organization_id: int, quote_id: int, target: QuoteStatus) -> Quote:
    with unit_of_work(session):
        quote = _get_quote(session, organization_id, quote_id, for_update=True)
        current = QuoteStatus(quote.status)

        if target == QuoteStatus.VIEWED and current == QuoteStatus.DRAFT:
            raise StateError('Quote must be sent before it can be marked as viewed.')
        if target not in ALLOWED_TRANSITIONS.get(current, set()):
            raise StateError(f'Cannot change quote {quote.quote_number} from {current.value} to {target.value}.')
        if target in (QuoteStatus.ACCEPTED, QuoteStatus.REJECTED) and quote.is_expired:
            raise StateError(f'Quote {quote.quote_number} expired on {quote.valid_until.isoformat()}.')

        quote.status = target.value
        setattr(quote, TIMESTAMP_FIELDS[target], _now())

    logger.info(f"Quote {quote_id} moved {current.value} -> {target.value}")
    return get_quote(session, organization_id, quote_id)


def mark_sent(session: Session, organization_id: int, quote_id: int) -> Quote:
    return _transition(session, organization_id, quote_id, QuoteStatus.SENT)


def mark_viewed(session: Session, organization_id: int, quote_id: int) -> Quote:
    return _transition(session, organization_id, quote_id, QuoteStatus.VIEWED)


def mark_accepted(session: Session, organization_id: int, quote_id: int) -> Quote:
    return _transition(session, organization_id, quote_id, QuoteStatus.ACCEPTED)


def mark_rejected(session: Session, organization_id: int, quote_id: int) -> Quote:
    return _transition(session, organization_id, quote_id, QuoteStatus.REJECTED)


def delete_quote(session: Session, organization_id: int, quote_id: int) -> None:
    """Delete a quote and, through the cascade, all of its line items."""
    with unit_of_work(session):
        quote = _get_quote(session, organization_id, quote_id)
        number = quote.quote_number
        session.delete(quote)
    logger.info(f"Quote {number} (id={quote_id}) deleted")


def list_quotes(session: Session, organization_id: int, status: Optional[str] = None) -> List[Quote]:
    """List quotes, newest first, optionally filtered by (effective) status."""
    query = session.query(Quote).options(joinedload(Quote.customer)).filter(
        Quote.organization_id == organization_id
    )

    if status:
        try:
            wanted = QuoteStatus(status.lower())
        except ValueError:
            raise ValidationError(f'Unknown quote status: {status}')

        today = date.today()
        if wanted == QuoteStatus.EXPIRED:
            query = query.filter(
                Quote.status.in_(EXPIRABLE_STATUSES),
                Quote.valid_until.isnot(None),
                Quote.valid_until < today,
            )
        elif wanted.value in EXPIRABLE_STATUSES:
            query = query.filter(
                Quote.status == wanted.value,
                or_(Quote.valid_until.is_(None), Quote.valid_until >= today),
            )
        else:
            query = query.filter(Quote.status == wanted.value)

    return query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()


def search_quotes(session: Session, organization_id: int, search: str) -> List[Quote]:
    """Case-insensitive search over quote number, title and customer name."""
    term = (search or '').strip().lower()
    if not term:
        return list_quotes(session, organization_id)

    pattern = contains_pattern(term)
    return session.query(Quote).join(Customer).options(joinedload(Quote.customer)).filter(
        Quote.organization_id == organization_id,
        or_(
            func.lower(Quote.quote_number).like(pattern, escape=LIKE_ESCAPE),
            func.lower(Quote.title).like(pattern, escape=LIKE_ESCAPE),
            func.lower(Customer.name).like(pattern, escape=LIKE_ESCAPE),
        )
    ).order_by(Quote.created_at.desc(), Quote.id.desc()).all()


def get_quote_stats(session: Session, organization_id: int, today: Optional[date] = None) -> Dict[str, Any]:
    """Counts per effective status plus value and conversion figures."""
    today = today or date.today()
    quotes = session.query(Quote).filter(Quote.organization_id == organization_id).all()

    status_counts = {status.value: 0 for status in QuoteStatus}
    total_value = Decimal('0.00')
    accepted_value = Decimal('0.00')
    this_month = 0

    for quote in quotes:
        status = effective_status(quote, today)
        status_counts[status.value] += 1
        total_value += Decimal(quote.total_amount or 0)
        if status == QuoteStatus.ACCEPTED:
            accepted_value += Decimal(quote.total_amount or 0)
        created = quote.created_at
        if created and created.year == today.year and created.month == today.month:
            this_month += 1

    total = len(quotes)
    conversion = Decimal('0.00')
    if total:
        conversion = (Decimal(status_counts[QuoteStatus.ACCEPTED.value]) * 100 / total).quantize(Decimal('0.01'))

    return {
        'total_quotes': total,
        'status_counts': status_counts,
        'total_value': total_value,
        'accepted_value': accepted_value,
        'quotes_this_month': this_month,
        'conversion_rate': conversion,
    }
