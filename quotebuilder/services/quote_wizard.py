"""Quote wizard - three step builder that turns a draft into a persisted quote.

Steps: select customer -> select/configure line items -> review and commit.
All draft state lives in the wizard instance (one per user session); nothing
touches the database until ``save``.
"""

import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from quotebuilder.exceptions import (
    QuoteBuilderError, ValidationError, StateError, NotFoundError, DuplicateQuoteError
)
from quotebuilder.models import Quote, QuoteStatus
from quotebuilder.services import catalog_service, quote_service
from quotebuilder.services.catalog_service import CUSTOMER_FIELDS
from quotebuilder.services.pricing import (
    QuoteTotals, compute_line_total, compute_quote_totals,
    normalize_quantity, normalize_percent, normalize_price,
)
from quotebuilder.utils.app_config import config_value

logger = logging.getLogger(__name__)


class WizardStep(enum.IntEnum):
    SELECT_CUSTOMER = 1
    SELECT_ITEMS = 2
    REVIEW_AND_COMMIT = 3


@dataclass(frozen=True)
class ExistingCustomer:
    """A customer already persisted in the organization."""
    id: int
    name: str = ''
    email: str = ''


@dataclass(frozen=True)
class AdhocCustomer:
    """Customer fields typed into the wizard; persisted on save."""
    fields: Dict[str, str]

    @property
    def is_complete(self) -> bool:
        return bool(self.fields.get('name')) and bool(self.fields.get('email'))


CustomerSelection = Union[ExistingCustomer, AdhocCustomer]


@dataclass
class DraftLine:
    id: str
    product_id: Optional[int]
    description: str
    unit: Optional[str]
    unit_price: Decimal
    quantity: int = 1
    discount_percent: Decimal = Decimal('0')
    line_total: Decimal = Decimal('0.00')


@dataclass
class QuoteDraft:
    customer: Optional[CustomerSelection] = None
    lines: List[DraftLine] = field(default_factory=list)
    global_discount: Decimal = Decimal('0')
    tax_rate: Decimal = Decimal('0')
    title: Optional[str] = None
    notes: Optional[str] = None
    valid_until: Optional[date] = None
    # Identifies this draft across requests; a saved quote keeps it
    token: Optional[str] = None


# ---------------------------------------------------------------------------
# Transition table and guards
# ---------------------------------------------------------------------------

def customer_ready(draft: QuoteDraft) -> bool:
    """An existing customer, or ad-hoc fields with name and email."""
    selection = draft.customer
    if isinstance(selection, ExistingCustomer):
        return True
    if isinstance(selection, AdhocCustomer):
        return selection.is_complete
    return False


def has_lines(draft: QuoteDraft) -> bool:
    return len(draft.lines) > 0


NEXT_STEP = {
    WizardStep.SELECT_CUSTOMER: WizardStep.SELECT_ITEMS,
    WizardStep.SELECT_ITEMS: WizardStep.REVIEW_AND_COMMIT,
}

PREVIOUS_STEP = {
    WizardStep.SELECT_ITEMS: WizardStep.SELECT_CUSTOMER,
    WizardStep.REVIEW_AND_COMMIT: WizardStep.SELECT_ITEMS,
}

FORWARD_GUARDS: Dict[WizardStep, Callable[[QuoteDraft], bool]] = {
    WizardStep.SELECT_CUSTOMER: customer_ready,
    WizardStep.SELECT_ITEMS: has_lines,
}


def can_advance(step: WizardStep, draft: QuoteDraft) -> bool:
    """True when ``step`` has a successor and its guard holds for ``draft``."""
    if step not in NEXT_STEP:
        return False
    return FORWARD_GUARDS[step](draft)


def _attr(obj: Any, key: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _clean_customer_fields(fields: Dict[str, Any]) -> Dict[str, str]:
    return {key: str(fields.get(key) or '').strip() for key in CUSTOMER_FIELDS}


def _parse_date(value: Any) -> Optional[date]:
    if value in (None, ''):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f'Invalid date: {value}')


class QuoteWizard:
    """
    Stateful quote builder for a single user session.

    Totals are re-derived through the pricing calculator after every draft
    mutation and exposed as ``totals``.
    """

    def __init__(
        self,
        session: Session,
        organization_id: int,
        default_tax_rate: Any = None,
        valid_days: Optional[int] = None,
        on_complete: Optional[Callable[[Quote], None]] = None,
    ):
        self.session = session
        self.organization_id = organization_id
        self.default_tax_rate = normalize_percent(
            default_tax_rate if default_tax_rate is not None else config_value('QUOTE_DEFAULT_TAX_RATE', 25)
        )
        self.valid_days = valid_days if valid_days is not None else int(config_value('QUOTE_VALID_DAYS', 30))
        self.on_complete = on_complete

        self.is_open = False
        self.saving = False
        self.step = WizardStep.SELECT_CUSTOMER
        self.draft = QuoteDraft()
        self.totals = QuoteTotals()

    # -- lifecycle ---------------------------------------------------------

    def _reset(self) -> None:
        today = date.today()
        self.step = WizardStep.SELECT_CUSTOMER
        self.draft = QuoteDraft(
            tax_rate=self.default_tax_rate,
            title=f'Quote {today.isoformat()}',
            valid_until=today + timedelta(days=self.valid_days),
            token=uuid.uuid4().hex,
        )
        self._recompute()

    def open(self) -> None:
        """Start a fresh draft with default tax rate, title and validity."""
        self._reset()
        self.is_open = True

    def close(self) -> None:
        """Discard the draft."""
        self._reset()
        self.is_open = False

    def _require_open(self) -> None:
        if not self.is_open:
            raise StateError('The quote wizard is not open.')

    # -- navigation --------------------------------------------------------

    def can_advance(self) -> bool:
        return can_advance(self.step, self.draft)

    def set_step(self, n: int) -> bool:
        """
        Move to step ``n``; only single steps are allowed.

        Forward moves must pass the guard of the current step. A refused move
        returns False and leaves the wizard untouched.
        """
        self._require_open()
        try:
            target = WizardStep(int(n))
        except (ValueError, TypeError):
            return False

        if target == self.step:
            return True
        if PREVIOUS_STEP.get(self.step) == target:
            self.step = target
            return True
        if NEXT_STEP.get(self.step) == target and self.can_advance():
            self.step = target
            return True
        return False

    def next_step(self) -> bool:
        self._require_open()
        nxt = NEXT_STEP.get(self.step)
        return nxt is not None and self.set_step(nxt)

    def previous_step(self) -> bool:
        self._require_open()
        prev = PREVIOUS_STEP.get(self.step)
        return prev is not None and self.set_step(prev)

    # -- customer ------------------------------------------------------------

    def select_customer(self, customer: Any) -> None:
        """Select a persisted customer (model, record or mapping with an id)."""
        self._require_open()
        customer_id = _attr(customer, 'id')
        if customer_id is None:
            raise ValidationError('Selected customer has no id; use custom customer fields instead.')
        self.draft.customer = ExistingCustomer(
            id=int(customer_id),
            name=_attr(customer, 'name') or '',
            email=_attr(customer, 'email') or '',
        )

    def set_custom_customer(self, fields: Dict[str, Any]) -> None:
        """Use ad-hoc customer fields; the customer is created on save."""
        self._require_open()
        self.draft.customer = AdhocCustomer(fields=_clean_customer_fields(fields or {}))

    def clear_customer(self) -> None:
        self._require_open()
        self.draft.customer = None

    # -- lines ----------------------------------------------------------------

    def _find_line(self, line_id: str) -> DraftLine:
        for line in self.draft.lines:
            if line.id == line_id:
                return line
        raise NotFoundError(f'Line {line_id} not in draft.')

    def add_product(self, product: Any) -> DraftLine:
        """
        Add a catalog product: a new line with quantity 1 and no discount, or
        one more unit on the line already holding that product.
        """
        self._require_open()
        if _attr(product, 'active', True) is False:
            raise ValidationError(f"Product '{_attr(product, 'name')}' is inactive.")

        product_id = _attr(product, 'id')
        for line in self.draft.lines:
            if product_id is not None and line.product_id == product_id:
                line.quantity += 1
                self._recompute()
                return line

        line = DraftLine(
            id=uuid.uuid4().hex,
            product_id=product_id,
            description=_attr(product, 'name') or '',
            unit=_attr(product, 'unit'),
            unit_price=normalize_price(_attr(product, 'unit_price')),
        )
        self.draft.lines.append(line)
        self._recompute()
        return line

    def add_custom_line(self, description: str, unit_price: Any, quantity: Any = 1, unit: Optional[str] = None) -> DraftLine:
        """Add a free-text line that does not reference a product."""
        self._require_open()
        description = (description or '').strip()
        if not description:
            raise ValidationError('A custom line needs a description.')

        line = DraftLine(
            id=uuid.uuid4().hex,
            product_id=None,
            description=description,
            unit=unit,
            unit_price=normalize_price(unit_price),
            quantity=normalize_quantity(quantity),
        )
        self.draft.lines.append(line)
        self._recompute()
        return line

    def update_line(self, line_id: str, field_name: str, value: Any) -> DraftLine:
        """Change ``quantity`` or ``discount`` of a line; values are clamped."""
        self._require_open()
        line = self._find_line(line_id)
        if field_name == 'quantity':
            line.quantity = normalize_quantity(value)
        elif field_name in ('discount', 'discount_percent'):
            line.discount_percent = normalize_percent(value)
        else:
            raise ValidationError(f'Field {field_name} cannot be edited on a line.')
        self._recompute()
        return line

    def remove_line(self, line_id: str) -> None:
        self._require_open()
        line = self._find_line(line_id)
        self.draft.lines.remove(line)
        self._recompute()

    # -- review settings --------------------------------------------------------

    def set_global_discount(self, value: Any) -> None:
        self._require_open()
        self.draft.global_discount = normalize_percent(value)
        self._recompute()

    def set_tax_rate(self, value: Any) -> None:
        self._require_open()
        self.draft.tax_rate = normalize_percent(value)
        self._recompute()

    def set_title(self, title: Optional[str]) -> None:
        self._require_open()
        self.draft.title = (title or '').strip() or None

    def set_notes(self, notes: Optional[str]) -> None:
        self._require_open()
        self.draft.notes = (notes or '').strip() or None

    def set_valid_until(self, value: Any) -> None:
        self._require_open()
        self.draft.valid_until = _parse_date(value)

    def _recompute(self) -> None:
        for line in self.draft.lines:
            line.line_total = compute_line_total(line.unit_price, line.quantity, line.discount_percent)
        self.totals = compute_quote_totals(self.draft.lines, self.draft.global_discount, self.draft.tax_rate)

    # -- commit ------------------------------------------------------------------

    def _resolve_customer(self) -> int:
        selection = self.draft.customer
        if isinstance(selection, ExistingCustomer):
            return catalog_service.get_customer(self.session, self.organization_id, selection.id).id
        if isinstance(selection, AdhocCustomer):
            customer = catalog_service.create_customer(self.session, self.organization_id, selection.fields)
            # Retries reuse the customer created here
            self.draft.customer = ExistingCustomer(id=customer.id, name=customer.name, email=customer.email)
            return customer.id
        raise ValidationError('Select a customer or enter a name and email.')

    def _line_payloads(self) -> List[Dict[str, Any]]:
        return [
            {
                'product_id': line.product_id,
                'description': line.description,
                'unit': line.unit,
                'quantity': line.quantity,
                'unit_price': line.unit_price,
                'discount_percent': line.discount_percent,
                'sort_order': position,
            }
            for position, line in enumerate(self.draft.lines)
        ]

    def save(self, send_immediately: bool = False) -> Quote:
        """
        Commit the draft as a quote (status ``sent`` or ``draft``).

        On failure the draft is kept intact so the user can retry; on
        success the wizard resets, closes and calls ``on_complete``.

        The draft token travels with the quote, so a replayed save of a draft
        that was already committed (a double submit from a stale session)
        raises DuplicateQuoteError and closes the wizard.
        """
        self._require_open()
        if self.saving:
            raise StateError('This quote is already being saved.')
        if self.step != WizardStep.REVIEW_AND_COMMIT:
            raise StateError('Complete the previous steps before saving.')
        if not self.draft.lines:
            raise ValidationError('A quote needs at least one line item.')

        self.saving = True
        try:
            customer_id = self._resolve_customer()
            status = QuoteStatus.SENT if send_immediately else QuoteStatus.DRAFT
            quote = quote_service.create_quote(
                self.session,
                self.organization_id,
                {
                    'customer_id': customer_id,
                    'status': status.value,
                    'title': self.draft.title,
                    'notes': self.draft.notes,
                    'valid_until': self.draft.valid_until,
                    'global_discount': self.draft.global_discount,
                    'tax_rate': self.draft.tax_rate,
                    'draft_token': self.draft.token,
                },
                self._line_payloads(),
            )
        except DuplicateQuoteError as e:
            logger.warning(f"Draft {self.draft.token} already saved as {e.quote_number}")
            self.close()
            raise
        except QuoteBuilderError as e:
            logger.warning(f"Quote save failed for organization {self.organization_id}: {e.message}")
            raise
        finally:
            self.saving = False

        self.close()
        if self.on_complete:
            self.on_complete(quote)
        return quote

    # -- persistence across requests ---------------------------------------------

    def to_state(self) -> Dict[str, Any]:
        """JSON-serializable snapshot (stored in the Flask session)."""
        selection = self.draft.customer
        customer = None
        if isinstance(selection, ExistingCustomer):
            customer = {'kind': 'existing', 'id': selection.id, 'name': selection.name, 'email': selection.email}
        elif isinstance(selection, AdhocCustomer):
            customer = {'kind': 'adhoc', 'fields': dict(selection.fields)}

        return {
            'is_open': self.is_open,
            'step': int(self.step),
            'customer': customer,
            'lines': [
                {
                    'id': line.id,
                    'product_id': line.product_id,
                    'description': line.description,
                    'unit': line.unit,
                    'unit_price': str(line.unit_price),
                    'quantity': line.quantity,
                    'discount_percent': str(line.discount_percent),
                }
                for line in self.draft.lines
            ],
            'global_discount': str(self.draft.global_discount),
            'tax_rate': str(self.draft.tax_rate),
            'title': self.draft.title,
            'notes': self.draft.notes,
            'valid_until': self.draft.valid_until.isoformat() if self.draft.valid_until else None,
            'token': self.draft.token,
        }

    @classmethod
    def from_state(cls, session: Session, organization_id: int, state: Optional[Dict[str, Any]], **kwargs) -> 'QuoteWizard':
        """Rebuild a wizard from ``to_state`` output; empty state gives a closed wizard."""
        wizard = cls(session, organization_id, **kwargs)
        if not state:
            wizard._reset()
            return wizard

        customer = state.get('customer')
        selection = None
        if customer and customer.get('kind') == 'existing':
            selection = ExistingCustomer(id=int(customer['id']), name=customer.get('name', ''), email=customer.get('email', ''))
        elif customer and customer.get('kind') == 'adhoc':
            selection = AdhocCustomer(fields=_clean_customer_fields(customer.get('fields') or {}))

        wizard.draft = QuoteDraft(
            customer=selection,
            lines=[
                DraftLine(
                    id=line['id'],
                    product_id=line.get('product_id'),
                    description=line.get('description', ''),
                    unit=line.get('unit'),
                    unit_price=normalize_price(line.get('unit_price')),
                    quantity=normalize_quantity(line.get('quantity')),
                    discount_percent=normalize_percent(line.get('discount_percent')),
                )
                for line in state.get('lines', [])
            ],
            global_discount=normalize_percent(state.get('global_discount')),
            tax_rate=normalize_percent(state.get('tax_rate')),
            title=state.get('title'),
            notes=state.get('notes'),
            valid_until=_parse_date(state.get('valid_until')),
            token=state.get('token') or uuid.uuid4().hex,
        )
        wizard.is_open = bool(state.get('is_open'))
        try:
            wizard.step = WizardStep(int(state.get('step', 1)))
        except (ValueError, TypeError):
            wizard.step = WizardStep.SELECT_CUSTOMER
        wizard._recompute()
        return wizard

    def to_dict(self) -> Dict[str, Any]:
        """State plus live totals and navigation flags, for API responses."""
        data = self.to_state()
        for line_data, line in zip(data['lines'], self.draft.lines):
            line_data['line_total'] = str(line.line_total)
        data['totals'] = self.totals.to_dict()
        data['can_advance'] = self.can_advance()
        return data
