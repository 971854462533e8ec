"""Quotes blueprint: quote list, lifecycle actions, PDF export and the quote wizard."""
from flask import Blueprint, request, session, jsonify, send_file, current_app
from quotebuilder.database import get_session
from quotebuilder.exceptions import ValidationError
from quotebuilder.middleware import require_organization, current_organization_id
from quotebuilder.services import catalog_service, quote_service
from quotebuilder.services.quote_document import QuotePresenter
from quotebuilder.services.quote_wizard import QuoteWizard
from quotebuilder.utils.formatters import date_display

quotes_bp = Blueprint('quotes', __name__, url_prefix='/quotes')

WIZARD_SESSION_KEY = 'quote_wizard'


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _timestamp(value):
    return value.isoformat() if value else None


def quote_summary(quote) -> dict:
    """List row of a quote, with its effective (possibly expired) status."""
    return {
        'id': quote.id,
        'quote_number': quote.quote_number,
        'title': quote.title,
        'status': quote_service.effective_status(quote).value,
        'customer_id': quote.customer_id,
        'customer_name': quote.customer.name if quote.customer else None,
        'total_amount': str(quote.total_amount),
        'valid_until': date_display(quote.valid_until) if quote.valid_until else None,
        'created_at': _timestamp(quote.created_at),
    }


def quote_to_dict(quote) -> dict:
    data = quote_summary(quote)
    data.update({
        'stored_status': quote.status,
        'notes': quote.notes,
        'subtotal': str(quote.subtotal),
        'global_discount': str(quote.global_discount),
        'discount_amount': str(quote.discount_amount),
        'tax_rate': str(quote.tax_rate),
        'tax_amount': str(quote.tax_amount),
        'sent_at': _timestamp(quote.sent_at),
        'viewed_at': _timestamp(quote.viewed_at),
        'accepted_at': _timestamp(quote.accepted_at),
        'rejected_at': _timestamp(quote.rejected_at),
        'lines': [
            {
                'id': line.id,
                'product_id': line.product_id,
                'description': line.description,
                'unit': line.unit,
                'quantity': line.quantity,
                'unit_price': str(line.unit_price),
                'discount_percent': str(line.discount_percent),
                'total': str(line.total),
                'sort_order': line.sort_order,
            }
            for line in quote.lines
        ],
    })
    return data


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

@quotes_bp.route('/', methods=['GET'])
@require_organization
def list_quotes():
    """List quotes; ?status= filters by effective status, ?q= searches."""
    db_session = get_session()
    organization_id = current_organization_id()

    search = request.args.get('q', '').strip()
    status_filter = request.args.get('status', '').strip()

    if search:
        quotes = quote_service.search_quotes(db_session, organization_id, search)
        if status_filter:
            quotes = [q for q in quotes if quote_service.effective_status(q).value == status_filter.lower()]
    else:
        quotes = quote_service.list_quotes(db_session, organization_id, status_filter or None)

    return jsonify({'quotes': [quote_summary(q) for q in quotes]})


@quotes_bp.route('/stats', methods=['GET'])
@require_organization
def quote_stats():
    stats = quote_service.get_quote_stats(get_session(), current_organization_id())
    for key in ('total_value', 'accepted_value', 'conversion_rate'):
        stats[key] = str(stats[key])
    return jsonify(stats)


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
@require_organization
def quote_detail(quote_id):
    db_session = get_session()
    organization_id = current_organization_id()

    quote = quote_service.get_quote(db_session, organization_id, quote_id)
    document = QuotePresenter(db_session, organization_id).render(quote)
    return jsonify({'quote': quote_to_dict(quote), 'document': document.to_dict()})


@quotes_bp.route('/<int:quote_id>', methods=['DELETE'])
@require_organization
def delete_quote(quote_id):
    quote_service.delete_quote(get_session(), current_organization_id(), quote_id)
    return jsonify({'status': 'ok'})


@quotes_bp.route('/<int:quote_id>/send', methods=['POST'])
@require_organization
def send_quote(quote_id):
    """Email the quote PDF to the customer; drafts become sent on success."""
    db_session = get_session()
    organization_id = current_organization_id()

    quote = quote_service.get_quote(db_session, organization_id, quote_id)
    quote = QuotePresenter(db_session, organization_id).on_send(quote)
    return jsonify({'quote': quote_to_dict(quote)})


@quotes_bp.route('/<int:quote_id>/viewed', methods=['POST'])
@require_organization
def mark_viewed(quote_id):
    quote = quote_service.mark_viewed(get_session(), current_organization_id(), quote_id)
    return jsonify({'quote': quote_to_dict(quote)})


@quotes_bp.route('/<int:quote_id>/accept', methods=['POST'])
@require_organization
def accept_quote(quote_id):
    quote = quote_service.mark_accepted(get_session(), current_organization_id(), quote_id)
    return jsonify({'quote': quote_to_dict(quote)})


@quotes_bp.route('/<int:quote_id>/reject', methods=['POST'])
@require_organization
def reject_quote(quote_id):
    quote = quote_service.mark_rejected(get_session(), current_organization_id(), quote_id)
    return jsonify({'quote': quote_to_dict(quote)})


@quotes_bp.route('/<int:quote_id>/pdf', methods=['GET'])
@require_organization
def quote_pdf(quote_id):
    db_session = get_session()
    organization_id = current_organization_id()

    quote = quote_service.get_quote(db_session, organization_id, quote_id)
    filename, pdf_buffer = QuotePresenter(db_session, organization_id).on_download(quote)
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=filename
    )


# ---------------------------------------------------------------------------
# Wizard (draft state lives in the Flask session)
# ---------------------------------------------------------------------------

def _load_wizard() -> QuoteWizard:
    return QuoteWizard.from_state(get_session(), current_organization_id(), session.get(WIZARD_SESSION_KEY))


def _store_wizard(wizard: QuoteWizard) -> None:
    session[WIZARD_SESSION_KEY] = wizard.to_state()
    session.modified = True


def _wizard_response(wizard: QuoteWizard, status_code: int = 200, **extra):
    body = {'wizard': wizard.to_dict()}
    body.update(extra)
    return jsonify(body), status_code


@quotes_bp.route('/wizard', methods=['GET'])
@require_organization
def wizard_state():
    return _wizard_response(_load_wizard())


@quotes_bp.route('/wizard', methods=['POST'])
@require_organization
def wizard_open():
    """Start a fresh draft, discarding any previous one."""
    wizard = _load_wizard()
    wizard.open()
    _store_wizard(wizard)
    return _wizard_response(wizard, 201)


@quotes_bp.route('/wizard', methods=['DELETE'])
@require_organization
def wizard_close():
    wizard = _load_wizard()
    wizard.close()
    session.pop(WIZARD_SESSION_KEY, None)
    return _wizard_response(wizard)


@quotes_bp.route('/wizard/step', methods=['POST'])
@require_organization
def wizard_step():
    """Move one step; a guarded move that is refused reports moved=false."""
    wizard = _load_wizard()
    data = _payload()

    direction = data.get('direction')
    if direction == 'next':
        moved = wizard.next_step()
    elif direction == 'back':
        moved = wizard.previous_step()
    else:
        moved = wizard.set_step(data.get('step'))

    _store_wizard(wizard)
    return _wizard_response(wizard, moved=moved)


@quotes_bp.route('/wizard/customer', methods=['POST'])
@require_organization
def wizard_select_customer():
    db_session = get_session()
    organization_id = current_organization_id()
    wizard = _load_wizard()

    customer_id = _payload().get('customer_id')
    if customer_id in (None, ''):
        raise ValidationError('customer_id is required.')
    try:
        customer_id = int(customer_id)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid customer id: {customer_id}')

    customer = catalog_service.get_customer(db_session, organization_id, customer_id)
    wizard.select_customer(customer)
    _store_wizard(wizard)
    return _wizard_response(wizard)


@quotes_bp.route('/wizard/customer', methods=['DELETE'])
@require_organization
def wizard_clear_customer():
    wizard = _load_wizard()
    wizard.clear_customer()
    _store_wizard(wizard)
    return _wizard_response(wizard)


@quotes_bp.route('/wizard/custom-customer', methods=['POST'])
@require_organization
def wizard_custom_customer():
    wizard = _load_wizard()
    wizard.set_custom_customer(_payload())
    _store_wizard(wizard)
    return _wizard_response(wizard)


@quotes_bp.route('/wizard/lines', methods=['POST'])
@require_organization
def wizard_add_line():
    """Add a catalog product (product_id) or a free-text line (description, unit_price)."""
    db_session = get_session()
    organization_id = current_organization_id()
    wizard = _load_wizard()
    data = _payload()

    product_id = data.get('product_id')
    if product_id not in (None, ''):
        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            raise ValidationError(f'Invalid product id: {product_id}')
        product = catalog_service.get_product(db_session, organization_id, product_id)
        line = wizard.add_product(product)
    else:
        line = wizard.add_custom_line(
            data.get('description'),
            data.get('unit_price'),
            data.get('quantity', 1),
            data.get('unit'),
        )

    _store_wizard(wizard)
    return _wizard_response(wizard, 201, line_id=line.id)


@quotes_bp.route('/wizard/lines/<line_id>', methods=['PATCH'])
@require_organization
def wizard_update_line(line_id):
    wizard = _load_wizard()
    data = _payload()

    editable = [key for key in ('quantity', 'discount', 'discount_percent') if key in data]
    if not editable:
        raise ValidationError('Nothing to update: send quantity or discount.')
    for key in editable:
        wizard.update_line(line_id, key, data[key])

    _store_wizard(wizard)
    return _wizard_response(wizard)


@quotes_bp.route('/wizard/lines/<line_id>', methods=['DELETE'])
@require_organization
def wizard_remove_line(line_id):
    wizard = _load_wizard()
    wizard.remove_line(line_id)
    _store_wizard(wizard)
    return _wizard_response(wizard)


@quotes_bp.route('/wizard/settings', methods=['POST'])
@require_organization
def wizard_settings():
    """Review-step settings; only the keys present are changed."""
    wizard = _load_wizard()
    data = _payload()

    setters = {
        'global_discount': wizard.set_global_discount,
        'tax_rate': wizard.set_tax_rate,
        'title': wizard.set_title,
        'notes': wizard.set_notes,
        'valid_until': wizard.set_valid_until,
    }
    for key, setter in setters.items():
        if key in data:
            setter(data[key])

    _store_wizard(wizard)
    return _wizard_response(wizard)


@quotes_bp.route('/wizard/save', methods=['POST'])
@require_organization
def wizard_save():
    """Commit the draft; on failure the draft stays in the session for a retry."""
    wizard = _load_wizard()
    send_immediately = str(_payload().get('send_immediately', '')).lower() in ('1', 'true')

    try:
        quote = wizard.save(send_immediately=send_immediately)
    finally:
        _store_wizard(wizard)

    current_app.logger.info(f"Quote {quote.quote_number} saved from wizard")
    return jsonify({'quote': quote_to_dict(quote), 'wizard': wizard.to_dict()}), 201
