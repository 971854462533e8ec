"""Catalog blueprint: product library and customers (organization-scoped, JSON)."""
from flask import Blueprint, request, jsonify
from quotebuilder.database import get_session
from quotebuilder.middleware import require_organization, current_organization_id
from quotebuilder.services import catalog_service
from quotebuilder.services.catalog_defaults import DEFAULT_CATEGORY, DEFAULT_UNIT

catalog_bp = Blueprint('catalog', __name__, url_prefix='/catalog')


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def product_to_dict(product) -> dict:
    """Serialize a Product model for API responses."""
    return {
        'id': product.id,
        'name': product.name,
        'description': product.description or '',
        'category': product.category or DEFAULT_CATEGORY,
        'unit_price': str(product.unit_price),
        'unit': product.unit or DEFAULT_UNIT,
        'active': bool(product.active),
    }


def customer_to_dict(customer) -> dict:
    data = {key: getattr(customer, key) or '' for key in catalog_service.CUSTOMER_FIELDS}
    data['id'] = customer.id
    return data


@catalog_bp.route('/products', methods=['GET'])
@require_organization
def list_products():
    """List products; ?q= searches, ?category= filters, ?include_inactive=1 shows soft-deleted ones."""
    db_session = get_session()
    organization_id = current_organization_id()

    search = request.args.get('q', '').strip()
    category = request.args.get('category', '').strip()
    include_inactive = request.args.get('include_inactive') in ('1', 'true')

    if search:
        products = catalog_service.search_products(db_session, organization_id, search)
        if category:
            products = [p for p in products if p.category == category]
    elif category:
        products = catalog_service.list_products_by_category(db_session, organization_id, category)
    else:
        products = catalog_service.list_products(db_session, organization_id, include_inactive=include_inactive)

    return jsonify({'products': [p.to_dict() for p in products]})


@catalog_bp.route('/products', methods=['POST'])
@require_organization
def create_product():
    product = catalog_service.create_product(get_session(), current_organization_id(), _payload())
    return jsonify({'product': product_to_dict(product)}), 201


@catalog_bp.route('/products/<int:product_id>', methods=['GET'])
@require_organization
def get_product(product_id):
    product = catalog_service.get_product(get_session(), current_organization_id(), product_id)
    return jsonify({'product': product_to_dict(product)})


@catalog_bp.route('/products/<int:product_id>', methods=['PATCH', 'PUT'])
@require_organization
def update_product(product_id):
    product = catalog_service.update_product(get_session(), current_organization_id(), product_id, _payload())
    return jsonify({'product': product_to_dict(product)})


@catalog_bp.route('/products/<int:product_id>/deactivate', methods=['POST'])
@require_organization
def deactivate_product(product_id):
    product = catalog_service.deactivate_product(get_session(), current_organization_id(), product_id)
    return jsonify({'product': product_to_dict(product)})


@catalog_bp.route('/categories', methods=['GET'])
@require_organization
def list_categories():
    categories = catalog_service.list_categories(get_session(), current_organization_id())
    return jsonify({'categories': categories})


@catalog_bp.route('/stats', methods=['GET'])
@require_organization
def product_stats():
    stats = catalog_service.get_product_stats(get_session(), current_organization_id())
    stats['average_price'] = str(stats['average_price'])
    return jsonify(stats)


@catalog_bp.route('/customers', methods=['GET'])
@require_organization
def list_customers():
    """List customers; ?q= searches name, company and email."""
    db_session = get_session()
    organization_id = current_organization_id()

    query = request.args.get('q', '').strip()
    if query:
        customers = catalog_service.find_customers_matching(db_session, organization_id, query)
    else:
        customers = catalog_service.list_customers(db_session, organization_id)

    return jsonify({'customers': [c.to_dict() for c in customers]})


@catalog_bp.route('/customers', methods=['POST'])
@require_organization
def create_customer():
    customer = catalog_service.create_customer(get_session(), current_organization_id(), _payload())
    return jsonify({'customer': customer_to_dict(customer)}), 201
