"""
Integration tests for the catalog repository.
"""

import pytest
from decimal import Decimal
from sqlalchemy import text
from quotebuilder.exceptions import ValidationError, NotFoundError
from quotebuilder.models import Product
from quotebuilder.services import catalog_service


class TestProducts:
    """Product library operations."""

    def test_list_products_hides_inactive(self, session, organization, consulting_hour, installation_kit, retired_product):
        products = catalog_service.list_products(session, organization.id)

        assert [p.name for p in products] == ['Consulting hour', 'Installation kit']

    def test_list_products_including_inactive(self, session, organization, consulting_hour, retired_product):
        products = catalog_service.list_products(session, organization.id, include_inactive=True)

        assert {p.name for p in products} == {'Consulting hour', 'Legacy license'}

    def test_missing_optional_values_are_defaulted(self, session, organization):
        session.add(Product(organization_id=organization.id, name='Bare item', unit_price=Decimal('10.00')))
        session.commit()

        record = catalog_service.list_products(session, organization.id)[0]

        assert record.category == 'Uncategorized'
        assert record.unit == 'piece'
        assert record.description == ''

    def test_create_product(self, session, organization):
        product = catalog_service.create_product(session, organization.id, {
            'name': '  Site visit ',
            'unit_price': '850,50',
            'category': 'Services',
        })

        assert product.id is not None
        assert product.name == 'Site visit'
        assert product.unit_price == Decimal('850.50')
        assert product.unit == 'piece'
        assert product.active is True

    @pytest.mark.parametrize('fields', [
        {'name': '', 'unit_price': '10'},
        {'name': 'No price'},
        {'name': 'Negative', 'unit_price': '-1'},
        {'name': 'Text price', 'unit_price': 'ten'},
    ])
    def test_create_product_validation(self, session, organization, fields):
        with pytest.raises(ValidationError):
            catalog_service.create_product(session, organization.id, fields)
        assert session.query(Product).count() == 0

    def test_update_product_only_touches_given_fields(self, session, organization, consulting_hour):
        product = catalog_service.update_product(session, organization.id, consulting_hour.id, {
            'unit_price': '1350',
            'sku': 'ignored',
        })

        assert product.unit_price == Decimal('1350.00')
        assert product.name == 'Consulting hour'
        assert product.unit == 'hour'

    def test_deactivate_product(self, session, organization, consulting_hour):
        catalog_service.deactivate_product(session, organization.id, consulting_hour.id)

        assert catalog_service.list_products(session, organization.id) == []
        assert catalog_service.get_product(session, organization.id, consulting_hour.id).active is False

    def test_get_unknown_product(self, session, organization):
        with pytest.raises(NotFoundError):
            catalog_service.get_product(session, organization.id, 999)

    def test_categories_and_grouping(self, session, organization, consulting_hour, installation_kit, retired_product):
        assert catalog_service.list_categories(session, organization.id) == ['Hardware', 'Services']

        services = catalog_service.list_products_by_category(session, organization.id, 'Services')
        assert [p.name for p in services] == ['Consulting hour']

    def test_search_products(self, session, organization, consulting_hour, installation_kit, retired_product):
        def names(query):
            return [p.name for p in catalog_service.search_products(session, organization.id, query)]

        assert names('HARD') == ['Installation kit']
        assert names('consultant') == ['Consulting hour']
        assert names('legacy') == []
        assert names('  ') == ['Consulting hour', 'Installation kit']

    def test_search_products_uses_default_category(self, session, organization):
        session.add(Product(organization_id=organization.id, name='Misc part', unit_price=Decimal('5.00'), active=True))
        session.commit()

        results = catalog_service.search_products(session, organization.id, 'uncategorized')

        assert [p.name for p in results] == ['Misc part']

    def test_product_stats(self, session, organization, consulting_hour, installation_kit, retired_product):
        stats = catalog_service.get_product_stats(session, organization.id)

        assert stats['total_products'] == 3
        assert stats['active_products'] == 2
        assert stats['inactive_products'] == 1
        assert stats['categories'] == 2
        assert stats['average_price'] == Decimal('825.00')


class TestSchemaDrift:
    """Listings keep working when optional columns are missing."""

    def test_products_from_table_without_optional_columns(self, session, organization, monkeypatch):
        session.execute(text(
            "INSERT INTO product (organization_id, name, unit_price, active, created_at, updated_at) "
            "VALUES (:org, 'Old row', 5, 1, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
        ), {'org': organization.id})
        session.commit()

        real_columns = catalog_service._readable_columns

        def without_category_and_unit(db_session, table):
            return [c for c in real_columns(db_session, table) if c.name not in ('category', 'unit')]

        monkeypatch.setattr(catalog_service, '_readable_columns', without_category_and_unit)

        records = catalog_service.list_products(session, organization.id)

        assert len(records) == 1
        assert records[0].category == 'Uncategorized'
        assert records[0].unit == 'piece'
        assert records[0].unit_price == Decimal('5.00')


class TestCustomers:
    """Customer operations."""

    def test_create_customer(self, session, organization):
        customer = catalog_service.create_customer(session, organization.id, {
            'name': 'Bo Berg',
            'email': 'bo@example.com',
            'city': 'Lund',
        })

        assert customer.id is not None
        assert customer.city == 'Lund'
        assert customer.phone is None

    @pytest.mark.parametrize('fields', [
        {'name': '', 'email': 'x@example.com'},
        {'name': 'No Mail', 'email': ''},
        {'name': 'Bad Mail', 'email': 'not-an-email'},
    ])
    def test_customer_validation(self, session, organization, fields):
        with pytest.raises(ValidationError):
            catalog_service.create_customer(session, organization.id, fields)

    def test_find_customers_matching(self, session, organization, customer):
        catalog_service.create_customer(session, organization.id, {'name': 'Bo Berg', 'email': 'bo@example.com'})

        assert [c.name for c in catalog_service.find_customers_matching(session, organization.id, 'ANDERSSON')] == ['Anna Andersson']
        assert [c.name for c in catalog_service.find_customers_matching(session, organization.id, 'bygg')] == ['Anna Andersson']
        assert [c.name for c in catalog_service.find_customers_matching(session, organization.id, 'bo@')] == ['Bo Berg']
        assert len(catalog_service.find_customers_matching(session, organization.id, '  ')) == 2

    def test_wildcards_in_query_match_literally(self, session, organization, customer):
        catalog_service.create_customer(session, organization.id, {'name': 'Bo Berg', 'email': 'bo_berg@example.com'})

        assert [c.name for c in catalog_service.find_customers_matching(session, organization.id, '_')] == ['Bo Berg']
        assert catalog_service.find_customers_matching(session, organization.id, '%') == []
        assert catalog_service.find_customers_matching(session, organization.id, 'a%n') == []

    def test_list_customers_fills_empty_fields(self, session, organization, customer):
        record = catalog_service.list_customers(session, organization.id)[0]

        assert record.name == 'Anna Andersson'
        assert record.phone == ''
        assert record.company_name == 'Andersson Bygg AB'
