"""
Unit tests for catalog default-filling rules.
"""

import logging
from decimal import Decimal
from quotebuilder.services.catalog_defaults import (
    product_from_row, customer_from_row, DEFAULT_CATEGORY, DEFAULT_UNIT
)


class TestProductDefaults:
    """Tests for product_from_row."""

    def test_complete_row_is_kept(self):
        row = {
            'id': 1,
            'name': 'Consulting hour',
            'description': 'Senior consultant',
            'category': 'Services',
            'unit_price': Decimal('1200.00'),
            'unit': 'hour',
            'active': True,
        }

        record = product_from_row(row)

        assert record.id == 1
        assert record.name == 'Consulting hour'
        assert record.category == 'Services'
        assert record.unit == 'hour'
        assert record.unit_price == Decimal('1200.00')
        assert record.active is True

    def test_missing_optional_columns_get_defaults(self, caplog):
        """Rows read from an older schema only have id and name."""
        caplog.set_level(logging.WARNING)

        record = product_from_row({'id': 7, 'name': 'Cable'})

        assert record.category == DEFAULT_CATEGORY
        assert record.unit == DEFAULT_UNIT
        assert record.unit_price == Decimal('0.00')
        assert record.description == ''
        assert record.active is True
        assert 'Product 7 missing' in caplog.text

    def test_blank_values_count_as_missing(self):
        record = product_from_row({'id': 3, 'name': 'Bolt', 'category': '  ', 'unit': '', 'unit_price': None})

        assert record.category == 'Uncategorized'
        assert record.unit == 'piece'
        assert record.unit_price == Decimal('0.00')

    def test_negative_or_garbage_price_becomes_zero(self):
        assert product_from_row({'id': 1, 'name': 'A', 'unit_price': '-5'}).unit_price == Decimal('0.00')
        assert product_from_row({'id': 2, 'name': 'B', 'unit_price': 'n/a'}).unit_price == Decimal('0.00')

    def test_inactive_flag_is_preserved(self):
        assert product_from_row({'id': 1, 'name': 'Old', 'active': False}).active is False

    def test_row_without_identity_is_skipped(self, caplog):
        caplog.set_level(logging.WARNING)

        assert product_from_row({'id': None, 'name': 'Ghost'}) is None
        assert product_from_row({'id': 5, 'name': '   '}) is None
        assert product_from_row({'name': 'No id'}) is None
        assert 'Skipping product row' in caplog.text

    def test_to_dict_serializes_price_as_string(self):
        data = product_from_row({'id': 1, 'name': 'A', 'unit_price': '19.9'}).to_dict()

        assert data['unit_price'] == '19.90'
        assert data['category'] == DEFAULT_CATEGORY


class TestCustomerDefaults:
    """Tests for customer_from_row."""

    def test_optional_fields_default_to_empty_strings(self):
        record = customer_from_row({'id': 2, 'name': 'Anna Andersson', 'email': 'anna@example.com'})

        assert record.name == 'Anna Andersson'
        assert record.email == 'anna@example.com'
        assert record.phone == ''
        assert record.company_name == ''
        assert record.postal_code == ''

    def test_customer_without_name_is_skipped(self):
        assert customer_from_row({'id': 2, 'name': None, 'email': 'x@example.com'}) is None
