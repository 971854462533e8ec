"""
Critical integration tests for organization isolation.
Products, customers and quotes of one organization are invisible to another.
"""

import pytest
from quotebuilder.exceptions import NotFoundError
from quotebuilder.models import Customer
from quotebuilder.services import catalog_service, quote_service
from quotebuilder.services.quote_wizard import QuoteWizard


def _quote(session, organization_id, customer_id):
    return quote_service.create_quote(session, organization_id, {'customer_id': customer_id}, [
        {'description': 'Consulting hour', 'unit_price': '1200', 'quantity': 1}
    ])


class TestCatalogIsolation:

    def test_products_are_scoped(self, session, organization, other_organization, consulting_hour):
        assert catalog_service.list_products(session, other_organization.id) == []
        with pytest.raises(NotFoundError):
            catalog_service.get_product(session, other_organization.id, consulting_hour.id)

    def test_customers_are_scoped(self, session, organization, other_organization, customer):
        assert catalog_service.find_customers_matching(session, other_organization.id, 'anna') == []
        with pytest.raises(NotFoundError):
            catalog_service.get_customer(session, other_organization.id, customer.id)


class TestQuoteIsolation:

    def test_quote_numbers_are_per_organization(self, session, organization, other_organization, customer):
        other_customer = Customer(organization_id=other_organization.id, name='Bo Berg', email='bo@example.com')
        session.add(other_customer)
        session.commit()

        first = _quote(session, organization.id, customer.id)
        second = _quote(session, other_organization.id, other_customer.id)

        assert first.quote_number == 'Q-00001'
        assert second.quote_number == 'Q-00001'

    def test_cannot_use_foreign_customer(self, session, organization, other_organization, customer):
        with pytest.raises(NotFoundError):
            _quote(session, other_organization.id, customer.id)

    def test_cannot_use_foreign_product(self, session, organization, other_organization, consulting_hour):
        other_customer = Customer(organization_id=other_organization.id, name='Bo Berg', email='bo@example.com')
        session.add(other_customer)
        session.commit()

        with pytest.raises(NotFoundError):
            quote_service.create_quote(session, other_organization.id, {'customer_id': other_customer.id}, [
                {'product_id': consulting_hour.id, 'description': 'Consulting hour', 'unit_price': '1200', 'quantity': 1}
            ])

    def test_lifecycle_calls_are_scoped(self, session, organization, other_organization, customer):
        quote = _quote(session, organization.id, customer.id)

        with pytest.raises(NotFoundError):
            quote_service.mark_sent(session, other_organization.id, quote.id)
        with pytest.raises(NotFoundError):
            quote_service.delete_quote(session, other_organization.id, quote.id)
        assert quote_service.list_quotes(session, other_organization.id) == []
        assert quote_service.get_quote(session, organization.id, quote.id).status == 'draft'

    def test_wizard_cannot_commit_foreign_customer(self, session, organization, other_organization, customer):
        wizard = QuoteWizard(session, other_organization.id, default_tax_rate=25, valid_days=30)
        wizard.open()
        wizard.select_customer(customer)
        wizard.next_step()
        wizard.add_custom_line('Travel', '350')
        wizard.next_step()

        with pytest.raises(NotFoundError):
            wizard.save()


class TestHttpIsolation:

    def test_other_organization_gets_404(self, client, session, organization, other_organization, customer):
        quote_id = _quote(session, organization.id, customer.id).id
        other_id = other_organization.id
        with client.session_transaction() as sess:
            sess['organization_id'] = other_id

        assert client.get(f'/quotes/{quote_id}').status_code == 404
        assert client.post(f'/quotes/{quote_id}/send').status_code == 404
        assert client.get('/quotes/').get_json()['quotes'] == []
