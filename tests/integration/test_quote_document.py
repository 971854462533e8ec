"""
Integration tests for quote rendering, PDF export and delivery.
"""

import pytest
from datetime import date, timedelta
from quotebuilder.exceptions import ValidationError, DeliveryError
from quotebuilder.models import Customer
from quotebuilder.services import quote_service, email_service
from quotebuilder.services.quote_document import QuotePresenter, render_quote, generate_quote_pdf

BUSINESS = {
    'name': 'Acme Konsult AB',
    'address': 'Storgatan 1, Uppsala',
    'phone': '018-123 45',
    'email': 'offert@acme.example',
}


def make_quote(session, organization, customer, status='draft', valid_until=None, notes=None):
    return quote_service.create_quote(session, organization.id, {
        'customer_id': customer.id,
        'status': status,
        'title': 'Office network',
        'tax_rate': 25,
        'notes': notes,
        'valid_until': valid_until or date.today() + timedelta(days=30),
    }, [
        {'description': 'Consulting hour', 'unit': 'hour', 'unit_price': '1200', 'quantity': 3, 'discount_percent': 10},
        {'description': 'Installation kit', 'unit': 'piece', 'unit_price': '450', 'quantity': 1},
    ])


class FakeDelivery:
    """Records deliveries instead of sending email."""

    def __init__(self, result=True):
        self.result = result
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return self.result


class TestRender:

    def test_document_contents(self, session, organization, customer):
        quote = make_quote(session, organization, customer)

        document = render_quote(quote, BUSINESS)

        assert document.quote_number == quote.quote_number
        assert document.status == 'draft'
        assert document.business['name'] == 'Acme Konsult AB'
        assert document.customer['name'] == 'Anna Andersson'
        assert document.customer['company_name'] == 'Andersson Bygg AB'
        assert [item['description'] for item in document.items] == ['Consulting hour', 'Installation kit']
        assert document.items[0]['total'] == '3 240,00'
        assert document.items[0]['discount'] == '10 %'
        assert document.items[1]['discount'] == ''
        assert document.totals['subtotal'] == '3 690,00'
        assert document.totals['tax_amount'] == '922,50'
        assert document.totals['total'] == '4 612,50'

    def test_expired_quote_renders_expired(self, session, organization, customer):
        quote = make_quote(session, organization, customer, status='sent', valid_until=date.today() - timedelta(days=3))

        assert render_quote(quote, BUSINESS).status == 'expired'

    def test_to_dict_is_plain_data(self, session, organization, customer):
        quote = make_quote(session, organization, customer)

        data = render_quote(quote, BUSINESS).to_dict()

        assert data['quote_id'] == quote.id
        assert data['totals']['total'] == '4 612,50'
        assert 'customer_email' not in data


class TestDownload:

    def test_pdf_download(self, session, organization, customer):
        quote = make_quote(session, organization, customer, notes='Prices exclude travel')
        presenter = QuotePresenter(session, organization.id, deliver=FakeDelivery(), business_info=BUSINESS)

        filename, pdf_buffer = presenter.on_download(quote)

        assert filename == f'quote_{quote.quote_number}.pdf'
        assert pdf_buffer.getvalue().startswith(b'%PDF')

    def test_pdf_with_global_discount(self, session, organization, customer):
        quote = quote_service.create_quote(session, organization.id, {
            'customer_id': customer.id, 'global_discount': 10, 'tax_rate': 25,
        }, [{'description': 'Service', 'unit_price': '100', 'quantity': 1}])

        pdf_buffer = generate_quote_pdf(render_quote(quote, BUSINESS))

        assert len(pdf_buffer.getvalue()) > 0


class TestSend:

    def test_send_draft_marks_sent(self, session, organization, customer):
        quote = make_quote(session, organization, customer)
        delivery = FakeDelivery()
        presenter = QuotePresenter(session, organization.id, deliver=delivery, business_info=BUSINESS)

        result = presenter.on_send(quote)

        assert result.status == 'sent'
        assert result.sent_at is not None
        assert len(delivery.calls) == 1
        call = delivery.calls[0]
        assert call['to_email'] == 'anna@example.com'
        assert call['filename'] == f'quote_{quote.quote_number}.pdf'
        assert call['pdf_buffer'].getvalue().startswith(b'%PDF')
        assert call['business_name'] == 'Acme Konsult AB'

    def test_failed_delivery_keeps_draft(self, session, organization, customer):
        quote = make_quote(session, organization, customer)
        presenter = QuotePresenter(session, organization.id, deliver=FakeDelivery(result=False), business_info=BUSINESS)

        with pytest.raises(DeliveryError) as exc_info:
            presenter.on_send(quote)

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 502
        assert quote_service.get_quote(session, organization.id, quote.id).status == 'draft'
        assert quote_service.get_quote(session, organization.id, quote.id).sent_at is None

    def test_resend_keeps_status(self, session, organization, customer):
        quote = make_quote(session, organization, customer, status='sent')
        quote = quote_service.mark_viewed(session, organization.id, quote.id)
        delivery = FakeDelivery()
        presenter = QuotePresenter(session, organization.id, deliver=delivery, business_info=BUSINESS)

        result = presenter.on_send(quote)

        assert result.status == 'viewed'
        assert len(delivery.calls) == 1

    def test_customer_without_email(self, session, organization):
        no_mail = Customer(organization_id=organization.id, name='Walk-in', email='')
        session.add(no_mail)
        session.commit()
        quote = make_quote(session, organization, no_mail)
        delivery = FakeDelivery()
        presenter = QuotePresenter(session, organization.id, deliver=delivery, business_info=BUSINESS)

        with pytest.raises(ValidationError):
            presenter.on_send(quote)

        assert delivery.calls == []
        assert quote_service.get_quote(session, organization.id, quote.id).status == 'draft'


class TestEmailDelivery:
    """Flask-Mail delivery collaborator."""

    def _send(self, pdf=b'%PDF-1.4'):
        from io import BytesIO
        return email_service.send_quote_email(
            to_email='anna@example.com',
            customer_name='Anna Andersson',
            quote_number='Q-00001',
            total_text='4 050,00 SEK',
            pdf_buffer=BytesIO(pdf),
            filename='quote_Q-00001.pdf',
            business_name='Acme Konsult AB',
        )

    def test_suppressed_mail_is_skipped(self, app, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service.mail, 'send', sent.append)

        with app.app_context():
            assert self._send() is True

        assert sent == []

    def test_message_carries_pdf(self, app, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service.mail, 'send', sent.append)
        monkeypatch.setitem(app.config, 'MAIL_SUPPRESS_SEND', False)
        monkeypatch.setitem(app.config, 'MAIL_SERVER', 'smtp.example.com')
        monkeypatch.setitem(app.config, 'MAIL_USERNAME', 'mailer')

        with app.app_context():
            assert self._send() is True

        assert len(sent) == 1
        message = sent[0]
        assert message.recipients == ['anna@example.com']
        assert message.subject == 'Quote Q-00001 from Acme Konsult AB'
        assert message.attachments[0].filename == 'quote_Q-00001.pdf'
        assert message.attachments[0].content_type == 'application/pdf'

    def test_smtp_failure_returns_false(self, app, monkeypatch):
        def broken_send(message):
            raise ConnectionRefusedError('smtp down')

        monkeypatch.setattr(email_service.mail, 'send', broken_send)
        monkeypatch.setitem(app.config, 'MAIL_SUPPRESS_SEND', False)
        monkeypatch.setitem(app.config, 'MAIL_SERVER', 'smtp.example.com')
        monkeypatch.setitem(app.config, 'MAIL_USERNAME', 'mailer')

        with app.app_context():
            assert self._send() is False
