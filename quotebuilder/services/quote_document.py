"""Quote document: read-only rendering of a persisted quote, PDF export and delivery."""

import logging
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER
from sqlalchemy.orm import Session

from quotebuilder.exceptions import ValidationError, DeliveryError
from quotebuilder.models import Quote, QuoteStatus
from quotebuilder.services import quote_service
from quotebuilder.services.email_service import send_quote_email
from quotebuilder.utils.app_config import config_value
from quotebuilder.utils.formatters import money, percent, date_display

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuoteDocument:
    """Everything printed on a quote, already formatted."""
    quote_id: int
    quote_number: str
    title: str
    status: str
    issued_at: str
    valid_until: str
    business: Dict[str, str]
    customer: Dict[str, str]
    items: List[Dict[str, str]]
    totals: Dict[str, str]
    notes: str = ''
    currency: str = ''
    customer_email: str = field(default='', repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'quote_id': self.quote_id,
            'quote_number': self.quote_number,
            'title': self.title,
            'status': self.status,
            'issued_at': self.issued_at,
            'valid_until': self.valid_until,
            'business': dict(self.business),
            'customer': dict(self.customer),
            'items': [dict(item) for item in self.items],
            'totals': dict(self.totals),
            'notes': self.notes,
            'currency': self.currency,
        }


def business_info_from_config() -> Dict[str, str]:
    return {
        'name': config_value('BUSINESS_NAME', ''),
        'address': config_value('BUSINESS_ADDRESS', ''),
        'phone': config_value('BUSINESS_PHONE', ''),
        'email': config_value('BUSINESS_EMAIL', ''),
    }


def render_quote(quote: Quote, business_info: Optional[Dict[str, str]] = None, today: Optional[date] = None) -> QuoteDocument:
    """Build the document view of a hydrated quote (customer and lines loaded)."""
    business = business_info if business_info is not None else business_info_from_config()
    currency = config_value('CURRENCY_CODE', '')
    customer = quote.customer

    items = [
        {
            'position': str(index + 1),
            'description': line.description,
            'unit': line.unit or '',
            'quantity': str(line.quantity),
            'unit_price': money(line.unit_price),
            'discount': percent(line.discount_percent) if line.discount_percent else '',
            'total': money(line.total),
        }
        for index, line in enumerate(sorted(quote.lines, key=lambda l: l.sort_order))
    ]

    totals = {
        'subtotal': money(quote.subtotal),
        'global_discount': percent(quote.global_discount),
        'discount_amount': money(quote.discount_amount),
        'tax_rate': percent(quote.tax_rate),
        'tax_amount': money(quote.tax_amount),
        'total': money(quote.total_amount, currency or None),
    }

    return QuoteDocument(
        quote_id=quote.id,
        quote_number=quote.quote_number,
        title=quote.title or '',
        status=quote_service.effective_status(quote, today).value,
        issued_at=date_display(quote.created_at),
        valid_until=date_display(quote.valid_until),
        business={key: value or '' for key, value in business.items()},
        customer={
            'name': customer.name if customer else '',
            'company_name': (customer.company_name or '') if customer else '',
            'email': customer.email if customer else '',
            'phone': (customer.phone or '') if customer else '',
            'address': (customer.address or '') if customer else '',
            'city': (customer.city or '') if customer else '',
            'postal_code': (customer.postal_code or '') if customer else '',
        },
        items=items,
        totals=totals,
        notes=quote.notes or '',
        currency=currency or '',
        customer_email=customer.email if customer else '',
    )


def generate_quote_pdf(document: QuoteDocument) -> BytesIO:
    """Render a quote document as an A4 PDF."""
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.75*inch,
        leftMargin=0.75*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'QuoteTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )
    header_style = ParagraphStyle(
        'QuoteHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Title and business header
    elements.append(Paragraph("QUOTE", title_style))
    business = document.business
    if business.get('name'):
        elements.append(Paragraph(f"<b>{business['name']}</b>", header_style))
    if business.get('address'):
        elements.append(Paragraph(business['address'], header_style))
    contact_parts = [part for part in (
        f"Tel: {business['phone']}" if business.get('phone') else '',
        f"Email: {business['email']}" if business.get('email') else '',
    ) if part]
    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))
    elements.append(Spacer(1, 0.3*inch))

    # 2. Metadata and customer block
    customer = document.customer
    info_rows = [
        ['Quote no:', document.quote_number],
        ['Date:', document.issued_at],
        ['Valid until:', document.valid_until],
        ['Customer:', customer.get('name', '')],
    ]
    if customer.get('company_name'):
        info_rows.append(['Company:', customer['company_name']])
    address = ", ".join(part for part in (
        customer.get('address'), f"{customer.get('postal_code', '')} {customer.get('city', '')}".strip()
    ) if part)
    if address:
        info_rows.append(['Address:', address])
    if customer.get('email'):
        info_rows.append(['Email:', customer['email']])

    info_table = Table(info_rows, colWidths=[1.5*inch, 4*inch])
    info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items
    table_data = [['Description', 'Unit', 'Qty', 'Unit price', 'Disc.', 'Total']]
    for item in document.items:
        table_data.append([
            Paragraph(item['description'], styles['Normal']),
            item['unit'],
            item['quantity'],
            item['unit_price'],
            item['discount'],
            item['total'],
        ])

    items_table = Table(table_data, colWidths=[2.6*inch, 0.6*inch, 0.5*inch, 1*inch, 0.6*inch, 1.1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('ALIGN', (1, 1), (2, -1), 'CENTER'),
        ('ALIGN', (3, 1), (-1, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals = document.totals
    totals_rows = [['Subtotal:', totals['subtotal']]]
    if totals['discount_amount'] != money(0):
        totals_rows.append([f"Discount ({totals['global_discount']}):", f"-{totals['discount_amount']}"])
    totals_rows.append([f"VAT ({totals['tax_rate']}):", totals['tax_amount']])
    totals_rows.append(['TOTAL:', totals['total']])

    totals_table = Table(totals_rows, colWidths=[5.3*inch, 1.1*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), 14),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, -1), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, -1), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))
    elements.append(totals_table)
    elements.append(Spacer(1, 0.4*inch))

    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    footer_text = f"Valid until {document.valid_until}."
    if document.notes:
        footer_text += f"<br/><br/><b>Notes:</b> {document.notes}"
    elements.append(Paragraph(footer_text, footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def quote_filename(document: QuoteDocument) -> str:
    return f"quote_{document.quote_number}.pdf"


class QuotePresenter:
    """
    Renders quotes and runs the two user actions on them.

    ``deliver`` is the delivery collaborator (email by default). The presenter
    never writes to the database itself; a successful send of a draft goes
    through the lifecycle service.
    """

    def __init__(
        self,
        session: Session,
        organization_id: int,
        deliver: Callable[..., bool] = send_quote_email,
        business_info: Optional[Dict[str, str]] = None,
    ):
        self.session = session
        self.organization_id = organization_id
        self.deliver = deliver
        self.business_info = business_info

    def render(self, quote: Quote) -> QuoteDocument:
        return render_quote(quote, self.business_info)

    def on_download(self, quote: Quote) -> Tuple[str, BytesIO]:
        document = self.render(quote)
        return quote_filename(document), generate_quote_pdf(document)

    def on_send(self, quote: Quote) -> Quote:
        """
        Deliver the quote PDF to the customer.

        Drafts are marked sent once delivery succeeds; re-sending an already
        sent quote leaves its status alone.

        Returns:
            The quote as it stands after the action

        Raises:
            ValidationError: the customer has no email address
            DeliveryError: delivery failed; the quote is unchanged
        """
        document = self.render(quote)
        if not document.customer_email:
            raise ValidationError(f'Quote {quote.quote_number} has no customer email.')

        delivered = self.deliver(
            to_email=document.customer_email,
            customer_name=document.customer['name'],
            quote_number=document.quote_number,
            total_text=document.totals['total'],
            pdf_buffer=generate_quote_pdf(document),
            filename=quote_filename(document),
            business_name=document.business.get('name', ''),
        )
        if not delivered:
            logger.error(f"Delivery of quote {quote.quote_number} failed")
            raise DeliveryError(
                f'Quote {quote.quote_number} could not be emailed to {document.customer_email}, please retry.',
                {'quote_id': quote.id}
            )

        if quote.status == QuoteStatus.DRAFT.value:
            return quote_service.mark_sent(self.session, self.organization_id, quote.id)
        return quote
