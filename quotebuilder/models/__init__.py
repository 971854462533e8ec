"""Models package - exports all SQLAlchemy models."""
from quotebuilder.models.organization import Organization
from quotebuilder.models.product import Product
from quotebuilder.models.customer import Customer
from quotebuilder.models.quote import Quote, QuoteStatus
from quotebuilder.models.quote_line import QuoteLineItem
from quotebuilder.models.quote_number_sequence import QuoteNumberSequence

__all__ = [
    'Organization',
    'Product', 'Customer',
    'Quote', 'QuoteStatus', 'QuoteLineItem', 'QuoteNumberSequence',
]
