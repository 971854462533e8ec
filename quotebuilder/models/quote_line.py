"""QuoteLineItem model for quote line items."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from quotebuilder.database import Base, BigIntPK


class QuoteLineItem(Base):
    """
    Quote line item.

    Stores a snapshot of description and unit price at the time the line was
    added so later product edits never change a historical quote.
    ``product_id`` is empty for free-text lines.
    """

    __tablename__ = 'quote_line_item'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    quote_id = Column(BigInteger, ForeignKey('quote.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=True)
    description = Column(Text, nullable=False)
    unit = Column(String(32), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    discount_percent = Column(Numeric(5, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)

    # Relationships
    quote = relationship('Quote', back_populates='lines')
    product = relationship('Product', foreign_keys=[product_id])

    def __repr__(self):
        return f"<QuoteLineItem(id={self.id}, quote_id={self.quote_id}, description='{self.description}', qty={self.quantity}, total={self.total})>"
