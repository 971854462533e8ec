"""Quote model for sales quotations."""
import enum
from datetime import date
from decimal import Decimal
from sqlalchemy import (
    Column, BigInteger, String, Numeric, DateTime, Date, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotebuilder.database import Base, BigIntPK


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"  # derived on read, never stored


class Quote(Base):
    """
    Quote (offer) sent to a customer.

    ``subtotal`` is the sum of line totals before the global discount;
    ``total_amount`` is the discounted subtotal plus tax. Each lifecycle
    transition stamps its own timestamp.
    """

    __tablename__ = 'quote'
    __table_args__ = (
        UniqueConstraint('organization_id', 'quote_number', name='uq_quote_org_number'),
        UniqueConstraint('organization_id', 'draft_token', name='uq_quote_org_draft_token'),
    )

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False, index=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=False)
    quote_number = Column(String(64), nullable=False)
    title = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value)
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    global_discount = Column(Numeric(5, 2), nullable=False, default=0)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    valid_until = Column(Date, nullable=True)
    # Id of the wizard draft this quote was saved from; one quote per draft
    draft_token = Column(String(32), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')
    customer = relationship('Customer', back_populates='quotes')
    lines = relationship(
        'QuoteLineItem',
        back_populates='quote',
        cascade='all, delete-orphan',
        order_by='QuoteLineItem.sort_order',
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, number='{self.quote_number}', status='{self.status}', total={self.total_amount})>"

    @property
    def discount_amount(self):
        """Amount removed from the subtotal by the global discount."""
        subtotal = Decimal(self.subtotal or 0)
        return (subtotal * Decimal(self.global_discount or 0) / Decimal('100')).quantize(Decimal('0.01'))

    @property
    def is_expired(self):
        """Check if quote is expired (calculated, not stored)."""
        if self.status in (QuoteStatus.SENT.value, QuoteStatus.VIEWED.value) and self.valid_until:
            return date.today() > self.valid_until
        return False
