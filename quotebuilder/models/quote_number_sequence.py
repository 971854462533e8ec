"""Per-organization counter backing quote number allocation."""
from sqlalchemy import Column, BigInteger, ForeignKey
from quotebuilder.database import Base


class QuoteNumberSequence(Base):
    """
    Last quote number handed out for an organization.

    The row is locked and incremented inside the same transaction that
    inserts the quote, so a rolled back creation gives its number back.
    """

    __tablename__ = 'quote_number_sequence'

    organization_id = Column(BigInteger, ForeignKey('organization.id'), primary_key=True, autoincrement=False)
    last_value = Column(BigInteger, nullable=False, default=0)

    def __repr__(self):
        return f"<QuoteNumberSequence(organization_id={self.organization_id}, last_value={self.last_value})>"
