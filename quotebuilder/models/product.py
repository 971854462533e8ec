"""Product model."""
from sqlalchemy import Column, BigInteger, String, Text, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from quotebuilder.database import Base, BigIntPK


class Product(Base):
    """
    Catalog product offered on quotes.

    Products are soft-deleted through ``active``; quote lines keep their own
    copy of description and price so deactivating or repricing a product
    never changes an existing quote.
    """

    __tablename__ = 'product'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    organization_id = Column(BigInteger, ForeignKey('organization.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)
    unit_price = Column(Numeric(14, 2), nullable=False, default=0)
    unit = Column(String(32), nullable=True)  # piece, hour, ...
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    organization = relationship('Organization')

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', price={self.unit_price})>"
