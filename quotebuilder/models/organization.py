"""Organization model - each business owning products, customers and quotes."""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from quotebuilder.database import Base, BigIntPK


class Organization(Base):
    """Organization (tenant) model."""

    __tablename__ = 'organization'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    name = Column(String(200), nullable=False)  # Display name
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Organization(id={self.id}, slug='{self.slug}', name='{self.name}')>"
