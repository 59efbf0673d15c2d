"""Product SQLAlchemy model"""

from datetime import datetime, timezone

from sqlalchemy import Column, Text, Boolean, Numeric, DateTime, Index

from .base import Base


class Product(Base):
    """Product model holding the current price and tax truth.

    Membership fees, insurance and donation products share this table.
    Staged line snapshots are compared against these rows at commit time.
    """
    __tablename__ = "product"
    __table_args__ = (
        Index("ix_product_active", "active"),
    )

    id = Column(Text, primary_key=True)
    code = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self):
        """Convert product to dictionary representation"""
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "tax_rate": str(self.tax_rate),
            "active": self.active,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
