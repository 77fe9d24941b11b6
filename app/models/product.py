from sqlalchemy import Column, String, Numeric, Boolean, Text
from sqlalchemy.orm import relationship
from app.core import Base
from .base import UUIDMixin, TimestampMixin


class Product(Base, UUIDMixin, TimestampMixin):
    """
    Local catalog entry. Store variants link to it by SKU through
    ProductIntegration; order lines reference it directly.
    """
    __tablename__ = "product"

    sku = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(300), nullable=False)
    description = Column(Text)
    barcode = Column(String(100))
    list_price = Column(Numeric(12, 2), default=0)
    cost_price = Column(Numeric(12, 2), default=0)
    source = Column(String(30), default="manual")  # manual, shopify_import
    is_active = Column(Boolean, default=True)

    integrations = relationship("ProductIntegration", back_populates="product", cascade="all, delete-orphan")
