"""
Order Models
"""
from sqlalchemy import Column, String, Numeric, Integer, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.core import Base
from .base import UUIDMixin, TimestampMixin

class SalesOrder(Base, UUIDMixin, TimestampMixin):
    """Sales Order imported from an external store"""
    __tablename__ = "sales_order"

    # External reference
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integration.id", ondelete="CASCADE"), nullable=False)
    external_order_id = Column(String(100), nullable=False)
    order_number = Column(String(50))  # e.g. #1001
    source = Column(String(30), default="shopify")

    # Status
    status = Column(String(30), default="new", index=True)  # new, confirmed, ..., shipped, cancelled
    financial_status = Column(String(30))
    fulfillment_status = Column(String(30))

    customer_name = Column(String(200))
    customer_email = Column(String(200))

    # Shipping address
    shipping_name = Column(String(200))
    shipping_address1 = Column(String(300))
    shipping_address2 = Column(String(300))
    shipping_city = Column(String(100))
    shipping_province = Column(String(100))
    shipping_zip = Column(String(20))
    shipping_country = Column(String(100))
    shipping_phone = Column(String(50))

    total_amount = Column(Numeric(12, 2), default=0)
    currency_code = Column(String(3))
    order_date = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))

    # Relationships
    lines = relationship("SalesOrderLine", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('integration_id', 'external_order_id', name='uq_sales_order_external'),
    )

class SalesOrderLine(Base, UUIDMixin):
    """Sales Order Line"""
    __tablename__ = "sales_order_line"

    sales_order_id = Column(Uuid(as_uuid=True), ForeignKey("sales_order.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id"))
    sku = Column(String(100))
    product_name = Column(String(300))
    external_line_item_id = Column(String(100))
    external_variant_id = Column(String(100))
    quantity_ordered = Column(Integer, default=1, nullable=False)
    unit_price = Column(Numeric(12, 2), default=0)

    # Relationships
    order = relationship("SalesOrder", back_populates="lines")
