from sqlalchemy import Column, String, Numeric, ForeignKey, DateTime, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from app.core import Base
from .base import UUIDMixin, TimestampMixin, JSONType, utcnow

class ProductIntegration(Base, UUIDMixin, TimestampMixin):
    """
    Link between a local product and its listing in an external store.
    One link per (product, integration); re-syncing updates it in place.
    """
    __tablename__ = "product_integration"

    product_id = Column(Uuid(as_uuid=True), ForeignKey("product.id", ondelete="CASCADE"), nullable=False)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integration.id", ondelete="CASCADE"), nullable=False)
    external_product_id = Column(String(100))
    external_variant_id = Column(String(100), index=True)
    external_inventory_item_id = Column(String(100))
    last_synced_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    product = relationship("Product", back_populates="integrations")

    __table_args__ = (
        UniqueConstraint('product_id', 'integration_id', name='uq_product_integration'),
    )

class UnmatchedProduct(Base, UUIDMixin, TimestampMixin):
    """
    External variant whose SKU has no local product, held for manual review.
    """
    __tablename__ = "unmatched_product"

    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integration.id", ondelete="CASCADE"), nullable=False)
    external_product_id = Column(String(100))
    external_variant_id = Column(String(100), nullable=False)
    sku = Column(String(100), index=True)
    name = Column(String(300))
    variant_name = Column(String(300))
    price = Column(Numeric(12, 2))
    cost = Column(Numeric(12, 2))
    data = Column(JSONType)

    __table_args__ = (
        UniqueConstraint('integration_id', 'external_variant_id', name='uq_unmatched_external_variant'),
    )
