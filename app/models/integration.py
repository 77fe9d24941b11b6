"""
Integration Models - Store credentials, sync jobs, webhook logs
"""
import uuid
from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from app.core.database import Base
from .base import JSONType, TimestampMixin, utcnow
import enum


class ProviderType(str, enum.Enum):
    SHOPIFY = "shopify"


class SyncJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = (
    SyncJobStatus.COMPLETED.value,
    SyncJobStatus.FAILED.value,
    SyncJobStatus.CANCELLED.value,
)


def normalize_shop_domain(shop_url: str) -> str:
    """Strip scheme and trailing slash: https://x.myshopify.com/ -> x.myshopify.com"""
    url = (shop_url or "").strip()
    for scheme in ("https://", "http://"):
        if url.lower().startswith(scheme):
            url = url[len(scheme):]
    return url.rstrip("/").lower()


class Integration(Base, TimestampMixin):
    """
    External store account and its API credentials
    """
    __tablename__ = "integration"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider = Column(String(30), nullable=False, default=ProviderType.SHOPIFY.value)
    name = Column(String(200))

    # API Credentials (should be encrypted in production)
    shop_url = Column(String(300), nullable=False)
    access_token = Column(Text, nullable=False)

    # Webhook configuration
    webhook_secret = Column(String(200))

    is_active = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(DateTime(timezone=True))

    # Relationships
    sync_jobs = relationship("SyncJob", back_populates="integration", cascade="all, delete-orphan")

    @property
    def shop_domain(self) -> str:
        return normalize_shop_domain(self.shop_url)

    def __repr__(self):
        return f"<Integration {self.provider}:{self.shop_domain}>"


class SyncJob(Base):
    """
    Operator-facing progress record; spans every page of one sync
    """
    __tablename__ = "sync_job"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integration.id", ondelete="CASCADE"), nullable=False, index=True)
    queue_id = Column(Uuid(as_uuid=True), index=True)

    job_type = Column(String(30), nullable=False, default="product_sync")
    status = Column(String(20), nullable=False, default=SyncJobStatus.PENDING.value, index=True)

    # Progress
    total_items = Column(Integer, default=0, nullable=False)
    processed_items = Column(Integer, default=0, nullable=False)
    matched_items = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    # Cursor of the last page already counted into processed_items
    last_page_key = Column(Text)

    # Error tracking
    error_message = Column(Text)
    error_type = Column(String(20))

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    started_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime(timezone=True))

    # Relationships
    integration = relationship("Integration", back_populates="sync_jobs")

    def __repr__(self):
        return f"<SyncJob {self.id} {self.job_type} {self.status}>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def mark_running(self):
        self.status = SyncJobStatus.RUNNING.value
        if not self.started_at:
            self.started_at = utcnow()

    def mark_completed(self):
        self.status = SyncJobStatus.COMPLETED.value
        self.completed_at = utcnow()

    def mark_failed(self, error_message: str, error_type: str = None):
        self.status = SyncJobStatus.FAILED.value
        self.completed_at = utcnow()
        self.error_message = error_message
        self.error_type = error_type


class WebhookLog(Base):
    """
    Log incoming webhook payloads for debugging and replay
    """
    __tablename__ = "webhook_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integration.id", ondelete="SET NULL"))
    topic = Column(String(100))  # orders/create, products/update, etc.
    shop_domain = Column(String(300))

    # Request data
    payload = Column(JSONType)
    signature = Column(String(500))
    verified = Column(Boolean, default=False, nullable=False)

    # Processing status
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime(timezone=True))
    process_result = Column(String(50))  # CREATED, DUPLICATE, IGNORED, REJECTED, FAILED
    process_error = Column(Text)

    received_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<WebhookLog {self.topic} {self.received_at}>"

    def mark_processed(self, result: str, error: str = None):
        self.processed = True
        self.processed_at = utcnow()
        self.process_result = result
        self.process_error = error
