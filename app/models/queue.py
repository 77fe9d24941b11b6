"""
Sync Queue Model - Durable queue of page-sized sync work
"""
import uuid
import enum
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index, Uuid, text

from app.core.database import Base
from .base import JSONType, utcnow


class SyncType(str, enum.Enum):
    PRODUCT_SYNC = "product_sync"
    ORDER_SYNC = "order_sync"


class QueueStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncQueueItem(Base):
    """
    One pending/active/finished sync request.

    At most one row per (integration_id, sync_type) may be 'processing';
    the partial unique index enforces it at the database level.
    """
    __tablename__ = "sync_queue"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("integration.id", ondelete="CASCADE"), nullable=False)
    sync_type = Column(String(30), nullable=False)
    status = Column(String(20), nullable=False, default=QueueStatus.PENDING.value)
    priority = Column(Integer, nullable=False, default=3)  # 1 = most urgent

    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)

    checkpoint = Column(JSONType, default=dict)
    last_heartbeat = Column(DateTime(timezone=True))
    # Earliest time a requeued item may be claimed again
    available_at = Column(DateTime(timezone=True))

    error_message = Column(Text)
    error_type = Column(String(20))

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_sync_queue_claim", "status", "priority", "created_at"),
        Index(
            "uq_sync_queue_one_processing",
            "integration_id", "sync_type",
            unique=True,
            postgresql_where=text("status = 'processing'"),
            sqlite_where=text("status = 'processing'"),
        ),
    )

    def __repr__(self):
        return f"<SyncQueueItem {self.id} {self.sync_type} {self.status}>"
