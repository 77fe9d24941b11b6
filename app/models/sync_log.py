"""
Sync Log Model - Detailed per-invocation log lines from sync workers
"""
from sqlalchemy import Column, String, DateTime, Text, Uuid
from app.core import Base
from .base import UUIDMixin, JSONType, utcnow


class SyncLogEntry(Base, UUIDMixin):
    """One log line written during a sync invocation"""
    __tablename__ = "sync_log"

    queue_id = Column(Uuid(as_uuid=True), index=True)
    integration_id = Column(Uuid(as_uuid=True), index=True)
    job_id = Column(Uuid(as_uuid=True))
    function_name = Column(String(50), nullable=False)
    level = Column(String(10), nullable=False)  # debug, info, warn, error
    message = Column(Text, nullable=False)
    details = Column(JSONType)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
