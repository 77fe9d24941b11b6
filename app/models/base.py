"""
Base Model Mixins
"""
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime, JSON, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
import uuid

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UUIDMixin:
    """Mixin for UUID primary key"""
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)


def as_uuid(value):
    """Coerce str/UUID ids to uuid.UUID; None passes through"""
    if value is None or isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))
