"""
Sync Schemas - invocation bodies, checkpoints and read models
"""
from pydantic import BaseModel, Field, TypeAdapter
from typing import Optional, List, Literal, Union, Annotated, Dict, Any
from datetime import datetime
from uuid import UUID

from app.models.queue import SyncType


# ========== Invocation ==========

class SyncInvocation(BaseModel):
    """Body of a one-page worker invocation"""
    integration_id: UUID = Field(alias="integrationId")
    queue_id: Optional[UUID] = Field(None, alias="queueId")
    job_id: Optional[UUID] = Field(None, alias="jobId")
    page_info: Optional[str] = None

    class Config:
        populate_by_name = True


class SyncResponse(BaseModel):
    """
    nextPageInfo present and non-null means the caller must re-invoke
    with that value to continue
    """
    success: bool
    next_page_info: Optional[str] = Field(None, alias="nextPageInfo")
    job_id: Optional[str] = Field(None, alias="jobId")
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = Field(None, alias="errorType")

    class Config:
        populate_by_name = True

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PageOutcome(BaseModel):
    """Result of one worker page-invocation"""
    status: Literal["more", "done", "skipped", "cancelled"]
    next_page_info: Optional[str] = None
    job_id: Optional[str] = None
    processed: int = 0
    message: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.status == "more" and self.next_page_info is not None

    def to_response(self) -> SyncResponse:
        return SyncResponse(
            success=True,
            next_page_info=self.next_page_info if self.status == "more" else None,
            job_id=self.job_id,
            message=self.message,
        )


# ========== Checkpoints ==========

class _CheckpointBase(BaseModel):
    page_info: Optional[str] = None
    job_id: Optional[str] = None
    pages_processed: int = 0
    processed: int = 0


class ProductSyncCheckpoint(_CheckpointBase):
    sync_type: Literal["product_sync"] = "product_sync"
    matched: int = 0
    unmatched: int = 0


class OrderSyncCheckpoint(_CheckpointBase):
    sync_type: Literal["order_sync"] = "order_sync"
    created: int = 0
    updated: int = 0


Checkpoint = Annotated[
    Union[ProductSyncCheckpoint, OrderSyncCheckpoint],
    Field(discriminator="sync_type"),
]

_checkpoint_adapter = TypeAdapter(Checkpoint)


def decode_checkpoint(sync_type: str, payload: Optional[Dict[str, Any]]) -> Checkpoint:
    """
    Validate a stored checkpoint for the given sync type.
    An empty payload decodes to a fresh checkpoint; a payload tagged with a
    different sync type is rejected.
    """
    data = dict(payload or {})
    stored_type = data.get("sync_type")
    if stored_type and stored_type != sync_type:
        raise ValueError(f"Checkpoint for {stored_type} cannot resume {sync_type}")
    data["sync_type"] = sync_type
    return _checkpoint_adapter.validate_python(data)


# ========== Queue ==========

class EnqueueRequest(BaseModel):
    integration_id: UUID
    sync_type: SyncType
    priority: Optional[int] = Field(None, ge=1, le=10)
    max_retries: Optional[int] = Field(None, ge=0, le=20)
    force: bool = False


class QueueItemResponse(BaseModel):
    id: UUID
    integration_id: UUID
    sync_type: str
    status: str
    priority: int
    retry_count: int
    max_retries: int
    checkpoint: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    last_heartbeat: Optional[datetime] = None
    available_at: Optional[datetime] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncJobResponse(BaseModel):
    id: UUID
    integration_id: UUID
    queue_id: Optional[UUID] = None
    job_type: str
    status: str
    total_items: int
    processed_items: int
    matched_items: int
    error_count: int
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProcessedItem(BaseModel):
    queue_id: str
    sync_type: str
    status: Literal["completed", "continued", "requeued", "failed", "cancelled", "skipped"]
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    retry_count: int = 0


class ProcessBatchResponse(BaseModel):
    processed: int = 0
    results: List[ProcessedItem] = []

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)


# ========== Reconciliation ==========

class UnmatchedProductResponse(BaseModel):
    id: UUID
    integration_id: UUID
    external_product_id: Optional[str] = None
    external_variant_id: str
    sku: Optional[str] = None
    name: Optional[str] = None
    variant_name: Optional[str] = None
    price: Optional[float] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ImportUnmatchedRequest(BaseModel):
    ids: List[UUID] = Field(min_length=1)
