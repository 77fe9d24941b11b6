# Pydantic Schemas Package
from .sync import (
    SyncInvocation, SyncResponse, PageOutcome,
    ProductSyncCheckpoint, OrderSyncCheckpoint, Checkpoint, decode_checkpoint,
    EnqueueRequest, QueueItemResponse, SyncJobResponse, ProcessBatchResponse, ProcessedItem,
    UnmatchedProductResponse, ImportUnmatchedRequest,
)
from .integration import IntegrationCreate, IntegrationResponse
from .shopify import ShopifyProduct, ShopifyVariant, ShopifyOrder, ShopifyLineItem

__all__ = [
    "SyncInvocation", "SyncResponse", "PageOutcome",
    "ProductSyncCheckpoint", "OrderSyncCheckpoint", "Checkpoint", "decode_checkpoint",
    "EnqueueRequest", "QueueItemResponse", "SyncJobResponse", "ProcessBatchResponse", "ProcessedItem",
    "UnmatchedProductResponse", "ImportUnmatchedRequest",
    "IntegrationCreate", "IntegrationResponse",
    "ShopifyProduct", "ShopifyVariant", "ShopifyOrder", "ShopifyLineItem",
]
