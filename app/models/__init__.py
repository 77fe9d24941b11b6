from .base import TimestampMixin, UUIDMixin
from .integration import Integration, SyncJob, SyncJobStatus, WebhookLog, ProviderType
from .queue import SyncQueueItem, SyncType, QueueStatus
from .product import Product
from .mapping import ProductIntegration, UnmatchedProduct
from .order import SalesOrder, SalesOrderLine
from .sync_log import SyncLogEntry

__all__ = [
    # Base
    "TimestampMixin", "UUIDMixin",
    # Integration
    "Integration", "SyncJob", "SyncJobStatus", "WebhookLog", "ProviderType",
    # Queue
    "SyncQueueItem", "SyncType", "QueueStatus",
    # Product
    "Product",
    # Mappings
    "ProductIntegration", "UnmatchedProduct",
    # Order
    "SalesOrder", "SalesOrderLine",
    # Sync
    "SyncLogEntry",
]
