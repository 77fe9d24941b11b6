# Services Package
# Worker modules are imported here so their sync types are registered
from . import errors, backoff
from . import queue_service, integration_service, matching_service
from . import sync_service, product_sync_service, order_sync_service
from . import queue_processor, webhook_service, reconciliation_service

__all__ = [
    "errors", "backoff",
    "queue_service", "integration_service", "matching_service",
    "sync_service", "product_sync_service", "order_sync_service",
    "queue_processor", "webhook_service", "reconciliation_service",
]
