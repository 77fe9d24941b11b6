"""
Top-level /api router: mounts the sync, webhook, integration and
reconciliation routers and reports service status.
"""
from datetime import datetime, timezone

from fastapi import APIRouter

from app.core import settings
from app.jobs.queue_scheduler import get_scheduler_state
from app.api.sync import router as sync_router
from app.api.webhooks import webhook_router
from app.api.integrations import integrations_router
from app.api.reconciliation import router as reconciliation_router

api_router = APIRouter(tags=["API"])

for _router in (sync_router, webhook_router, integrations_router, reconciliation_router):
    api_router.include_router(_router)


@api_router.get("/status")
async def api_status():
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "shopify_api_version": settings.SHOPIFY_API_VERSION,
        "scheduler": get_scheduler_state(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
