"""
Webhook API Endpoints - Receive notifications from Shopify
"""
from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
import logging

from app.core.database import get_db
from app.services import webhook_service

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/shopify")
async def shopify_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Receive webhook notifications from Shopify
    Topics: orders/create (others are logged and ignored)
    """
    try:
        body = await request.body()

        result = await run_in_threadpool(
            webhook_service.handle_shopify_webhook,
            db,
            topic=request.headers.get("X-Shopify-Topic"),
            shop_domain=request.headers.get("X-Shopify-Shop-Domain"),
            signature=request.headers.get("X-Shopify-Hmac-Sha256"),
            raw_body=body,
        )

        return JSONResponse(
            {"result": result.result, "message": result.message, "order_id": result.order_id},
            status_code=result.status_code,
        )

    except Exception as e:
        logger.error(f"Shopify webhook error: {e}")
        return JSONResponse({"result": "FAILED", "error": str(e)}, status_code=500)
