"""
Webhook Service - Verify and apply inbound Shopify webhooks
"""
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.orm import Session
import json
import logging

from app.integrations.shopify import verify_hmac
from app.models.integration import Integration
from app.models.order import SalesOrder
from app.schemas.shopify import ShopifyOrder
from app.services import integration_service
from app.services.order_sync_service import apply_order, lookup_line_products, map_order_status

logger = logging.getLogger(__name__)

ORDER_CREATE_TOPIC = "orders/create"


@dataclass
class WebhookResult:
    status_code: int
    result: str  # CREATED, DUPLICATE, IGNORED, REJECTED, FAILED
    message: str
    order_id: Optional[str] = None


def verify_signature(integration: Integration, raw_body: bytes, signature: str) -> bool:
    return verify_hmac(integration.webhook_secret, raw_body, signature)


def create_order_from_webhook(db: Session, integration: Integration, order: ShopifyOrder) -> WebhookResult:
    """
    Insert the order unless one with the same external id already exists.
    Paid orders arrive confirmed; everything else goes through the normal
    status mapping.
    """
    existing = db.query(SalesOrder).filter(
        SalesOrder.integration_id == integration.id,
        SalesOrder.external_order_id == str(order.id),
    ).first()
    if existing:
        logger.info(f"Order {order.display_number} ({order.id}) already exists, skipping")
        return WebhookResult(200, "DUPLICATE", "Order already exists", str(existing.id))

    products_by_sku, products_by_variant = lookup_line_products(db, integration.id, [order])
    sales_order = apply_order(db, integration.id, order, None, products_by_sku, products_by_variant)
    if order.financial_status == "paid" and not order.cancelled_at:
        sales_order.status = "confirmed"
    else:
        sales_order.status = map_order_status(order)

    db.commit()
    db.refresh(sales_order)

    logger.info(f"Created sales order {sales_order.id} from webhook order {order.display_number}")
    return WebhookResult(200, "CREATED", "Order created", str(sales_order.id))


def handle_shopify_webhook(
    db: Session,
    topic: Optional[str],
    shop_domain: Optional[str],
    signature: Optional[str],
    raw_body: bytes,
) -> WebhookResult:
    """
    Verify the HMAC over the raw body before trusting anything in it, log
    every delivery, then dispatch on topic.
    """
    if not topic or not signature:
        return WebhookResult(400, "REJECTED", "Missing Shopify headers")

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        return WebhookResult(400, "REJECTED", "Invalid JSON body")

    integration = integration_service.get_integration_by_shop(db, shop_domain or "")
    webhook_log = integration_service.log_webhook(
        db,
        topic=topic,
        shop_domain=shop_domain,
        payload=payload,
        signature=signature,
        integration_id=integration.id if integration else None,
    )

    if integration is None:
        integration_service.mark_webhook_processed(db, webhook_log.id, "REJECTED", "Integration not found")
        return WebhookResult(404, "REJECTED", "Integration not found")

    if not integration.webhook_secret:
        integration_service.mark_webhook_processed(db, webhook_log.id, "REJECTED", "Webhook secret missing")
        return WebhookResult(500, "REJECTED", "Webhook secret missing")

    if not verify_signature(integration, raw_body, signature):
        logger.warning(f"Invalid webhook signature from {shop_domain} ({topic})")
        integration_service.mark_webhook_processed(db, webhook_log.id, "REJECTED", "Invalid signature")
        return WebhookResult(401, "REJECTED", "Unauthorized")

    webhook_log.verified = True
    db.commit()

    if topic != ORDER_CREATE_TOPIC:
        integration_service.mark_webhook_processed(db, webhook_log.id, "IGNORED")
        return WebhookResult(200, "IGNORED", f"Topic {topic} not handled")

    try:
        order = ShopifyOrder.model_validate(payload)
        result = create_order_from_webhook(db, integration, order)
    except Exception as e:
        db.rollback()
        logger.error(f"Webhook processing failed: {topic} from {shop_domain} - {e}")
        integration_service.mark_webhook_processed(db, webhook_log.id, "FAILED", str(e))
        raise

    integration_service.mark_webhook_processed(db, webhook_log.id, result.result)
    return result
