"""
Order Sync Service - Import Shopify orders as local sales orders
"""
from typing import List, Dict, Any, Optional, Iterable
from datetime import datetime
from decimal import Decimal
from dateutil import parser as date_parser
from sqlalchemy.orm import Session
import logging

from app.models.base import as_uuid
from app.models.mapping import ProductIntegration
from app.models.order import SalesOrder, SalesOrderLine
from app.models.queue import SyncType
from app.schemas.shopify import ShopifyOrder
from app.services import matching_service
from app.services.sync_service import BaseSyncWorker, PageResult, register_worker

logger = logging.getLogger(__name__)

# Statuses advanced by the warehouse; the store no longer drives these orders
LOCALLY_ADVANCED_STATUSES = frozenset({
    "confirmed", "reserved", "picking", "packed", "shipped", "completed",
})


def map_order_status(order: ShopifyOrder, current_status: Optional[str] = None) -> str:
    """Shopify order state -> local sales order status"""
    if current_status in LOCALLY_ADVANCED_STATUSES:
        return current_status

    if order.fulfillment_status == "fulfilled":
        return "shipped"
    if order.fulfillment_status == "partial":
        return "partially_shipped"
    if order.cancelled_at:
        return "cancelled"

    return current_status or "new"


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return date_parser.isoparse(value)
    except ValueError:
        logger.warning(f"Unparseable Shopify timestamp: {value}")
        return None


def apply_order(
    db: Session,
    integration_id,
    order: ShopifyOrder,
    existing: Optional[SalesOrder],
    products_by_sku: Dict[str, Any],
    products_by_variant: Dict[str, Any],
) -> SalesOrder:
    """Create or refresh one sales order; line items are rebuilt every time"""
    sales_order = existing
    if sales_order is None:
        sales_order = SalesOrder(
            integration_id=as_uuid(integration_id),
            external_order_id=str(order.id),
            source="shopify",
        )
        db.add(sales_order)

    sales_order.order_number = order.display_number
    sales_order.status = map_order_status(order, existing.status if existing else None)
    sales_order.financial_status = order.financial_status
    sales_order.fulfillment_status = order.fulfillment_status
    sales_order.total_amount = order.total_price
    sales_order.currency_code = order.currency
    sales_order.order_date = _parse_time(order.created_at)
    sales_order.cancelled_at = _parse_time(order.cancelled_at)

    customer = order.customer
    sales_order.customer_name = customer.full_name if customer else None
    sales_order.customer_email = (customer.email if customer else None) or order.email

    address = order.shipping_address
    sales_order.shipping_name = address.name if address else None
    sales_order.shipping_address1 = address.address1 if address else None
    sales_order.shipping_address2 = address.address2 if address else None
    sales_order.shipping_city = address.city if address else None
    sales_order.shipping_province = address.province if address else None
    sales_order.shipping_zip = address.zip if address else None
    sales_order.shipping_country = address.country if address else None
    sales_order.shipping_phone = address.phone if address else None

    sales_order.lines.clear()
    for item in order.line_items:
        product = products_by_sku.get(matching_service.normalize_sku(item.sku))
        if product is None and item.variant_id is not None:
            product = products_by_variant.get(str(item.variant_id))

        sales_order.lines.append(SalesOrderLine(
            product_id=product.id if product else None,
            sku=item.sku or None,
            product_name=item.title or item.name,
            external_line_item_id=str(item.id),
            external_variant_id=str(item.variant_id) if item.variant_id is not None else None,
            quantity_ordered=item.quantity,
            unit_price=item.price or Decimal("0"),
        ))

    return sales_order


def lookup_line_products(db: Session, integration_id, orders: Iterable[ShopifyOrder]):
    """Batch SKU lookup plus variant-id fallback through existing listing links"""
    orders = list(orders)
    products_by_sku = matching_service.find_products_by_skus(
        db, (item.sku for o in orders for item in o.line_items if item.sku)
    )

    variant_ids = {str(item.variant_id) for o in orders for item in o.line_items if item.variant_id is not None}
    products_by_variant = {}
    if variant_ids:
        links = db.query(ProductIntegration).filter(
            ProductIntegration.integration_id == as_uuid(integration_id),
            ProductIntegration.external_variant_id.in_(variant_ids),
        ).all()
        products_by_variant = {link.external_variant_id: link.product for link in links}

    return products_by_sku, products_by_variant


@register_worker
class OrderSyncWorker(BaseSyncWorker):
    """
    Order sync. Orders are upserted by (integration_id, external_order_id);
    statuses the warehouse has already advanced are never overwritten.
    """
    sync_type = SyncType.ORDER_SYNC
    resource = "orders"

    def first_page_params(self) -> Optional[Dict[str, Any]]:
        return {"status": "any"}

    def apply_page(self, records: List[Dict[str, Any]]) -> PageResult:
        orders = [ShopifyOrder.model_validate(r) for r in records]
        if not orders:
            return PageResult(processed=0)

        external_ids = [str(o.id) for o in orders]
        existing = {
            so.external_order_id: so
            for so in self.db.query(SalesOrder).filter(
                SalesOrder.integration_id == self.integration.id,
                SalesOrder.external_order_id.in_(external_ids),
            ).all()
        }
        products_by_sku, products_by_variant = lookup_line_products(self.db, self.integration.id, orders)

        created = updated = matched_lines = 0
        for order in orders:
            current = existing.get(str(order.id))
            sales_order = apply_order(
                self.db, self.integration.id, order, current, products_by_sku, products_by_variant,
            )
            existing[str(order.id)] = sales_order
            matched_lines += sum(1 for line in sales_order.lines if line.product_id)
            if current is None:
                created += 1
            else:
                updated += 1

        self.db.flush()
        return PageResult(
            processed=len(orders),
            matched=matched_lines,
            counters={"created": created, "updated": updated},
        )
