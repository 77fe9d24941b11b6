"""
Product Sync Service - Match Shopify variants to local products by SKU
"""
from typing import List, Dict, Any
import logging

from app.models.queue import SyncType
from app.schemas.shopify import ShopifyProduct
from app.services import matching_service
from app.services.sync_service import BaseSyncWorker, PageResult, register_worker

logger = logging.getLogger(__name__)


@register_worker
class ProductSyncWorker(BaseSyncWorker):
    """
    Catalog sync. Records are products; matching is per variant.
    Matched variants get a product_integration link, the rest land in
    unmatched_product for manual review. Variants without SKU are skipped.
    """
    sync_type = SyncType.PRODUCT_SYNC
    resource = "products"

    def apply_page(self, records: List[Dict[str, Any]]) -> PageResult:
        products = [ShopifyProduct.model_validate(r) for r in records]
        raw_variants = {
            v.get("id"): v
            for r in records
            for v in (r.get("variants") or [])
        }

        variants = [
            (product, variant)
            for product in products
            for variant in product.variants
            if variant.clean_sku
        ]
        skipped = sum(len(p.variants) for p in products) - len(variants)

        local = matching_service.find_products_by_skus(self.db, (v.clean_sku for _, v in variants))

        links = []
        unmatched = []
        for product, variant in variants:
            match = local.get(matching_service.normalize_sku(variant.clean_sku))
            if match:
                links.append({
                    "product_id": match.id,
                    "external_product_id": str(product.id),
                    "external_variant_id": str(variant.id),
                    "external_inventory_item_id": str(variant.inventory_item_id) if variant.inventory_item_id else None,
                })
            else:
                unmatched.append({
                    "external_product_id": str(product.id),
                    "external_variant_id": str(variant.id),
                    "sku": variant.clean_sku,
                    "name": product.title,
                    "variant_name": variant.title,
                    "price": variant.price,
                    "data": {
                        "product": {"id": product.id, "title": product.title, "status": product.status},
                        "variant": raw_variants.get(variant.id, {}),
                    },
                })

        matching_service.upsert_product_links(self.db, self.integration.id, links)
        matching_service.upsert_unmatched(self.db, self.integration.id, unmatched)
        matching_service.remove_from_unmatched(
            self.db, self.integration.id, (link["external_variant_id"] for link in links)
        )

        if skipped:
            logger.debug(f"Skipped {skipped} variants without SKU")

        return PageResult(
            processed=len(products),
            matched=len(links),
            counters={"matched": len(links), "unmatched": len(unmatched)},
        )
