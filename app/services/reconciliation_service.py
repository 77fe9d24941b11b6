"""
Reconciliation Service - Review and import unmatched store listings
"""
from dataclasses import dataclass, field
from typing import Optional, List, Iterable
from sqlalchemy.orm import Session
from sqlalchemy import or_
import logging

from app.models.base import as_uuid
from app.models.product import Product
from app.models.mapping import ProductIntegration, UnmatchedProduct
from app.services import matching_service

logger = logging.getLogger(__name__)


@dataclass
class ImportOutcome:
    imported: int = 0
    skipped: List[str] = field(default_factory=list)


def get_unmatched_products(
    db: Session,
    integration_id: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = 100,
) -> List[UnmatchedProduct]:
    query = db.query(UnmatchedProduct)

    if integration_id:
        query = query.filter(UnmatchedProduct.integration_id == as_uuid(integration_id))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            UnmatchedProduct.sku.ilike(pattern),
            UnmatchedProduct.name.ilike(pattern),
        ))

    return query.order_by(UnmatchedProduct.created_at.desc()).limit(limit).all()


def import_unmatched_products(db: Session, unmatched_ids: Iterable) -> ImportOutcome:
    """
    Turn unmatched listings into local products.

    Each row becomes a product (variant name as title, product name as
    description), gets linked to its listing, and leaves the review table.
    A listing whose SKU now exists locally is linked to that product
    instead of creating a duplicate. If that product is already linked to a
    different listing on the same store, the row is skipped and stays in
    review; the existing link is never repointed.
    """
    ids = [as_uuid(i) for i in unmatched_ids]
    outcome = ImportOutcome()
    if not ids:
        return outcome

    rows = db.query(UnmatchedProduct).filter(UnmatchedProduct.id.in_(ids)).all()
    existing = matching_service.find_products_by_skus(db, (r.sku for r in rows if r.sku))

    for row in rows:
        product = existing.get(matching_service.normalize_sku(row.sku))
        if product is None:
            product = Product(
                sku=(row.sku or f"SHOPIFY-{row.external_variant_id}").strip(),
                name=row.variant_name or row.name or row.sku,
                description=row.name,
                list_price=row.price or 0,
                cost_price=row.cost or 0,
                source="shopify_import",
                is_active=True,
            )
            db.add(product)
            db.flush()
            existing[matching_service.normalize_sku(product.sku)] = product

        link = db.query(ProductIntegration).filter(
            ProductIntegration.product_id == product.id,
            ProductIntegration.integration_id == row.integration_id,
        ).first()
        if link is None:
            db.add(ProductIntegration(
                product_id=product.id,
                integration_id=row.integration_id,
                external_product_id=row.external_product_id,
                external_variant_id=row.external_variant_id,
            ))
            db.flush()
        elif link.external_variant_id != row.external_variant_id:
            logger.warning(
                f"Product {product.sku} already linked to variant {link.external_variant_id}, "
                f"leaving unmatched variant {row.external_variant_id} for review"
            )
            outcome.skipped.append(str(row.id))
            continue

        db.delete(row)
        outcome.imported += 1

    db.commit()
    logger.info(f"Imported {outcome.imported} unmatched products, skipped {len(outcome.skipped)}")
    return outcome
