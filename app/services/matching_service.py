"""
Matching Service - SKU lookup and idempotent link / unmatched upserts

Writes here do not commit: a page's upserts, its progress increment and its
checkpoint are committed together by the caller.
"""
from typing import Optional, List, Dict, Any, Iterable
from sqlalchemy.orm import Session
from sqlalchemy import func, delete
from sqlalchemy.dialects import postgresql, sqlite
import uuid
import logging

from app.models.base import as_uuid, utcnow
from app.models.product import Product
from app.models.mapping import ProductIntegration, UnmatchedProduct

logger = logging.getLogger(__name__)


def normalize_sku(sku: Optional[str]) -> Optional[str]:
    """Natural key used for matching: trimmed, case-insensitive"""
    value = (sku or "").strip().lower()
    return value or None


def _insert_for(db: Session):
    """INSERT construct with ON CONFLICT support for the bound dialect"""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Upsert not supported on {dialect}")


def _dedupe(rows: Iterable[Dict[str, Any]], *keys: str) -> List[Dict[str, Any]]:
    """
    One row per conflict key, last wins. A single INSERT .. ON CONFLICT may
    not touch the same target row twice.
    """
    unique: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        unique[tuple(row[k] for k in keys)] = row
    return list(unique.values())


def find_products_by_skus(db: Session, skus: Iterable[str]) -> Dict[str, Product]:
    """
    Batch lookup of local products, keyed by normalized SKU.
    One query for the whole page.
    """
    wanted = {normalize_sku(s) for s in skus}
    wanted.discard(None)
    if not wanted:
        return {}

    products = db.query(Product).filter(
        func.lower(func.trim(Product.sku)).in_(wanted)
    ).all()
    return {normalize_sku(p.sku): p for p in products}


def upsert_product_links(db: Session, integration_id, links: List[Dict[str, Any]]) -> int:
    """
    Create or refresh product <-> listing links.
    Conflict key: (product_id, integration_id).
    """
    if not links:
        return 0

    now = utcnow()
    rows = _dedupe(
        (
            {
                "id": uuid.uuid4(),
                "product_id": as_uuid(link["product_id"]),
                "integration_id": as_uuid(integration_id),
                "external_product_id": link.get("external_product_id"),
                "external_variant_id": link.get("external_variant_id"),
                "external_inventory_item_id": link.get("external_inventory_item_id"),
                "last_synced_at": now,
                "created_at": now,
                "updated_at": now,
            }
            for link in links
        ),
        "product_id", "integration_id",
    )

    insert = _insert_for(db)
    stmt = insert(ProductIntegration).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["product_id", "integration_id"],
        set_={
            "external_product_id": stmt.excluded.external_product_id,
            "external_variant_id": stmt.excluded.external_variant_id,
            "external_inventory_item_id": stmt.excluded.external_inventory_item_id,
            "last_synced_at": stmt.excluded.last_synced_at,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    return len(rows)


def upsert_unmatched(db: Session, integration_id, records: List[Dict[str, Any]]) -> int:
    """
    Hold listings with no local product for manual review.
    Conflict key: (integration_id, external_variant_id).
    """
    if not records:
        return 0

    now = utcnow()
    rows = _dedupe(
        (
            {
                "id": uuid.uuid4(),
                "integration_id": as_uuid(integration_id),
                "external_product_id": record.get("external_product_id"),
                "external_variant_id": record["external_variant_id"],
                "sku": record.get("sku"),
                "name": record.get("name"),
                "variant_name": record.get("variant_name"),
                "price": record.get("price"),
                "cost": record.get("cost"),
                "data": record.get("data"),
                "created_at": now,
                "updated_at": now,
            }
            for record in records
        ),
        "integration_id", "external_variant_id",
    )

    insert = _insert_for(db)
    stmt = insert(UnmatchedProduct).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=["integration_id", "external_variant_id"],
        set_={
            "external_product_id": stmt.excluded.external_product_id,
            "sku": stmt.excluded.sku,
            "name": stmt.excluded.name,
            "variant_name": stmt.excluded.variant_name,
            "price": stmt.excluded.price,
            "cost": stmt.excluded.cost,
            "data": stmt.excluded.data,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    db.execute(stmt)
    return len(rows)


def remove_from_unmatched(db: Session, integration_id, external_variant_ids: Iterable[str]) -> int:
    """Drop review entries for listings that now match a local product"""
    ids = [v for v in set(external_variant_ids) if v]
    if not ids:
        return 0

    result = db.execute(
        delete(UnmatchedProduct).where(
            UnmatchedProduct.integration_id == as_uuid(integration_id),
            UnmatchedProduct.external_variant_id.in_(ids),
        ),
        execution_options={"synchronize_session": False},
    )
    if result.rowcount:
        logger.info(f"Removed {result.rowcount} newly matched listings from unmatched review")
    return result.rowcount or 0
