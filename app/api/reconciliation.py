"""
Reconciliation API - Unmatched listings review and import
"""
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.core.database import get_db
from app.schemas.sync import ImportUnmatchedRequest, UnmatchedProductResponse
from app.services import reconciliation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.get("/unmatched")
async def list_unmatched(
    integration_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    rows = reconciliation_service.get_unmatched_products(db, integration_id, search, limit)
    return [UnmatchedProductResponse.model_validate(r).model_dump(mode="json") for r in rows]


@router.post("/unmatched/import")
async def import_unmatched(data: ImportUnmatchedRequest, db: Session = Depends(get_db)):
    try:
        outcome = reconciliation_service.import_unmatched_products(db, data.ids)
    except Exception as e:
        db.rollback()
        logger.error(f"Unmatched import failed: {e}")
        return JSONResponse({"success": False, "error": str(e)}, status_code=500)
    return {"success": True, "imported": outcome.imported, "skipped": outcome.skipped}
