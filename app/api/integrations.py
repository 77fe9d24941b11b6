"""
Integrations API - Store credentials and connection test
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from app.api.deps import get_client_factory
from app.core.database import get_db
from app.schemas.integration import IntegrationCreate, IntegrationResponse
from app.services import integration_service
from app.services.errors import classify_exception
from app.services.queue_processor import ClientFactory

logger = logging.getLogger(__name__)

integrations_router = APIRouter(prefix="/integrations", tags=["integrations"])

CONNECTION_ERRORS = {
    401: "Invalid access token",
    403: "Access token lacks required permissions",
    404: "Store not found. Check your shop URL.",
}


def _get_or_404(db: Session, integration_id: str):
    try:
        integration = integration_service.get_integration(db, integration_id)
    except ValueError:
        integration = None
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    return integration


@integrations_router.get("", response_model=List[IntegrationResponse])
async def list_integrations(
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
):
    return integration_service.get_integrations(db, is_active=is_active)


@integrations_router.post("", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def create_integration(data: IntegrationCreate, db: Session = Depends(get_db)):
    return integration_service.create_integration(
        db,
        shop_url=data.shop_url,
        access_token=data.access_token,
        name=data.name,
        webhook_secret=data.webhook_secret,
    )


@integrations_router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(integration_id: str, db: Session = Depends(get_db)):
    return _get_or_404(db, integration_id)


@integrations_router.post("/{integration_id}/test-connection")
async def test_connection(
    integration_id: str,
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """Fetch shop details with the stored credentials"""
    integration = _get_or_404(db, integration_id)

    try:
        async with client_factory(integration) as client:
            shop = await client.get_shop()
    except Exception as e:
        classified = classify_exception(e)
        logger.error(f"Test connection failed for {integration.shop_domain}: {classified.message}")
        code = classified.status_code if classified.status_code and classified.status_code >= 400 else 500
        return JSONResponse(
            {
                "success": False,
                "error": CONNECTION_ERRORS.get(classified.status_code, "Connection failed"),
                "errorType": classified.type.value,
                "details": classified.message,
            },
            status_code=code,
        )

    return {
        "success": True,
        "shop": {
            "name": shop.get("name"),
            "email": shop.get("email"),
            "domain": shop.get("domain"),
            "myshopify_domain": shop.get("myshopify_domain"),
        },
    }
