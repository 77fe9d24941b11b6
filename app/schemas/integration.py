"""
Integration Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID


class IntegrationCreate(BaseModel):
    shop_url: str = Field(min_length=3)
    access_token: str = Field(min_length=1)
    name: Optional[str] = None
    webhook_secret: Optional[str] = None


class IntegrationResponse(BaseModel):
    id: UUID
    provider: str
    name: Optional[str]
    shop_url: str
    is_active: bool
    last_sync_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
