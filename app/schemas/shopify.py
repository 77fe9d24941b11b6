"""
Shopify Payload Schemas - the fields the sync workers read
"""
from pydantic import BaseModel
from typing import Optional, List
from decimal import Decimal


class ShopifyVariant(BaseModel):
    id: int
    product_id: Optional[int] = None
    title: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[Decimal] = None
    inventory_item_id: Optional[int] = None

    @property
    def clean_sku(self) -> Optional[str]:
        sku = (self.sku or "").strip()
        return sku or None


class ShopifyProduct(BaseModel):
    id: int
    title: str = ""
    body_html: Optional[str] = None
    status: Optional[str] = None
    variants: List[ShopifyVariant] = []


class ShopifyAddress(BaseModel):
    name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None


class ShopifyCustomer(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def full_name(self) -> Optional[str]:
        name = " ".join(part for part in (self.first_name, self.last_name) if part).strip()
        return name or None


class ShopifyLineItem(BaseModel):
    id: int
    variant_id: Optional[int] = None
    product_id: Optional[int] = None
    sku: Optional[str] = None
    title: Optional[str] = None
    name: Optional[str] = None
    quantity: int = 1
    price: Decimal = Decimal("0")


class ShopifyOrder(BaseModel):
    id: int
    name: Optional[str] = None  # "#1001"
    order_number: Optional[int] = None
    email: Optional[str] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    cancelled_at: Optional[str] = None
    created_at: Optional[str] = None
    total_price: Decimal = Decimal("0")
    currency: Optional[str] = None
    customer: Optional[ShopifyCustomer] = None
    shipping_address: Optional[ShopifyAddress] = None
    line_items: List[ShopifyLineItem] = []

    @property
    def display_number(self) -> str:
        if self.name:
            return self.name
        if self.order_number is not None:
            return f"#{self.order_number}"
        return str(self.id)
