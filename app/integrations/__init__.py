# Platform Integrations Package
from .base import BasePlatformClient, Page, PlatformAPIError
from .shopify import ShopifyClient, ShopifyAPIError

__all__ = [
    "BasePlatformClient",
    "Page",
    "PlatformAPIError",
    "ShopifyClient",
    "ShopifyAPIError",
]
