"""
Base Platform Client - Abstract base class for store integrations
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """
    One page of a cursor-paginated resource.
    next_cursor is None when the resource is exhausted.
    """
    records: List[Dict[str, Any]] = field(default_factory=list)
    next_cursor: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


class PlatformAPIError(Exception):
    """
    Non-success response from a platform API.
    status_code and retry_after feed the error classifier.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, retry_after: Optional[float] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class BasePlatformClient(ABC):
    """
    Abstract base class for store platform integrations
    """
    PLATFORM_NAME: str = "base"

    # ========== Catalog / Orders ==========

    @abstractmethod
    async def count(self, resource: str, params: Optional[Dict[str, Any]] = None) -> int:
        """
        Total number of records in a resource (products, orders)
        """
        pass

    @abstractmethod
    async def fetch_page(
        self,
        resource: str,
        page_size: int = 50,
        cursor: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Page:
        """
        Fetch one page. cursor=None starts at the beginning of the resource;
        passing back a returned next_cursor continues from that point.
        """
        pass

    @abstractmethod
    async def get_shop(self) -> Dict[str, Any]:
        """
        Shop details, used to test credentials
        """
        pass

    # ========== Webhooks ==========

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        """
        Verify webhook request signature over the raw body
        """
        pass

    async def close(self):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # ========== Utilities ==========

    def _log_api_call(self, method: str, endpoint: str, status_code: int):
        """Log API call for debugging"""
        logger.info(f"[{self.PLATFORM_NAME}] {method} {endpoint} -> {status_code}")
