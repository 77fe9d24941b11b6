"""
Shopify Admin REST API Client
API Documentation: https://shopify.dev/docs/api/admin-rest
"""
import asyncio
import base64
import hashlib
import hmac
from typing import Optional, Dict, Any, Callable, Awaitable
import httpx
import logging

from app.core.config import settings
from app.models.integration import normalize_shop_domain
from .base import BasePlatformClient, Page, PlatformAPIError

logger = logging.getLogger(__name__)

CALL_LIMIT_HEADER = "X-Shopify-Shop-Api-Call-Limit"


class ShopifyAPIError(PlatformAPIError):
    """Shopify returned an error status (or retries ran out)"""


class ShopifyClient(BasePlatformClient):
    """
    Rate-limit-aware Shopify client.

    - Bucket usage above the threshold pauses briefly before returning, so the
      next call does not trip the limit.
    - 429 waits Retry-After (or a fallback) plus a margin and retries.
    - Transport failures retry after a fixed delay.
    Both retry paths share one attempt ceiling.
    """
    PLATFORM_NAME = "shopify"

    def __init__(
        self,
        shop_url: str,
        access_token: str,
        api_version: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.shop_domain = normalize_shop_domain(shop_url)
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.base_url = f"https://{self.shop_domain}/admin/api/{self.api_version}"
        self.webhook_secret = webhook_secret

        self.max_attempts = settings.HTTP_MAX_ATTEMPTS
        self.retry_delay = settings.HTTP_RETRY_DELAY_SECONDS
        self.rate_limit_fallback = settings.HTTP_RATE_LIMIT_FALLBACK_SECONDS
        self.rate_limit_margin = settings.HTTP_RATE_LIMIT_MARGIN_SECONDS
        self.bucket_threshold = settings.HTTP_BUCKET_THRESHOLD
        self.bucket_pause = settings.HTTP_BUCKET_PAUSE_SECONDS

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self._sleep = sleep or asyncio.sleep

    async def close(self):
        if self._owns_client:
            await self._client.aclose()

    # ========== Transport ==========

    async def _request(self, path: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """GET with rate-limit and network retries"""
        url = path if path.startswith("http") else f"{self.base_url}/{path}"
        last_retry_after: Optional[float] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._client.get(url, params=params, headers=self._headers)
            except httpx.TransportError as e:
                if attempt >= self.max_attempts:
                    logger.error(f"[shopify] Network error on {path}, giving up after {attempt} attempts: {e}")
                    raise
                logger.warning(f"[shopify] Network error: {e}. Retrying ({attempt}/{self.max_attempts})")
                await self._sleep(self.retry_delay)
                continue

            self._log_api_call("GET", path, response.status_code)
            await self._throttle(response)

            if response.status_code == 429:
                last_retry_after = self._parse_retry_after(response)
                if attempt >= self.max_attempts:
                    break
                wait = last_retry_after + self.rate_limit_margin
                logger.warning(f"[shopify] Rate limit hit. Waiting {wait:.1f}s ({attempt}/{self.max_attempts})")
                await self._sleep(wait)
                continue

            if response.status_code >= 400:
                raise ShopifyAPIError(
                    f"Shopify API error ({response.status_code}): {response.text[:200]}",
                    status_code=response.status_code,
                )

            return response

        raise ShopifyAPIError(
            "Shopify API request failed: rate limit (max retries)",
            status_code=429,
            retry_after=last_retry_after,
        )

    async def _throttle(self, response: httpx.Response):
        """Pause when the leaky bucket is nearly full"""
        call_limit = response.headers.get(CALL_LIMIT_HEADER)
        if not call_limit:
            return
        try:
            used, total = (int(part) for part in call_limit.split("/"))
        except ValueError:
            logger.debug(f"[shopify] Unparseable call limit header: {call_limit}")
            return
        if total <= 0:
            return

        usage = used / total
        logger.debug(f"[shopify] API bucket: {used}/{total} ({usage:.0%})")
        if usage > self.bucket_threshold:
            logger.info(f"[shopify] Bucket at {usage:.0%}, waiting {self.bucket_pause}s")
            await self._sleep(self.bucket_pause)

    def _parse_retry_after(self, response: httpx.Response) -> float:
        header = response.headers.get("Retry-After")
        if header:
            try:
                return float(header)
            except ValueError:
                pass
        return self.rate_limit_fallback

    @staticmethod
    def _next_cursor(response: httpx.Response) -> Optional[str]:
        """page_info of the rel="next" link, None at end of resource"""
        next_link = response.links.get("next")
        if not next_link or not next_link.get("url"):
            return None
        return httpx.URL(next_link["url"]).params.get("page_info")

    # ========== Catalog / Orders ==========

    async def count(self, resource: str, params: Optional[Dict[str, Any]] = None) -> int:
        response = await self._request(f"{resource}/count.json", params=params)
        return int(response.json().get("count", 0))

    async def fetch_page(
        self,
        resource: str,
        page_size: int = 50,
        cursor: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Page:
        """
        Shopify only accepts limit alongside page_info, so filter params
        apply to the first page only; the cursor carries them afterwards.
        """
        query: Dict[str, Any] = {"limit": page_size}
        if cursor:
            query["page_info"] = cursor
        elif params:
            query.update(params)

        response = await self._request(f"{resource}.json", params=query)
        try:
            data = response.json()
        except ValueError as e:
            raise ShopifyAPIError(f"Failed to parse Shopify response: {response.text[:100]}") from e

        return Page(records=data.get(resource, []), next_cursor=self._next_cursor(response))

    async def get_shop(self) -> Dict[str, Any]:
        response = await self._request("shop.json")
        return response.json().get("shop", {})

    # ========== Webhooks ==========

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return verify_hmac(self.webhook_secret, payload, signature)


def verify_hmac(secret: Optional[str], payload: bytes, signature: Optional[str]) -> bool:
    """
    Shopify signs the raw body with HMAC-SHA256 and sends it base64 encoded
    in X-Shopify-Hmac-Sha256
    """
    if not secret or not signature:
        return False
    digest = hmac.new(secret.encode(), payload, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode()
    return hmac.compare_digest(expected, signature.strip())
