"""
Shared pytest fixtures for ShopSync tests.

Provides:
- an in-memory SQLite database, recreated for every test
- a Shopify integration row with webhook secret
- FakeShopify: respx side effects serving a paginated catalog with
  optional one-time failures
- a client factory whose ShopifyClient never really sleeps
"""
import os

# Must be set before app modules read settings
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Dict, List, Optional

import httpx
import pytest

from app.core.database import Base, SessionLocal, engine
import app.models  # noqa: F401
from app.models.product import Product
from app.services import integration_service

SHOP_DOMAIN = "test-store.myshopify.com"
BASE_URL = f"https://{SHOP_DOMAIN}/admin/api/2023-04"
WEBHOOK_SECRET = "whsec_test_secret"


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db():
    """Fresh schema and session per test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def integration(db):
    return integration_service.create_integration(
        db,
        shop_url=f"https://{SHOP_DOMAIN}/",
        access_token="shpat_test_token",
        name="Test Store",
        webhook_secret=WEBHOOK_SECRET,
    )


@pytest.fixture
def other_integration(db):
    return integration_service.create_integration(
        db,
        shop_url="other-store.myshopify.com",
        access_token="shpat_other",
    )


def add_products(db, skus: List[str]) -> List[Product]:
    products = [Product(sku=sku, name=f"Local {sku}") for sku in skus]
    db.add_all(products)
    db.commit()
    return products


# =============================================================================
# Shopify fakes
# =============================================================================

class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def client_factory(sleeper):
    def factory(integration):
        return integration_service.get_client_for_integration(integration, sleep=sleeper)
    return factory


def make_products(start: int, count: int) -> List[Dict]:
    """Shopify product payloads, one variant each, SKU-<n>"""
    return [
        {
            "id": 1000 + n,
            "title": f"Product {n}",
            "status": "active",
            "variants": [
                {
                    "id": 5000 + n,
                    "product_id": 1000 + n,
                    "title": "Default Title",
                    "sku": f"SKU-{n}",
                    "price": "19.90",
                    "inventory_item_id": 9000 + n,
                }
            ],
        }
        for n in range(start, start + count)
    ]


class FakeShopify:
    """
    Serves `pages` of one resource with Link-header pagination.
    fail_once maps page index -> HTTP status returned on the first request
    for that page only. fail_always, when set, is returned for every page
    request together with fail_headers.
    """

    def __init__(self, pages: List[List[Dict]], resource: str = "products"):
        self.pages = pages
        self.resource = resource
        self.fail_once: Dict[int, int] = {}
        self.fail_always: Optional[int] = None
        self.fail_headers: Dict[str, str] = {}
        self.calls: List[int] = []

    def page(self, request: httpx.Request) -> httpx.Response:
        page_info: Optional[str] = request.url.params.get("page_info")
        index = int(page_info.split("-")[1]) if page_info else 0
        self.calls.append(index)

        if self.fail_always:
            return httpx.Response(self.fail_always, json={"errors": "Service Unavailable"}, headers=self.fail_headers)
        if index in self.fail_once:
            status = self.fail_once.pop(index)
            return httpx.Response(status, json={"errors": "Service Unavailable"})

        headers = {"X-Shopify-Shop-Api-Call-Limit": "2/40"}
        if index + 1 < len(self.pages):
            headers["Link"] = (
                f'<{BASE_URL}/{self.resource}.json?limit=250&page_info=page-{index + 1}>; rel="next"'
            )
        return httpx.Response(200, json={self.resource: self.pages[index]}, headers=headers)

    def count(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"count": sum(len(p) for p in self.pages)})

    def install(self, mock):
        mock.get(f"{BASE_URL}/{self.resource}/count.json").mock(side_effect=self.count)
        mock.get(f"{BASE_URL}/{self.resource}.json").mock(side_effect=self.page)
        return self


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def api(db, client_factory):
    """TestClient bound to the test session and the sleep-free client factory"""
    from fastapi.testclient import TestClient

    from main import app
    from app.api.deps import get_client_factory
    from app.core.database import get_db

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_client_factory] = lambda: client_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
