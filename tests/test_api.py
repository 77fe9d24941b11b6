"""
Tests for the JSON API.

Tests verify:
- One-page worker invocation and cursor continuation over HTTP
- Error bodies always carry success=false, error and errorType
- Queue enqueue / process / list endpoints
- Job cancellation, job lookup and health summary
- Integration CRUD and connection test
- Unmatched listing review and import
"""
import uuid

import httpx
import respx

from app.models.mapping import ProductIntegration, UnmatchedProduct
from app.models.product import Product
from app.services import integration_service

from conftest import BASE_URL, FakeShopify, make_products


class TestInvokeSync:
    """Tests for POST /api/sync/{sync_type}"""

    def test_pages_through_with_next_page_info(self, api, integration):
        fake = FakeShopify([make_products(0, 2), make_products(2, 1)])

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            first = api.post("/api/sync/product_sync", json={"integrationId": str(integration.id)})
            body = first.json()
            assert first.status_code == 200
            assert body["success"] is True
            assert body["nextPageInfo"] == "page-1"

            second = api.post("/api/sync/product_sync", json={
                "integrationId": str(integration.id),
                "jobId": body["jobId"],
                "page_info": body["nextPageInfo"],
            })

        final = second.json()
        assert final["success"] is True
        assert "nextPageInfo" not in final
        assert final["jobId"] == body["jobId"]

        job = api.get(f"/api/sync/jobs/{body['jobId']}").json()
        assert job["status"] == "completed"
        assert job["processed_items"] == 3

    def test_invalid_body_is_400(self, api, integration):
        response = api.post("/api/sync/product_sync", json={"queueId": "not-a-uuid"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errorType"] == "permanent"
        assert "Invalid request body" in body["error"]

    def test_unknown_sync_type_is_permanent(self, api, integration):
        response = api.post("/api/sync/inventory_sync", json={"integrationId": str(integration.id)})

        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "error": "Unknown sync type: inventory_sync",
            "errorType": "permanent",
        }

    def test_missing_integration_is_permanent(self, api, db):
        response = api.post("/api/sync/product_sync", json={"integrationId": str(uuid.uuid4())})

        assert response.status_code == 500
        assert response.json()["errorType"] == "permanent"
        assert "Integration not found" in response.json()["error"]

    def test_upstream_failure_reports_error_type(self, api, integration):
        fake = FakeShopify([make_products(0, 2)])
        fake.fail_once[0] = 503

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            response = api.post("/api/sync/product_sync", json={"integrationId": str(integration.id)})

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["errorType"] == "retryable"
        assert "503" in body["error"]


class TestQueueEndpoints:
    """Tests for /api/sync/queue*"""

    def test_enqueue_then_duplicate(self, api, integration):
        payload = {"integration_id": str(integration.id), "sync_type": "product_sync", "priority": 2}

        created = api.post("/api/sync/queue", json=payload)
        again = api.post("/api/sync/queue", json=payload)

        assert created.status_code == 201
        assert created.json()["created"] is True
        assert created.json()["item"]["priority"] == 2
        assert again.status_code == 200
        assert again.json()["created"] is False
        assert again.json()["item"]["id"] == created.json()["item"]["id"]

        listed = api.get("/api/sync/queue", params={"integration_id": str(integration.id)}).json()
        assert len(listed) == 1
        assert listed[0]["status"] == "pending"

    def test_enqueue_unknown_integration_is_404(self, api, db):
        response = api.post("/api/sync/queue", json={
            "integration_id": str(uuid.uuid4()), "sync_type": "order_sync",
        })
        assert response.status_code == 404
        assert response.json()["errorType"] == "permanent"

    def test_enqueue_rejects_out_of_range_priority(self, api, integration):
        response = api.post("/api/sync/queue", json={
            "integration_id": str(integration.id), "sync_type": "product_sync", "priority": 0,
        })
        assert response.status_code == 422

    def test_process_empty_queue(self, api, db):
        response = api.post("/api/sync/queue/process")
        assert response.status_code == 200
        assert response.json()["message"] == "No pending syncs in queue"

    def test_process_runs_one_page_per_item(self, api, integration):
        fake = FakeShopify([make_products(0, 2)])
        api.post("/api/sync/queue", json={"integration_id": str(integration.id), "sync_type": "product_sync"})

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            response = api.post("/api/sync/queue/process")

        body = response.json()
        assert body["processed"] == 1
        assert body["results"][0]["status"] == "completed"


class TestJobEndpoints:
    """Tests for /api/sync/jobs* and /api/sync/health"""

    def _running_job(self, db, integration):
        job = integration_service.create_sync_job(db, integration.id, "product_sync")
        return integration_service.start_sync_job(db, job)

    def test_cancel_running_job(self, api, db, integration):
        job = self._running_job(db, integration)

        response = api.post(f"/api/sync/jobs/{job.id}/cancel")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["job"]["status"] == "cancelled"

    def test_cancel_completed_job_is_refused(self, api, db, integration):
        job = self._running_job(db, integration)
        integration_service.complete_sync_job(db, job.id)

        response = api.post(f"/api/sync/jobs/{job.id}/cancel")

        assert response.json()["success"] is False
        assert response.json()["job"]["status"] == "completed"

    def test_completing_a_cancelled_job_keeps_it_cancelled(self, api, db, integration):
        job = self._running_job(db, integration)
        api.post(f"/api/sync/jobs/{job.id}/cancel")

        job = integration_service.complete_sync_job(db, job.id)

        assert job.status == "cancelled"
        assert job.completed_at is None

    def test_unknown_job_is_404(self, api, db):
        assert api.get(f"/api/sync/jobs/{uuid.uuid4()}").status_code == 404
        assert api.post("/api/sync/jobs/not-a-uuid/cancel").status_code == 404

    def test_list_jobs(self, api, db, integration):
        self._running_job(db, integration)
        jobs = api.get("/api/sync/jobs").json()
        assert len(jobs) == 1
        assert jobs[0]["status"] == "running"

    def test_health_summary(self, api, db, integration):
        response = api.get("/api/sync/health", params={"days": 7})
        assert response.status_code == 200
        assert response.json() == {"days": 7, "stats": []}


class TestIntegrationEndpoints:
    """Tests for /api/integrations"""

    def test_create_and_list(self, api, db):
        response = api.post("/api/integrations", json={
            "shop_url": "https://new-store.myshopify.com",
            "access_token": "shpat_new",
        })
        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "new-store.myshopify.com"
        assert "access_token" not in created

        listed = api.get("/api/integrations").json()
        assert [i["id"] for i in listed] == [created["id"]]
        assert api.get(f"/api/integrations/{created['id']}").status_code == 200

    def test_unknown_integration_is_404(self, api, db):
        assert api.get(f"/api/integrations/{uuid.uuid4()}").status_code == 404

    def test_connection_ok(self, api, integration):
        with respx.mock:
            respx.get(f"{BASE_URL}/shop.json").mock(return_value=httpx.Response(
                200, json={"shop": {"name": "Test Store", "myshopify_domain": "test-store.myshopify.com"}},
            ))
            response = api.post(f"/api/integrations/{integration.id}/test-connection")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["shop"]["name"] == "Test Store"

    def test_connection_with_bad_token(self, api, integration):
        with respx.mock:
            respx.get(f"{BASE_URL}/shop.json").mock(
                return_value=httpx.Response(401, json={"errors": "[API] Invalid API key or access token"})
            )
            response = api.post(f"/api/integrations/{integration.id}/test-connection")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Invalid access token"
        assert body["errorType"] == "permanent"


class TestReconciliationEndpoints:
    """Tests for /api/reconciliation/unmatched*"""

    def _sync_catalog(self, api, integration, products):
        fake = FakeShopify([products])
        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            api.post("/api/sync/product_sync", json={"integrationId": str(integration.id)})

    def test_list_and_search(self, api, db, integration):
        self._sync_catalog(api, integration, make_products(0, 3))

        rows = api.get("/api/reconciliation/unmatched", params={"integration_id": str(integration.id)}).json()
        assert len(rows) == 3

        found = api.get("/api/reconciliation/unmatched", params={"search": "sku-2"}).json()
        assert [r["sku"] for r in found] == ["SKU-2"]

    def test_import_creates_products_and_links(self, api, db, integration):
        self._sync_catalog(api, integration, make_products(0, 2))
        ids = [str(row.id) for row in db.query(UnmatchedProduct).all()]

        response = api.post("/api/reconciliation/unmatched/import", json={"ids": ids})

        assert response.json() == {"success": True, "imported": 2, "skipped": []}
        assert db.query(UnmatchedProduct).count() == 0
        assert {p.sku for p in db.query(Product).all()} == {"SKU-0", "SKU-1"}
        links = db.query(ProductIntegration).all()
        assert {l.external_variant_id for l in links} == {"5000", "5001"}

    def test_import_reuses_existing_sku(self, api, db, integration):
        self._sync_catalog(api, integration, make_products(0, 1))
        row = db.query(UnmatchedProduct).one()
        db.add(Product(sku="sku-0", name="Created meanwhile"))
        db.commit()

        api.post("/api/reconciliation/unmatched/import", json={"ids": [str(row.id)]})

        assert db.query(Product).count() == 1
        assert db.query(ProductIntegration).one().external_variant_id == "5000"

    def test_import_keeps_existing_link_for_the_same_store(self, api, db, integration):
        self._sync_catalog(api, integration, make_products(0, 1))
        row = db.query(UnmatchedProduct).one()
        product = Product(sku="SKU-0", name="Already listed")
        db.add(product)
        db.flush()
        db.add(ProductIntegration(
            product_id=product.id,
            integration_id=integration.id,
            external_product_id="1999",
            external_variant_id="5999",
        ))
        db.commit()

        response = api.post("/api/reconciliation/unmatched/import", json={"ids": [str(row.id)]})

        assert response.json() == {"success": True, "imported": 0, "skipped": [str(row.id)]}
        db.expire_all()
        link = db.query(ProductIntegration).one()
        assert link.external_variant_id == "5999"
        assert link.external_product_id == "1999"
        assert db.query(UnmatchedProduct).count() == 1

    def test_import_requires_ids(self, api, db):
        assert api.post("/api/reconciliation/unmatched/import", json={"ids": []}).status_code == 422
