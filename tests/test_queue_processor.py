"""
End-to-end tests for the queue processor.

Tests verify:
- A three-page catalog with one transient failure completes with every
  record counted exactly once
- Retries stop at max_retries and the item and its job are failed
- Permanent errors fail the item on the first attempt
- Cancelled jobs cancel their queue item
- Items for disabled integrations fail permanently
"""
from datetime import datetime, timedelta, timezone

import pytest
import respx

from app.models.queue import QueueStatus, SyncType
from app.services import integration_service, queue_service
from app.services.queue_processor import QueueProcessor

from conftest import FakeShopify, add_products, make_products

TERMINAL = (QueueStatus.COMPLETED.value, QueueStatus.FAILED.value, QueueStatus.CANCELLED.value)


async def drain(db, processor, item_id, max_runs=10):
    """Run the processor until the item is terminal, ten simulated minutes apart"""
    now = datetime.now(timezone.utc)
    runs = []
    for _ in range(max_runs):
        now += timedelta(minutes=10)
        runs.append(await processor.run_once(now=now))
        db.expire_all()
        if queue_service.get_queue_item(db, item_id).status in TERMINAL:
            break
    return runs


class TestEndToEnd:
    """Tests for multi-page syncs driven through the queue"""

    @pytest.mark.asyncio
    async def test_catalog_with_transient_failure_completes(self, db, integration, client_factory):
        add_products(db, [f"SKU-{n}" for n in range(0, 510, 5)])
        fake = FakeShopify([make_products(0, 250), make_products(250, 250), make_products(500, 10)])
        fake.fail_once[1] = 503

        item, _ = queue_service.enqueue(db, integration.id, SyncType.PRODUCT_SYNC)
        processor = QueueProcessor(db, client_factory=client_factory)

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            runs = await drain(db, processor, item.id)

        assert [r.results[0].status for r in runs] == ["continued", "requeued", "continued", "completed"]
        assert fake.calls == [0, 1, 1, 2]

        item = queue_service.get_queue_item(db, item.id)
        assert item.status == QueueStatus.COMPLETED.value
        assert item.retry_count == 1
        assert item.completed_at is not None

        job = integration_service.get_sync_job(db, item.checkpoint["job_id"])
        assert job.status == "completed"
        assert job.total_items == 510
        assert job.processed_items == 510
        assert job.matched_items == 102
        assert job.error_count == 1

        assert item.checkpoint["pages_processed"] == 3
        assert item.checkpoint["processed"] == 510
        assert item.checkpoint["page_info"] is None

    @pytest.mark.asyncio
    async def test_empty_queue_reports_nothing_processed(self, db, client_factory):
        processor = QueueProcessor(db, client_factory=client_factory)
        response = await processor.run_once()
        assert response.processed == 0
        assert response.results == []


class TestRetryCeiling:
    """Tests for the retry / fail decision"""

    @pytest.mark.asyncio
    async def test_retries_stop_at_max_retries(self, db, integration, client_factory):
        fake = FakeShopify([make_products(0, 2)])
        fake.fail_always = 503
        item, _ = queue_service.enqueue(db, integration.id, SyncType.PRODUCT_SYNC, max_retries=3)
        processor = QueueProcessor(db, client_factory=client_factory)

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            runs = await drain(db, processor, item.id)

        assert [r.results[0].status for r in runs] == ["requeued", "requeued", "requeued", "failed"]

        item = queue_service.get_queue_item(db, item.id)
        assert item.status == QueueStatus.FAILED.value
        assert item.retry_count == 3
        assert item.error_type == "retryable"

        job = integration_service.get_sync_job(db, item.checkpoint["job_id"])
        assert job.status == "failed"
        assert job.error_count == 4

    @pytest.mark.asyncio
    async def test_permanent_error_fails_immediately(self, db, integration, client_factory):
        fake = FakeShopify([make_products(0, 2)])
        fake.fail_once[0] = 401
        item, _ = queue_service.enqueue(db, integration.id, SyncType.PRODUCT_SYNC, max_retries=3)
        processor = QueueProcessor(db, client_factory=client_factory)

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            runs = await drain(db, processor, item.id)

        assert len(runs) == 1
        result = runs[0].results[0]
        assert result.status == "failed"
        assert result.error_type == "permanent"
        assert result.retry_count == 0

        item = queue_service.get_queue_item(db, item.id)
        assert item.status == QueueStatus.FAILED.value
        assert fake.calls == [0]

    @pytest.mark.asyncio
    async def test_rate_limited_item_waits_retry_after(self, db, integration, client_factory, sleeper):
        fake = FakeShopify([make_products(0, 2)])
        fake.fail_always = 429
        fake.fail_headers = {"Retry-After": "30"}
        item, _ = queue_service.enqueue(db, integration.id, SyncType.PRODUCT_SYNC)
        processor = QueueProcessor(db, client_factory=client_factory)
        now = datetime.now(timezone.utc)

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            response = await processor.run_once(now=now)

        assert response.results[0].status == "requeued"
        assert response.results[0].error_type == "rate_limit"

        item = queue_service.get_queue_item(db, item.id)
        assert (item.available_at.replace(tzinfo=None) - now.replace(tzinfo=None)) == timedelta(seconds=30)
        # Client waited Retry-After plus margin between its own attempts
        assert sleeper.delays == [31.0] * 4

    @pytest.mark.asyncio
    async def test_disabled_integration_fails_permanently(self, db, integration, client_factory):
        item, _ = queue_service.enqueue(db, integration.id, SyncType.PRODUCT_SYNC)
        integration.is_active = False
        db.commit()

        response = await QueueProcessor(db, client_factory=client_factory).run_once()

        result = response.results[0]
        assert result.status == "failed"
        assert result.error_type == "permanent"
        assert "disabled" in result.error


class TestCancellation:
    """Tests for cancelling a running job between pages"""

    @pytest.mark.asyncio
    async def test_cancelled_job_cancels_queue_item(self, db, integration, client_factory):
        fake = FakeShopify([make_products(0, 2), make_products(2, 2)])
        item, _ = queue_service.enqueue(db, integration.id, SyncType.PRODUCT_SYNC)
        processor = QueueProcessor(db, client_factory=client_factory)

        with respx.mock(assert_all_called=False) as mock:
            fake.install(mock)
            first = await processor.run_once()
            assert first.results[0].status == "continued"

            db.expire_all()
            job_id = queue_service.get_queue_item(db, item.id).checkpoint["job_id"]
            integration_service.cancel_sync_job(db, job_id)

            second = await processor.run_once()

        assert second.results[0].status == "cancelled"
        assert fake.calls == [0]
        assert queue_service.get_queue_item(db, item.id).status == QueueStatus.CANCELLED.value
        job = integration_service.get_sync_job(db, job_id)
        assert job.status == "cancelled"
        assert job.completed_at is None
