"""
Tests for SyncLogger and the queue scheduler.
"""
from datetime import timedelta

import pytest

from app.core.log import SyncContext, SyncLogger
from app.jobs.queue_scheduler import PROCESS_JOB_ID, QueueScheduler
from app.models.sync_log import SyncLogEntry


class TestSyncLogger:
    """Tests for persisted sync log lines"""

    def test_persists_lines_with_context(self, db, integration, caplog):
        log = SyncLogger(db, SyncContext("product_sync", integration_id=str(integration.id)))

        with caplog.at_level("INFO", logger="app.sync"):
            log.bind(job_id="8c0e2e52-4f0e-4c89-9d53-7d1b2f0c9a11").info("Page processed", matched=3)

        entry = db.query(SyncLogEntry).one()
        assert entry.function_name == "product_sync"
        assert entry.level == "info"
        assert entry.integration_id == integration.id
        assert str(entry.job_id) == "8c0e2e52-4f0e-4c89-9d53-7d1b2f0c9a11"
        assert entry.details == {"matched": 3}
        assert "job=8c0e2e52" in caplog.text

    def test_bind_does_not_change_the_original(self, db, integration):
        log = SyncLogger(db, SyncContext("product_sync", integration_id=str(integration.id)))
        bound = log.bind(queue_id="q-1")
        assert log.context.queue_id is None
        assert bound.context.queue_id == "q-1"

    def test_without_integration_or_queue_only_console(self, db):
        SyncLogger(db, SyncContext("adhoc")).warn("nothing to persist")
        assert db.query(SyncLogEntry).count() == 0

    def test_non_json_details_are_stringified(self, db, integration):
        log = SyncLogger(db, SyncContext("order_sync", integration_id=str(integration.id)))
        log.error("failed", when=timedelta(seconds=5))
        assert db.query(SyncLogEntry).one().details == {"when": "0:00:05"}


class TestQueueScheduler:
    """Tests for the APScheduler wrapper"""

    @pytest.mark.asyncio
    async def test_start_registers_single_instance_interval_job(self):
        scheduler = QueueScheduler(interval_seconds=45)
        scheduler.start()
        try:
            job = scheduler.scheduler.get_job(PROCESS_JOB_ID)
            assert job is not None
            assert job.max_instances == 1
            assert job.trigger.interval == timedelta(seconds=45)
            assert scheduler.is_running
        finally:
            scheduler.stop()
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_batch_with_empty_queue_is_a_no_op(self, db):
        await QueueScheduler(interval_seconds=45)._run_batch()


class TestStatusEndpoint:
    """Tests for GET /api/status"""

    def test_reports_scheduler_stopped_when_disabled(self, api):
        body = api.get("/api/status").json()
        assert body["status"] == "ok"
        assert body["scheduler"] == {"running": False}
