"""
Queue Scheduler - Periodically runs the sync queue processor
"""
import asyncio
from typing import Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.database import SessionLocal
from app.services.queue_processor import QueueProcessor

logger = logging.getLogger(__name__)

PROCESS_JOB_ID = "sync_queue_processor"

# Global scheduler instance
_scheduler: Optional["QueueScheduler"] = None


class QueueScheduler:
    """
    Re-invokes the queue processor on an interval. Each tick runs one
    bounded batch; multi-page syncs advance one page per tick.
    """

    def __init__(self, interval_seconds: Optional[int] = None):
        self.scheduler = AsyncIOScheduler()
        self.interval_seconds = interval_seconds or settings.QUEUE_POLL_INTERVAL_SECONDS
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if self.is_running:
            return

        self.scheduler.add_job(
            func=self._run_batch,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=PROCESS_JOB_ID,
            name="Process sync queue",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping batches
            coalesce=True,
        )
        self.scheduler.start()
        self.is_running = True
        logger.info(f"Sync queue scheduler started (every {self.interval_seconds}s)")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Sync queue scheduler stopped")

    async def _run_batch(self):
        db = SessionLocal()
        try:
            response = await QueueProcessor(db).run_once()
            if response.results:
                logger.info(f"Scheduled queue run processed {response.processed} items")
        except Exception as e:
            logger.error(f"Scheduled queue run failed: {e}")
        finally:
            db.close()


# ========== Global Functions ==========

def get_scheduler() -> QueueScheduler:
    """Get or create the global scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = QueueScheduler()
    return _scheduler


def start_scheduler():
    """Start the global scheduler"""
    get_scheduler().start()


def stop_scheduler():
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None


def get_scheduler_state() -> dict:
    if _scheduler is None or not _scheduler.is_running:
        return {"running": False}
    job = _scheduler.scheduler.get_job(PROCESS_JOB_ID)
    next_run = job.next_run_time.isoformat() if job and job.next_run_time else None
    return {"running": True, "interval_seconds": _scheduler.interval_seconds, "next_run_at": next_run}


async def run_queue_once():
    """Run one processor batch outside the scheduler"""
    db = SessionLocal()
    try:
        return await QueueProcessor(db).run_once()
    finally:
        db.close()


# ========== CLI Commands ==========

if __name__ == "__main__":
    """
    Run scheduler standalone:
    python -m app.jobs.queue_scheduler        # poll forever
    python -m app.jobs.queue_scheduler once   # one batch
    """
    import sys
    from app.core.log import configure_logging

    configure_logging(settings.LOG_LEVEL)

    if len(sys.argv) > 1 and sys.argv[1] == "once":
        result = asyncio.run(run_queue_once())
        print(result.model_dump_json(indent=2))
    else:
        print("Starting sync queue scheduler...")
        print("Press Ctrl+C to stop")

        async def _main():
            start_scheduler()
            while True:
                await asyncio.sleep(3600)

        try:
            asyncio.run(_main())
        except KeyboardInterrupt:
            stop_scheduler()
            print("Scheduler stopped")
