"""
Queue Processor - Claim a batch of queue items and run one page of each
"""
from typing import Optional, Callable
from datetime import datetime
from sqlalchemy.orm import Session
import logging

from app.core.config import settings
from app.core.log import SyncContext, SyncLogger
from app.integrations import BasePlatformClient
from app.models.integration import Integration
from app.models.queue import SyncQueueItem
from app.schemas.sync import ProcessBatchResponse, ProcessedItem
from app.services import integration_service, queue_service
from app.services.errors import ClassifiedError, ErrorType, classify_exception
from app.services.sync_service import get_worker_class, read_checkpoint, resolve_integration

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Integration], BasePlatformClient]


class QueueProcessor:
    """
    One invocation = one bounded batch. Each claimed item gets exactly one
    page; items with more pages go back to pending for the next run.
    """

    def __init__(
        self,
        db: Session,
        client_factory: Optional[ClientFactory] = None,
        batch_size: Optional[int] = None,
    ):
        self.db = db
        self.client_factory = client_factory or integration_service.get_client_for_integration
        self.batch_size = batch_size or settings.QUEUE_BATCH_SIZE

    async def run_once(self, now: Optional[datetime] = None) -> ProcessBatchResponse:
        items = queue_service.claim_batch(self.db, self.batch_size, now=now)
        if not items:
            logger.debug("No pending syncs in queue")
            return ProcessBatchResponse()

        results = []
        for item in items:
            results.append(await self.process_item(item, now=now))

        response = ProcessBatchResponse(processed=len(results), results=results)
        logger.info(
            f"Queue batch done: {len(results)} items "
            f"(completed={response.count('completed')}, continued={response.count('continued')}, "
            f"requeued={response.count('requeued')}, failed={response.count('failed')})"
        )
        return response

    async def process_item(self, item: SyncQueueItem, now: Optional[datetime] = None) -> ProcessedItem:
        """Run one page for an item this processor has already claimed"""
        queue_id = str(item.id)
        sync_type = item.sync_type
        log = SyncLogger(self.db, SyncContext(
            function_name="sync-queue-processor",
            integration_id=str(item.integration_id),
            queue_id=queue_id,
        ))
        log.debug(f"Processing {sync_type}")

        try:
            worker_cls = get_worker_class(sync_type)
            integration = resolve_integration(self.db, item.integration_id)
            checkpoint = read_checkpoint(sync_type, item.checkpoint)

            client = self.client_factory(integration)
            async with client:
                worker = worker_cls(self.db, integration, client=client, queue_id=queue_id)
                outcome = await worker.run_page(page_info=checkpoint.page_info, job_id=checkpoint.job_id)

        except Exception as e:
            self.db.rollback()
            return self._handle_failure(queue_id, sync_type, classify_exception(e), log, now)

        if outcome.status == "more":
            queue_service.release_for_continuation(self.db, queue_id)
            status = "continued"
        elif outcome.status == "done":
            queue_service.mark_completed(self.db, queue_id)
            status = "completed"
        elif outcome.status == "cancelled":
            queue_service.mark_cancelled(self.db, queue_id)
            status = "cancelled"
        else:
            queue_service.release_for_continuation(self.db, queue_id)
            status = "skipped"

        log.info(f"{sync_type} page finished: {status}", job_id=outcome.job_id)
        return ProcessedItem(
            queue_id=queue_id,
            sync_type=sync_type,
            status=status,
            message=outcome.message,
        )

    def _handle_failure(
        self,
        queue_id: str,
        sync_type: str,
        error: ClassifiedError,
        log: SyncLogger,
        now: Optional[datetime],
    ) -> ProcessedItem:
        """Permanent -> failed; otherwise requeue until max_retries, then failed"""
        item = queue_service.get_queue_item(self.db, queue_id)
        should_retry = error.should_retry and item.retry_count < item.max_retries

        if should_retry:
            item = queue_service.mark_pending_for_retry(self.db, queue_id, error, now=now)
            log.warn(
                f"Error processing {sync_type}, retry scheduled",
                error_type=error.type.value,
                retry_count=item.retry_count,
                error=error.message,
            )
            return ProcessedItem(
                queue_id=queue_id,
                sync_type=sync_type,
                status="requeued",
                error=error.message,
                error_type=error.type.value,
                retry_count=item.retry_count,
            )

        job_id = (item.checkpoint or {}).get("job_id")
        queue_service.mark_failed(self.db, queue_id, error)
        if job_id:
            # The worker already counted this attempt on the job
            integration_service.fail_sync_job(self.db, job_id, error, count_error=False)

        reason = "permanent error" if error.type == ErrorType.PERMANENT else "retries exhausted"
        log.error(
            f"Error processing {sync_type}, giving up ({reason})",
            error_type=error.type.value,
            retry_count=item.retry_count,
            error=error.message,
        )
        return ProcessedItem(
            queue_id=queue_id,
            sync_type=sync_type,
            status="failed",
            error=error.message,
            error_type=error.type.value,
            retry_count=item.retry_count,
        )


async def process_queue(db: Session, now: Optional[datetime] = None) -> ProcessBatchResponse:
    """Run one processor batch with the default client factory"""
    return await QueueProcessor(db).run_once(now=now)
