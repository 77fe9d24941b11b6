"""
Sync Service - One-page sync worker state machine and worker registry

Each invocation handles exactly one page:
admission -> job bootstrap -> cancellation check -> heartbeat -> fetch ->
heartbeat -> match/upsert -> progress -> checkpoint -> continuation.
Multi-page syncs are driven by re-invoking with the returned cursor.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Type
from sqlalchemy.orm import Session
import logging

from app.core.config import settings
from app.core.log import SyncContext, SyncLogger
from app.integrations import BasePlatformClient
from app.models.integration import Integration, SyncJob, SyncJobStatus
from app.models.queue import SyncType
from app.schemas.sync import PageOutcome, Checkpoint, decode_checkpoint
from app.services import integration_service, queue_service
from app.services.errors import SyncError, ErrorType, classify_exception

logger = logging.getLogger(__name__)


@dataclass
class PageResult:
    """What applying one page changed locally"""
    processed: int
    matched: int = 0
    counters: Dict[str, int] = field(default_factory=dict)


class BaseSyncWorker(ABC):
    """
    Shared page state machine. Subclasses name the resource they read and
    implement apply_page(); everything else (locking, job lifecycle,
    checkpointing, error classification) lives here.
    """
    sync_type: SyncType
    resource: str

    def __init__(
        self,
        db: Session,
        integration: Integration,
        client: Optional[BasePlatformClient] = None,
        queue_id=None,
        page_size: Optional[int] = None,
    ):
        self.db = db
        self.integration = integration
        self.queue_id = str(queue_id) if queue_id else None
        self.page_size = page_size or settings.SYNC_PAGE_SIZE
        self._client = client
        self.log = SyncLogger(db, SyncContext(
            function_name=self.sync_type.value,
            integration_id=str(integration.id),
            queue_id=self.queue_id,
        ))

    @property
    def client(self) -> BasePlatformClient:
        if self._client is None:
            self._client = integration_service.get_client_for_integration(self.integration)
        return self._client

    # ========== Hooks ==========

    @abstractmethod
    def apply_page(self, records: List[Dict[str, Any]]) -> PageResult:
        """Match and upsert one page. Must not commit."""

    def first_page_params(self) -> Optional[Dict[str, Any]]:
        return None

    def advance_checkpoint(self, checkpoint: Checkpoint, result: PageResult) -> None:
        checkpoint.processed += result.processed
        for name, value in result.counters.items():
            setattr(checkpoint, name, getattr(checkpoint, name) + value)

    # ========== State machine ==========

    async def run_page(self, page_info: Optional[str] = None, job_id=None) -> PageOutcome:
        """
        Process one page. Returns an outcome (more / done / skipped /
        cancelled) or raises SyncError with the classified failure.
        """
        # 1. Admission
        if queue_service.has_other_processing(
            self.db, self.integration.id, self.sync_type, exclude_id=self.queue_id
        ):
            self.log.info("Another sync is already processing for this integration, skipping")
            return PageOutcome(status="skipped", message="Sync already in progress")

        checkpoint = self._load_checkpoint()
        cursor = page_info or checkpoint.page_info
        job_id = str(job_id) if job_id else checkpoint.job_id

        job: Optional[SyncJob] = None
        try:
            # 2. Job bootstrap
            job = integration_service.get_sync_job(self.db, job_id) if job_id else None
            if job is None:
                job = await self._bootstrap_job(count_total=cursor is None)
                checkpoint.job_id = str(job.id)
                self._save_checkpoint(checkpoint)
            self.log = self.log.bind(job_id=str(job.id))

            # 3. Cancellation
            self.db.refresh(job)
            if job.status == SyncJobStatus.CANCELLED.value:
                self.log.info("Sync job was cancelled, stopping before next page")
                return PageOutcome(status="cancelled", job_id=str(job.id), message="Sync cancelled")
            if job.status == SyncJobStatus.COMPLETED.value:
                return PageOutcome(status="done", job_id=str(job.id), message="Sync already completed")
            if job.status == SyncJobStatus.FAILED.value:
                raise SyncError.permanent(f"Sync job {job.id} already failed: {job.error_message}")
            if job.status == SyncJobStatus.PENDING.value:
                integration_service.start_sync_job(self.db, job)

            # 4-5. Fetch with heartbeats either side
            self._heartbeat()
            self.log.debug("Fetching page", page_info=cursor)
            page = await self.client.fetch_page(
                self.resource,
                page_size=self.page_size,
                cursor=cursor,
                params=None if cursor else self.first_page_params(),
            )
            self._heartbeat()

            # 6-9. Apply, count, checkpoint; committed together
            result = self.apply_page(page.records)
            counted = integration_service.record_job_progress(
                self.db, job.id, page_key=cursor, processed=result.processed, matched=result.matched,
            )
            if counted:
                checkpoint.pages_processed += 1
                self.advance_checkpoint(checkpoint, result)
            checkpoint.page_info = page.next_cursor
            self._save_checkpoint(checkpoint, commit=False)
            self.db.commit()

            details = {"matched": result.matched, **result.counters}
            self.log.info(
                f"Page processed: {result.processed} {self.resource}",
                counted=counted,
                has_more=page.has_more,
                **details,
            )

            if page.has_more:
                return PageOutcome(
                    status="more",
                    next_page_info=page.next_cursor,
                    job_id=str(job.id),
                    processed=result.processed,
                    message=f"Processed page {checkpoint.pages_processed}, more to sync",
                )

            # A cancel that landed while this page was in flight wins
            self.db.refresh(job)
            if job.status == SyncJobStatus.CANCELLED.value:
                self.log.info("Sync job was cancelled during the last page")
                return PageOutcome(status="cancelled", job_id=str(job.id), message="Sync cancelled")

            integration_service.complete_sync_job(self.db, job.id)
            integration_service.touch_last_sync(self.db, self.integration.id)
            self.log.info("Sync completed", pages=checkpoint.pages_processed, processed=checkpoint.processed)
            return PageOutcome(
                status="done",
                job_id=str(job.id),
                processed=result.processed,
                message=f"Sync completed: {checkpoint.processed} {self.resource} processed",
            )

        except Exception as e:
            self.db.rollback()
            classified = classify_exception(e)
            if job is not None:
                if classified.type == ErrorType.PERMANENT:
                    integration_service.fail_sync_job(self.db, job.id, classified)
                else:
                    integration_service.record_job_error(self.db, job.id, classified)
            self.log.error(
                f"Page failed: {classified.message}",
                error_type=classified.type.value,
                page_info=cursor,
            )
            if isinstance(e, SyncError):
                raise
            raise SyncError(classified) from e

    # ========== Helpers ==========

    async def _bootstrap_job(self, count_total: bool) -> SyncJob:
        job = integration_service.create_sync_job(
            self.db,
            integration_id=self.integration.id,
            job_type=self.sync_type.value,
            queue_id=self.queue_id,
        )
        total = None
        if count_total:
            try:
                total = await self.client.count(self.resource)
            except Exception as e:
                # Best-effort estimate; the page fetch reports real failures
                logger.warning(f"Could not count {self.resource} for job {job.id}: {e}")
        integration_service.start_sync_job(self.db, job, total_items=total)
        self.log.bind(job_id=str(job.id)).info("Sync job started", total_items=total)
        return job

    def _load_checkpoint(self) -> Checkpoint:
        payload = None
        if self.queue_id:
            item = queue_service.get_queue_item(self.db, self.queue_id)
            payload = item.checkpoint if item else None
        return read_checkpoint(self.sync_type.value, payload)

    def _save_checkpoint(self, checkpoint: Checkpoint, commit: bool = True) -> None:
        if self.queue_id:
            queue_service.update_checkpoint(self.db, self.queue_id, checkpoint, commit=commit)

    def _heartbeat(self) -> None:
        if self.queue_id:
            queue_service.update_heartbeat(self.db, self.queue_id)


def read_checkpoint(sync_type: str, payload: Optional[Dict[str, Any]]) -> Checkpoint:
    """Decode a stored checkpoint; a corrupt one can never succeed on retry"""
    try:
        return decode_checkpoint(sync_type, payload)
    except ValueError as e:
        raise SyncError.permanent(f"Invalid checkpoint: {e}") from e


# ========== Registry ==========

WORKERS: Dict[str, Type[BaseSyncWorker]] = {}


def register_worker(cls: Type[BaseSyncWorker]) -> Type[BaseSyncWorker]:
    WORKERS[cls.sync_type.value] = cls
    return cls


def get_worker_class(sync_type: str) -> Type[BaseSyncWorker]:
    worker_cls = WORKERS.get(sync_type)
    if worker_cls is None:
        raise SyncError.permanent(f"Unknown sync type: {sync_type}")
    return worker_cls


def resolve_integration(db: Session, integration_id) -> Integration:
    """Load credentials; missing or disabled integrations are permanent failures"""
    integration = integration_service.get_integration(db, integration_id)
    if integration is None:
        raise SyncError.permanent(f"Integration not found: {integration_id}")
    if not integration.is_active:
        raise SyncError.permanent(f"Integration is disabled: {integration_id}")
    return integration
