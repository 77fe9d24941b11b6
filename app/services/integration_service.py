"""
Integration Service - Store credentials, sync jobs and webhook logs
"""
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import update, or_
import logging

from app.models.base import as_uuid, utcnow
from app.models.integration import (
    Integration, SyncJob, SyncJobStatus, WebhookLog, ProviderType,
    TERMINAL_JOB_STATUSES, normalize_shop_domain,
)
from app.integrations import ShopifyClient, BasePlatformClient
from app.services.errors import ClassifiedError

logger = logging.getLogger(__name__)


def get_integrations(
    db: Session,
    provider: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> List[Integration]:
    """Get all integrations with optional filters"""
    query = db.query(Integration)

    if provider:
        query = query.filter(Integration.provider == provider)
    if is_active is not None:
        query = query.filter(Integration.is_active == is_active)

    return query.order_by(Integration.created_at.desc()).all()


def get_integration(db: Session, integration_id) -> Optional[Integration]:
    """Get integration by ID"""
    return db.get(Integration, as_uuid(integration_id))


def get_integration_by_shop(db: Session, shop_domain: str) -> Optional[Integration]:
    """
    Resolve an integration from a shop domain (webhook header).
    shop_url is stored as entered, so compare normalized forms.
    """
    wanted = normalize_shop_domain(shop_domain)
    if not wanted:
        return None
    candidates = db.query(Integration).filter(
        Integration.provider == ProviderType.SHOPIFY.value,
        Integration.shop_url.ilike(f"%{wanted}%"),
    ).all()
    for integration in candidates:
        if integration.shop_domain == wanted:
            return integration
    return None


def create_integration(
    db: Session,
    shop_url: str,
    access_token: str,
    name: Optional[str] = None,
    webhook_secret: Optional[str] = None,
) -> Integration:
    """Create new store integration"""
    integration = Integration(
        provider=ProviderType.SHOPIFY.value,
        name=name or normalize_shop_domain(shop_url),
        shop_url=shop_url,
        access_token=access_token,
        webhook_secret=webhook_secret,
        is_active=True,
    )

    db.add(integration)
    db.commit()
    db.refresh(integration)

    logger.info(f"Created integration: {integration.provider} - {integration.shop_domain}")
    return integration


def get_client_for_integration(integration: Integration, **kwargs) -> BasePlatformClient:
    """Create platform client from stored credentials"""
    if integration.provider != ProviderType.SHOPIFY.value:
        raise ValueError(f"Unknown provider: {integration.provider}")

    return ShopifyClient(
        shop_url=integration.shop_url,
        access_token=integration.access_token,
        webhook_secret=integration.webhook_secret,
        **kwargs,
    )


# ========== Sync Jobs ==========

def create_sync_job(
    db: Session,
    integration_id,
    job_type: str,
    queue_id=None,
) -> SyncJob:
    """Create new sync job record in pending state"""
    job = SyncJob(
        integration_id=as_uuid(integration_id),
        queue_id=as_uuid(queue_id),
        job_type=job_type,
        status=SyncJobStatus.PENDING.value,
    )

    db.add(job)
    db.commit()
    db.refresh(job)

    return job


def get_sync_job(db: Session, job_id) -> Optional[SyncJob]:
    return db.get(SyncJob, as_uuid(job_id))


def get_sync_jobs(
    db: Session,
    integration_id: Optional[str] = None,
    limit: int = 50,
) -> List[SyncJob]:
    """Get sync job history"""
    query = db.query(SyncJob)

    if integration_id:
        query = query.filter(SyncJob.integration_id == as_uuid(integration_id))

    return query.order_by(SyncJob.created_at.desc()).limit(limit).all()


def start_sync_job(db: Session, job: SyncJob, total_items: Optional[int] = None) -> SyncJob:
    job.mark_running()
    if total_items is not None:
        job.total_items = total_items
    db.commit()
    db.refresh(job)
    return job


def record_job_progress(
    db: Session,
    job_id,
    page_key: Optional[str],
    processed: int,
    matched: int = 0,
) -> bool:
    """
    Count one page into the job, at most once.

    page_key is the cursor the page was fetched with ("" for the first page).
    The increment runs as a single UPDATE against the stored counters and is
    skipped when the same page_key was the last one applied.
    Does not commit; the caller commits with the page's other writes.
    Returns True when the page was counted.
    """
    key = page_key or ""
    result = db.execute(
        update(SyncJob)
        .where(
            SyncJob.id == as_uuid(job_id),
            or_(SyncJob.last_page_key.is_(None), SyncJob.last_page_key != key),
        )
        .values(
            processed_items=SyncJob.processed_items + processed,
            matched_items=SyncJob.matched_items + matched,
            last_page_key=key,
            updated_at=utcnow(),
        ),
        execution_options={"synchronize_session": False},
    )
    applied = result.rowcount == 1
    if not applied:
        logger.info(f"Page {key!r} already counted for job {job_id}, not re-counting")
    return applied


def complete_sync_job(db: Session, job_id) -> Optional[SyncJob]:
    """Mark sync job as completed; terminal jobs are left as they are"""
    job = get_sync_job(db, job_id)
    if not job:
        return None
    if job.is_terminal:
        return job

    job.mark_completed()
    db.commit()
    db.refresh(job)

    return job


def fail_sync_job(
    db: Session,
    job_id,
    error: ClassifiedError,
    count_error: bool = True,
) -> Optional[SyncJob]:
    """
    Mark sync job as failed; jobs already in a terminal state are left as they are.
    count_error=False when the failing attempt was already counted by record_job_error.
    """
    job = get_sync_job(db, job_id)
    if not job:
        return None
    if job.is_terminal:
        return job

    job.mark_failed(error.message, error.type.value)
    if count_error:
        job.error_count = (job.error_count or 0) + 1
    db.commit()
    db.refresh(job)

    return job


def record_job_error(db: Session, job_id, error: ClassifiedError) -> None:
    """Non-terminal failure: keep the last error visible on the job"""
    job = get_sync_job(db, job_id)
    if not job or job.is_terminal:
        return

    job.error_count = (job.error_count or 0) + 1
    job.error_message = error.message
    job.error_type = error.type.value
    db.commit()


def cancel_sync_job(db: Session, job_id) -> Optional[SyncJob]:
    """
    Request cancellation. Workers notice at the next page boundary.
    Terminal jobs are returned unchanged.
    """
    job = get_sync_job(db, job_id)
    if not job:
        return None
    if job.status in TERMINAL_JOB_STATUSES:
        logger.info(f"Sync job {job_id} already {job.status}, not cancelling")
        return job

    job.status = SyncJobStatus.CANCELLED.value
    db.commit()
    db.refresh(job)

    logger.info(f"Cancelled sync job {job_id}")
    return job


def touch_last_sync(db: Session, integration_id) -> None:
    integration = get_integration(db, integration_id)
    if integration:
        integration.last_sync_at = utcnow()
        db.commit()


# ========== Webhook Logs ==========

def log_webhook(
    db: Session,
    topic: str,
    shop_domain: Optional[str],
    payload: Optional[dict],
    signature: Optional[str] = None,
    verified: bool = False,
    integration_id=None,
) -> WebhookLog:
    """Log incoming webhook"""
    log = WebhookLog(
        integration_id=as_uuid(integration_id),
        topic=topic,
        shop_domain=shop_domain,
        payload=payload,
        signature=signature,
        verified=verified,
        processed=False,
    )

    db.add(log)
    db.commit()
    db.refresh(log)

    return log


def mark_webhook_processed(
    db: Session,
    log_id,
    result: str,
    error: str = None,
) -> Optional[WebhookLog]:
    """Mark webhook as processed"""
    log = db.get(WebhookLog, as_uuid(log_id))
    if not log:
        return None

    log.mark_processed(result, error)
    db.commit()
    db.refresh(log)

    return log
