"""
Queue Service - Durable sync queue: enqueue, atomic claim, state transitions
"""
from typing import Optional, List, Dict, Any, Tuple, Union
from datetime import datetime, timedelta
from sqlalchemy.orm import Session, aliased
from sqlalchemy import update, select, or_, func
from sqlalchemy.exc import IntegrityError
import logging

from app.core.config import settings
from app.models.base import as_uuid, utcnow
from app.models.queue import SyncQueueItem, QueueStatus, SyncType
from app.services.backoff import next_attempt_at
from app.services.errors import ClassifiedError, ErrorType

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (QueueStatus.PENDING.value, QueueStatus.PROCESSING.value)


def _type_value(sync_type: Union[SyncType, str]) -> str:
    return sync_type.value if isinstance(sync_type, SyncType) else str(sync_type)


def _as_payload(checkpoint) -> Dict[str, Any]:
    if checkpoint is None:
        return {}
    if hasattr(checkpoint, "model_dump"):
        return checkpoint.model_dump(mode="json")
    return dict(checkpoint)


# ========== Reads ==========

def get_queue_item(db: Session, item_id) -> Optional[SyncQueueItem]:
    return db.get(SyncQueueItem, as_uuid(item_id))


def list_queue_items(
    db: Session,
    integration_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
) -> List[SyncQueueItem]:
    """Queue history, newest first"""
    query = db.query(SyncQueueItem)

    if integration_id:
        query = query.filter(SyncQueueItem.integration_id == as_uuid(integration_id))
    if status:
        query = query.filter(SyncQueueItem.status == status)

    return query.order_by(SyncQueueItem.created_at.desc()).limit(limit).all()


def find_active_item(db: Session, integration_id, sync_type) -> Optional[SyncQueueItem]:
    """Pending or processing item for the pair, if any"""
    return db.query(SyncQueueItem).filter(
        SyncQueueItem.integration_id == as_uuid(integration_id),
        SyncQueueItem.sync_type == _type_value(sync_type),
        SyncQueueItem.status.in_(ACTIVE_STATUSES),
    ).order_by(SyncQueueItem.created_at.asc()).first()


def has_other_processing(db: Session, integration_id, sync_type, exclude_id=None) -> bool:
    """True when another item for the same pair is currently processing"""
    query = db.query(SyncQueueItem.id).filter(
        SyncQueueItem.integration_id == as_uuid(integration_id),
        SyncQueueItem.sync_type == _type_value(sync_type),
        SyncQueueItem.status == QueueStatus.PROCESSING.value,
    )
    if exclude_id is not None:
        query = query.filter(SyncQueueItem.id != as_uuid(exclude_id))
    return query.first() is not None


# ========== Enqueue ==========

def enqueue(
    db: Session,
    integration_id,
    sync_type: Union[SyncType, str],
    priority: Optional[int] = None,
    max_retries: Optional[int] = None,
    checkpoint=None,
    force: bool = False,
) -> Tuple[SyncQueueItem, bool]:
    """
    Add a sync request to the queue.

    Returns (item, created). Without force, an existing pending/processing
    item for the same (integration, sync_type) is returned instead of
    queueing a duplicate.
    """
    if not force:
        existing = find_active_item(db, integration_id, sync_type)
        if existing:
            logger.info(
                f"Sync already queued for integration {integration_id} "
                f"({_type_value(sync_type)}): {existing.id} [{existing.status}]"
            )
            return existing, False

    item = SyncQueueItem(
        integration_id=as_uuid(integration_id),
        sync_type=_type_value(sync_type),
        status=QueueStatus.PENDING.value,
        priority=priority if priority is not None else settings.QUEUE_DEFAULT_PRIORITY,
        max_retries=max_retries if max_retries is not None else settings.QUEUE_MAX_RETRIES,
        checkpoint=_as_payload(checkpoint),
    )

    db.add(item)
    db.commit()
    db.refresh(item)

    logger.info(f"Queued {item.sync_type} for integration {integration_id}: {item.id}")
    return item, True


# ========== Claim ==========

def mark_processing(db: Session, item_id, now: Optional[datetime] = None) -> bool:
    """
    Atomically move a pending item to processing.

    One conditional UPDATE: succeeds only while the row is still pending and
    no other row for the same (integration, sync_type) is processing. The
    partial unique index catches anything that slips between the two.
    Returns False when the claim was lost or refused.
    """
    item = get_queue_item(db, item_id)
    if not item:
        return False

    now = now or utcnow()
    other = aliased(SyncQueueItem)
    busy = (
        select(other.id)
        .where(
            other.integration_id == item.integration_id,
            other.sync_type == item.sync_type,
            other.status == QueueStatus.PROCESSING.value,
        )
        .exists()
    )
    stmt = (
        update(SyncQueueItem)
        .where(
            SyncQueueItem.id == item.id,
            SyncQueueItem.status == QueueStatus.PENDING.value,
            ~busy,
        )
        .values(
            status=QueueStatus.PROCESSING.value,
            started_at=func.coalesce(SyncQueueItem.started_at, now),
            last_heartbeat=now,
        )
    )

    try:
        result = db.execute(stmt, execution_options={"synchronize_session": False})
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(f"Lost claim race for queue item {item_id}")
        return False

    claimed = result.rowcount == 1
    db.expire_all()
    if not claimed:
        logger.debug(f"Queue item {item_id} not claimable (taken or pair busy)")
    return claimed


def claim_batch(
    db: Session,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[SyncQueueItem]:
    """
    Claim up to `limit` pending items, most urgent priority first and FIFO
    within a priority. Items still backing off (available_at in the future)
    are left alone.
    """
    limit = limit or settings.QUEUE_BATCH_SIZE
    now = now or utcnow()

    candidates = db.query(SyncQueueItem.id).filter(
        SyncQueueItem.status == QueueStatus.PENDING.value,
        or_(SyncQueueItem.available_at.is_(None), SyncQueueItem.available_at <= now),
    ).order_by(
        SyncQueueItem.priority.asc(),
        SyncQueueItem.created_at.asc(),
    ).limit(limit).all()

    claimed = []
    for (item_id,) in candidates:
        if mark_processing(db, item_id, now=now):
            claimed.append(get_queue_item(db, item_id))

    if candidates:
        logger.info(f"Claimed {len(claimed)}/{len(candidates)} pending queue items")
    return claimed


# ========== Transitions ==========

def _transition(db: Session, item_id, **values) -> Optional[SyncQueueItem]:
    item = get_queue_item(db, item_id)
    if not item:
        logger.warning(f"Queue item not found: {item_id}")
        return None
    for field, value in values.items():
        setattr(item, field, value)
    db.commit()
    db.refresh(item)
    return item


def mark_completed(db: Session, item_id) -> Optional[SyncQueueItem]:
    return _transition(
        db, item_id,
        status=QueueStatus.COMPLETED.value,
        completed_at=utcnow(),
        available_at=None,
        error_message=None,
        error_type=None,
    )


def mark_failed(db: Session, item_id, error: ClassifiedError) -> Optional[SyncQueueItem]:
    item = _transition(
        db, item_id,
        status=QueueStatus.FAILED.value,
        completed_at=utcnow(),
        available_at=None,
        error_message=error.message,
        error_type=error.type.value,
    )
    if item:
        logger.error(f"Queue item {item_id} failed ({error.type.value}): {error.message}")
    return item


def mark_cancelled(db: Session, item_id) -> Optional[SyncQueueItem]:
    return _transition(
        db, item_id,
        status=QueueStatus.CANCELLED.value,
        completed_at=utcnow(),
        available_at=None,
    )


def mark_pending_for_retry(
    db: Session,
    item_id,
    error: ClassifiedError,
    now: Optional[datetime] = None,
) -> Optional[SyncQueueItem]:
    """
    Requeue after a failure: retry_count += 1, started_at cleared, and the
    item is held back until its backoff (or rate-limit wait) has elapsed.
    The checkpoint is kept so the retry resumes from the last good cursor.
    """
    item = get_queue_item(db, item_id)
    if not item:
        logger.warning(f"Queue item not found: {item_id}")
        return None

    now = now or utcnow()
    attempt = item.retry_count or 0
    item.available_at = next_attempt_at(error, attempt, now)
    item.retry_count = attempt + 1
    item.status = QueueStatus.PENDING.value
    item.started_at = None
    item.error_message = error.message
    item.error_type = error.type.value

    db.commit()
    db.refresh(item)

    if error.type == ErrorType.UNKNOWN:
        logger.warning(
            f"Queue item {item_id} requeued after unclassified error "
            f"(retry {item.retry_count}/{item.max_retries}): {error.message}"
        )
    else:
        logger.info(
            f"Queue item {item_id} requeued after {error.type.value} error "
            f"(retry {item.retry_count}/{item.max_retries})"
        )
    return item


def release_for_continuation(db: Session, item_id) -> Optional[SyncQueueItem]:
    """Page done with more to go: back to pending without spending a retry"""
    return _transition(
        db, item_id,
        status=QueueStatus.PENDING.value,
        available_at=None,
        last_heartbeat=utcnow(),
    )


def update_heartbeat(db: Session, item_id) -> None:
    db.execute(
        update(SyncQueueItem)
        .where(SyncQueueItem.id == as_uuid(item_id))
        .values(last_heartbeat=utcnow()),
        execution_options={"synchronize_session": False},
    )
    db.commit()


def update_checkpoint(db: Session, item_id, checkpoint, commit: bool = True) -> None:
    """Replace the stored checkpoint (pydantic model or dict)"""
    db.execute(
        update(SyncQueueItem)
        .where(SyncQueueItem.id == as_uuid(item_id))
        .values(checkpoint=_as_payload(checkpoint)),
        execution_options={"synchronize_session": False},
    )
    if commit:
        db.commit()


# ========== Health ==========

def get_health_stats(
    db: Session,
    integration_id: Optional[str] = None,
    days: int = 30,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Per (integration, sync_type) outcome summary over the last `days` days:
    totals, success rate, mean duration, last success / failure.
    """
    now = now or utcnow()
    since = now - timedelta(days=days)

    query = db.query(SyncQueueItem).filter(
        SyncQueueItem.created_at >= since,
        SyncQueueItem.status.in_((QueueStatus.COMPLETED.value, QueueStatus.FAILED.value)),
    )
    if integration_id:
        query = query.filter(SyncQueueItem.integration_id == as_uuid(integration_id))

    groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for item in query.all():
        key = (str(item.integration_id), item.sync_type)
        stats = groups.setdefault(key, {
            "integration_id": key[0],
            "sync_type": key[1],
            "total": 0,
            "successful": 0,
            "failed": 0,
            "durations": [],
            "last_success_at": None,
            "last_failure_at": None,
        })
        stats["total"] += 1

        if item.status == QueueStatus.COMPLETED.value:
            stats["successful"] += 1
            if item.completed_at and (not stats["last_success_at"] or item.completed_at > stats["last_success_at"]):
                stats["last_success_at"] = item.completed_at
            if item.started_at and item.completed_at:
                stats["durations"].append((item.completed_at - item.started_at).total_seconds())
        else:
            stats["failed"] += 1
            if item.completed_at and (not stats["last_failure_at"] or item.completed_at > stats["last_failure_at"]):
                stats["last_failure_at"] = item.completed_at

    results = []
    for stats in groups.values():
        durations = stats.pop("durations")
        stats["success_rate"] = round(stats["successful"] / stats["total"] * 100, 1)
        stats["avg_duration_seconds"] = round(sum(durations) / len(durations), 1) if durations else None
        results.append(stats)

    return sorted(results, key=lambda s: (s["integration_id"], s["sync_type"]))
