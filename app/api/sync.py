"""
Sync API - Worker invocation, queue management and job monitoring

Every entry point answers with a JSON body, errors included.
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from pydantic import ValidationError
from typing import Optional
import logging

from app.api.deps import get_client_factory
from app.core.database import get_db
from app.schemas.sync import (
    SyncInvocation, SyncResponse, EnqueueRequest, QueueItemResponse, SyncJobResponse,
)
from app.services import integration_service, queue_service
from app.services.errors import ErrorType, classify_exception
from app.services.queue_processor import ClientFactory, QueueProcessor
from app.services.sync_service import get_worker_class, resolve_integration

router = APIRouter(prefix="/sync", tags=["sync"])
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, error_type: str) -> JSONResponse:
    body = SyncResponse(success=False, error=message, error_type=error_type).to_body()
    return JSONResponse(body, status_code=status_code)


# ========== Queue ==========

@router.post("/queue")
async def enqueue_sync(data: EnqueueRequest, db: Session = Depends(get_db)):
    """Queue a sync; an already pending/processing one is returned unless force"""
    try:
        if not integration_service.get_integration(db, data.integration_id):
            return _error(404, "Integration not found", ErrorType.PERMANENT.value)

        item, created = queue_service.enqueue(
            db,
            integration_id=data.integration_id,
            sync_type=data.sync_type,
            priority=data.priority,
            max_retries=data.max_retries,
            force=data.force,
        )
        return JSONResponse(
            {
                "success": True,
                "created": created,
                "message": "Sync queued" if created else "Sync already in progress",
                "item": QueueItemResponse.model_validate(item).model_dump(mode="json"),
            },
            status_code=201 if created else 200,
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Enqueue failed: {e}")
        return _error(500, str(e), classify_exception(e).type.value)


@router.get("/queue")
async def list_queue(
    integration_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        items = queue_service.list_queue_items(db, integration_id, status, limit)
        return [QueueItemResponse.model_validate(i).model_dump(mode="json") for i in items]
    except Exception as e:
        logger.error(f"Queue listing failed: {e}")
        return _error(500, str(e), classify_exception(e).type.value)


@router.post("/queue/process")
async def process_queue(
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """Run one processor batch (what the scheduler does every poll)"""
    try:
        response = await QueueProcessor(db, client_factory=client_factory).run_once()
        if not response.results:
            return {"message": "No pending syncs in queue", "processed": 0, "results": []}
        return response.model_dump(mode="json")
    except Exception as e:
        db.rollback()
        logger.error(f"Processor error: {e}")
        return _error(500, str(e), classify_exception(e).type.value)


# ========== Jobs ==========

@router.get("/jobs")
async def list_jobs(
    integration_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    try:
        jobs = integration_service.get_sync_jobs(db, integration_id, limit)
        return [SyncJobResponse.model_validate(j).model_dump(mode="json") for j in jobs]
    except Exception as e:
        logger.error(f"Job listing failed: {e}")
        return _error(500, str(e), classify_exception(e).type.value)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, db: Session = Depends(get_db)):
    try:
        job = integration_service.get_sync_job(db, job_id)
    except ValueError:
        job = None
    if not job:
        return _error(404, "Sync job not found", ErrorType.PERMANENT.value)
    return SyncJobResponse.model_validate(job).model_dump(mode="json")


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, db: Session = Depends(get_db)):
    """Cancellation takes effect at the next page boundary"""
    try:
        job = integration_service.cancel_sync_job(db, job_id)
    except ValueError:
        job = None
    except Exception as e:
        db.rollback()
        logger.error(f"Cancel failed for job {job_id}: {e}")
        return _error(500, str(e), classify_exception(e).type.value)

    if not job:
        return _error(404, "Sync job not found", ErrorType.PERMANENT.value)
    return {
        "success": job.status == "cancelled",
        "job": SyncJobResponse.model_validate(job).model_dump(mode="json"),
    }


# ========== Health ==========

@router.get("/health")
async def sync_health(
    integration_id: Optional[str] = Query(None),
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
):
    try:
        stats = queue_service.get_health_stats(db, integration_id, days)
        return {"days": days, "stats": stats}
    except Exception as e:
        logger.error(f"Health stats failed: {e}")
        return _error(500, str(e), classify_exception(e).type.value)


# ========== Worker invocation ==========

@router.post("/{sync_type}")
async def invoke_sync(
    sync_type: str,
    request: Request,
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
):
    """
    Process one page of a sync.
    Body: {integrationId, queueId?, jobId?, page_info?}
    A non-null nextPageInfo in the response means: call again with it.
    """
    try:
        invocation = SyncInvocation.model_validate(await request.json())
    except (ValidationError, ValueError) as e:
        return _error(400, f"Invalid request body: {e}", ErrorType.PERMANENT.value)

    try:
        worker_cls = get_worker_class(sync_type)
        integration = resolve_integration(db, invocation.integration_id)
        async with client_factory(integration) as client:
            worker = worker_cls(db, integration, client=client, queue_id=invocation.queue_id)
            outcome = await worker.run_page(page_info=invocation.page_info, job_id=invocation.job_id)
        return JSONResponse(outcome.to_response().to_body())

    except Exception as e:
        db.rollback()
        classified = classify_exception(e)
        logger.error(f"[{sync_type}] Invocation failed ({classified.type.value}): {classified.message}")
        return _error(500, classified.message, classified.type.value)
