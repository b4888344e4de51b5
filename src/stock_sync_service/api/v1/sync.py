"""Sync job endpoints: start, poll, resume and the run log."""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from shared.constants import RECOMMENDED_POLL_INTERVAL_SECONDS
from stock_sync_service.api.dependencies import (
    JobDispatcher,
    get_dispatcher,
    get_sync_log,
    get_tracker,
)
from stock_sync_service.config import Settings, get_settings
from stock_sync_service.exceptions import AlreadyRunningError, JobNotFoundError
from stock_sync_service.models import LogEntry, SyncJob
from stock_sync_service.services.job_tracker import SyncJobTracker
from stock_sync_service.services.sync_log import SyncLog

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class StartSyncResponse(BaseModel):
    """Response after a sync job has been queued."""

    job_id: str
    poll_interval_seconds: int = RECOMMENDED_POLL_INTERVAL_SECONDS


class ActiveSyncResponse(BaseModel):
    """The in-flight job, if any."""

    active: bool
    job_id: str | None = None
    progress: SyncJob | None = None


class SyncLogResponse(BaseModel):
    """Past run outcomes, most recent first."""

    entries: list[LogEntry]


class FeedConfigResponse(BaseModel):
    """Effective feed configuration."""

    url: str
    sku_column: str
    stock_column: str
    verify_tls: bool
    sync_enabled: bool
    sync_interval_minutes: int
    batch_size: int = Field(..., description="Rows applied between progress snapshots")


# =============================================================================
# Endpoints
# =============================================================================


@router.post("/start", response_model=StartSyncResponse, status_code=202)
async def start_sync(
    tracker: SyncJobTracker = Depends(get_tracker),
    dispatch: JobDispatcher = Depends(get_dispatcher),
) -> StartSyncResponse:
    """
    Start a manual sync in the background.

    Returns the job id immediately; poll `/progress/{job_id}` for updates.
    Responds 409 with `active_job_id` when a sync is already running so the
    client can resume polling that job instead.
    """
    try:
        job_id = await tracker.start(scheduled=False)
    except AlreadyRunningError as e:
        raise HTTPException(
            status_code=409,
            detail={"message": e.message, "active_job_id": e.active_job_id},
        ) from e

    try:
        dispatch(job_id)
    except Exception as e:
        logger.error("Failed to dispatch sync job", job_id=job_id, error=str(e))
        await tracker.fail(job_id, "Could not queue the sync job.")
        raise HTTPException(status_code=503, detail="Sync worker unavailable") from e

    return StartSyncResponse(job_id=job_id)


@router.get("/progress/{job_id}", response_model=SyncJob)
async def get_progress(
    job_id: str,
    tracker: SyncJobTracker = Depends(get_tracker),
) -> SyncJob:
    """Latest progress snapshot of a job."""
    try:
        return await tracker.snapshot(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message) from e


@router.get("/active", response_model=ActiveSyncResponse)
async def get_active(
    tracker: SyncJobTracker = Depends(get_tracker),
) -> ActiveSyncResponse:
    """The job currently in flight, used to resume polling after a reload."""
    active = await tracker.active()
    if active is None:
        return ActiveSyncResponse(active=False)

    job_id, progress = active
    return ActiveSyncResponse(active=True, job_id=job_id, progress=progress)


@router.get("/logs", response_model=SyncLogResponse)
async def get_logs(sync_log: SyncLog = Depends(get_sync_log)) -> SyncLogResponse:
    entries = await sync_log.all()
    return SyncLogResponse(entries=list(reversed(entries)))


@router.delete("/logs", status_code=204)
async def clear_logs(sync_log: SyncLog = Depends(get_sync_log)) -> None:
    await sync_log.clear()
    logger.info("Sync log cleared")


@router.get("/config", response_model=FeedConfigResponse)
async def get_feed_config(settings: Settings = Depends(get_settings)) -> FeedConfigResponse:
    return FeedConfigResponse(
        url=settings.feed_url,
        sku_column=settings.feed_sku_column,
        stock_column=settings.feed_stock_column,
        verify_tls=settings.feed_verify_tls,
        sync_enabled=settings.sync_enabled,
        sync_interval_minutes=settings.sync_interval_minutes,
        batch_size=settings.sync_batch_size,
    )
