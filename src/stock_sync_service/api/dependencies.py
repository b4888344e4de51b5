"""FastAPI dependencies wiring the job state store, tracker, log and dispatcher."""

from typing import Callable

import structlog
from fastapi import Depends, HTTPException

from stock_sync_service.config import Settings, get_settings
from stock_sync_service.infrastructure.redis import RedisStateStore, get_redis_client
from stock_sync_service.infrastructure.state_store import StateStore
from stock_sync_service.services.job_tracker import SyncJobTracker
from stock_sync_service.services.sync_log import SyncLog

logger = structlog.get_logger()

JobDispatcher = Callable[[str], None]

RUN_STOCK_SYNC_TASK = "sync_worker.tasks.stock_sync.run_stock_sync"


async def get_state_store() -> StateStore:
    client = await get_redis_client()
    if client is None:
        raise HTTPException(status_code=503, detail="Job state store unavailable")
    return RedisStateStore(client)


def get_tracker(
    store: StateStore = Depends(get_state_store),
    settings: Settings = Depends(get_settings),
) -> SyncJobTracker:
    return SyncJobTracker.from_settings(store, settings)


def get_sync_log(
    store: StateStore = Depends(get_state_store),
    settings: Settings = Depends(get_settings),
) -> SyncLog:
    return SyncLog(
        store,
        key=f"{settings.state_key_prefix}:log",
        capacity=settings.sync_log_capacity,
    )


def celery_dispatch(job_id: str) -> None:
    """Queue a claimed job on the sync worker."""
    from sync_worker.main import app as celery_app

    celery_app.send_task(RUN_STOCK_SYNC_TASK, args=[job_id])
    logger.info("Sync job dispatched", job_id=job_id)


def get_dispatcher() -> JobDispatcher:
    return celery_dispatch
