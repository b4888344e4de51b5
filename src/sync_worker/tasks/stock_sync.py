"""Stock reconciliation tasks."""

import asyncio

import structlog
from celery import shared_task

from stock_sync_service.catalog import Catalog
from stock_sync_service.catalog.sql import SqlCatalog
from stock_sync_service.config import Settings, get_settings
from stock_sync_service.infrastructure.database.connection import catalog_session
from stock_sync_service.infrastructure.redis import RedisStateStore, open_redis
from stock_sync_service.infrastructure.state_store import StateStore
from stock_sync_service.models import FeedConfiguration
from stock_sync_service.services.job_tracker import SyncJobTracker
from stock_sync_service.services.reconciliation import ReconciliationEngine

logger = structlog.get_logger()


async def run_claimed_job(
    job_id: str,
    store: StateStore,
    catalog: Catalog,
    settings: Settings,
) -> dict:
    """Run a job whose single-flight slot has already been claimed."""
    engine = ReconciliationEngine.build(catalog, store, settings)
    result = await engine.run(job_id, FeedConfiguration.from_settings(settings))
    return {"job_id": job_id, **result.to_dict()}


async def claim_scheduled_job(store: StateStore, settings: Settings) -> str | None:
    tracker = SyncJobTracker.from_settings(store, settings)
    return await tracker.start(scheduled=True)


async def _run_job(job_id: str, settings: Settings) -> dict:
    async with open_redis(settings.redis_url) as client:
        store = RedisStateStore(client)
        async with catalog_session(settings) as session:
            return await run_claimed_job(job_id, store, SqlCatalog(session), settings)


async def _run_scheduled(settings: Settings) -> dict:
    async with open_redis(settings.redis_url) as client:
        store = RedisStateStore(client)
        job_id = await claim_scheduled_job(store, settings)
        if job_id is None:
            return {"skipped": True, "reason": "already_running"}

        async with catalog_session(settings) as session:
            return await run_claimed_job(job_id, store, SqlCatalog(session), settings)


@shared_task(bind=True)
def run_stock_sync(self, job_id: str) -> dict:
    """
    Execute a sync job claimed by the API.

    Not retried: a failed run is final and the next scheduled run is the
    retry.

    Args:
        job_id: Job created by ``SyncJobTracker.start``

    Returns:
        dict: Sync result
    """
    logger.info("Running manual stock sync", job_id=job_id)
    return asyncio.run(_run_job(job_id, get_settings()))


@shared_task(bind=True)
def scheduled_stock_sync(self) -> dict:
    """
    Periodic sync triggered by beat.

    No-op while scheduled sync is disabled, and silently skipped while
    another job is active.

    Returns:
        dict: Sync result, or the reason the run was skipped
    """
    settings = get_settings()
    if not settings.sync_enabled:
        logger.debug("Scheduled stock sync disabled")
        return {"skipped": True, "reason": "disabled"}

    logger.info("Starting scheduled stock sync")
    return asyncio.run(_run_scheduled(settings))
