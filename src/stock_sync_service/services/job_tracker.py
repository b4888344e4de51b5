"""Job identity, single-flight coordination and progress snapshots."""

import uuid
from typing import Any

import structlog

from shared.constants import JOB_PROGRESS_TTL, JOB_TERMINAL_GRACE, PERCENT_COMPLETE
from stock_sync_service.config import Settings
from stock_sync_service.exceptions import (
    AlreadyRunningError,
    JobFinalizedError,
    JobNotFoundError,
)
from stock_sync_service.infrastructure.state_store import StateStore
from stock_sync_service.models import JobStatus, JobStep, SyncJob

logger = structlog.get_logger()


class SyncJobTracker:
    """
    Tracks sync jobs in a key-value store.

    At most one job is active at a time. The active-job pointer is claimed
    under a store lock, so two concurrent ``start`` calls cannot both pass
    the "is one running" check. A pointer whose snapshot is terminal or has
    expired counts as free.

    Snapshots are merged on update: fields not passed keep their last value.
    Terminal snapshots (complete, error) are immutable.
    """

    def __init__(
        self,
        store: StateStore,
        key_prefix: str = "stock_sync",
        progress_ttl: int = JOB_PROGRESS_TTL,
        terminal_grace: int = JOB_TERMINAL_GRACE,
    ):
        self.store = store
        self.key_prefix = key_prefix
        self.progress_ttl = progress_ttl
        self.terminal_grace = terminal_grace

    @classmethod
    def from_settings(cls, store: StateStore, settings: Settings) -> "SyncJobTracker":
        return cls(
            store,
            key_prefix=settings.state_key_prefix,
            progress_ttl=settings.job_progress_ttl_seconds,
            terminal_grace=settings.job_terminal_grace_seconds,
        )

    @property
    def pointer_key(self) -> str:
        return f"{self.key_prefix}:active_job"

    @property
    def lock_key(self) -> str:
        return f"{self.key_prefix}:start_lock"

    def job_key(self, job_id: str) -> str:
        return f"{self.key_prefix}:job:{job_id}"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, scheduled: bool = False) -> str | None:
        """
        Claim the single-flight slot and create a job in status ``init``.

        Returns:
            The new job id, or None when a scheduled trigger finds a job
            already active.

        Raises:
            AlreadyRunningError: a manual trigger found a job already active.
        """
        async with self.store.lock(self.lock_key):
            active_id = await self.store.get(self.pointer_key)
            if active_id:
                current = await self._load(active_id)
                if current is not None and not current.status.is_terminal:
                    if scheduled:
                        logger.info("Scheduled sync skipped, job already active", active_job_id=active_id)
                        return None
                    raise AlreadyRunningError(active_id)

            job_id = f"sync_{uuid.uuid4().hex}"
            job = SyncJob(
                id=job_id,
                status=JobStatus.INIT,
                step=JobStep.INIT,
                message="Starting sync...",
                is_scheduled=scheduled,
            )
            await self._save(job)
            await self.store.set(self.pointer_key, job_id)

        logger.info("Sync job created", job_id=job_id, scheduled=scheduled)
        return job_id

    async def snapshot(self, job_id: str) -> SyncJob:
        job = await self._load(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def update(self, job_id: str, **fields: Any) -> SyncJob:
        """Overlay ``fields`` onto the last snapshot of a non-terminal job."""
        current = await self.snapshot(job_id)
        if current.status.is_terminal:
            raise JobFinalizedError(job_id, current.status.value)

        fields.pop("id", None)
        if fields.get("percent") is not None and fields["percent"] < current.percent:
            fields["percent"] = current.percent

        job = SyncJob.model_validate({**current.model_dump(), **fields})
        await self._save(job)
        return job

    async def complete(self, job_id: str, **fields: Any) -> SyncJob:
        job = await self.update(
            job_id,
            **{
                **fields,
                "status": JobStatus.COMPLETE,
                "step": JobStep.COMPLETE,
                "percent": PERCENT_COMPLETE,
            },
        )
        await self.release(job_id)
        logger.info("Sync job complete", job_id=job_id, updated=job.updated, skipped=job.skipped)
        return job

    async def fail(self, job_id: str, message: str) -> SyncJob:
        job = await self.update(job_id, status=JobStatus.ERROR, message=message)
        await self.release(job_id)
        logger.warning("Sync job failed", job_id=job_id, message=message)
        return job

    async def release(self, job_id: str) -> bool:
        """Clear the active pointer if it still points at ``job_id``."""
        return await self.store.delete_if_equals(self.pointer_key, job_id)

    async def active(self) -> tuple[str, SyncJob] | None:
        """The in-flight job, clearing a pointer left at a finished job."""
        active_id = await self.store.get(self.pointer_key)
        if not active_id:
            return None

        job = await self._load(active_id)
        if job is None or job.status.is_terminal:
            await self.store.delete_if_equals(self.pointer_key, active_id)
            return None
        return active_id, job

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    async def _load(self, job_id: str) -> SyncJob | None:
        data = await self.store.get(self.job_key(job_id))
        if data is None:
            return None
        return SyncJob.model_validate(data)

    async def _save(self, job: SyncJob) -> None:
        ttl = self.terminal_grace if job.status.is_terminal else self.progress_ttl
        await self.store.set(self.job_key(job.id), job.model_dump(mode="json"), ttl_seconds=ttl)
