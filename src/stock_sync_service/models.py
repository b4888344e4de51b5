"""Data models shared by the engine, the tracker and the API."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from stock_sync_service.config import Settings


class JobStatus(str, Enum):
    """Lifecycle states of a sync job."""

    INIT = "init"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.ERROR)


class JobStep(str, Enum):
    """Pipeline step a job is currently in."""

    INIT = "init"
    FETCH = "fetch"
    PARSE = "parse"
    MAPPING = "mapping"
    SYNC = "sync"
    COMPLETE = "complete"


class SyncJob(BaseModel):
    """Progress snapshot of one reconciliation run."""

    model_config = ConfigDict(extra="forbid")

    id: str
    status: JobStatus = JobStatus.INIT
    step: JobStep = JobStep.INIT
    percent: int = Field(default=0, ge=0, le=100)
    message: str = ""
    updated: int = 0
    skipped: int = 0
    total: int = 0
    processed: int = 0
    is_scheduled: bool = False


class LogEntry(BaseModel):
    """Outcome of a past run kept in the sync log."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    success: bool
    message: str
    updated: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


@dataclass(frozen=True)
class FeedConfiguration:
    """Feed settings snapshotted once at job start."""

    url: str
    sku_column: str
    stock_column: str
    verify_tls: bool = True
    timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeedConfiguration":
        return cls(
            url=settings.feed_url.strip(),
            sku_column=settings.feed_sku_column,
            stock_column=settings.feed_stock_column,
            verify_tls=settings.feed_verify_tls,
            timeout=settings.feed_timeout_seconds,
        )


@dataclass(frozen=True)
class FeedRow:
    """One (sku, quantity) pair as read from the feed, both trimmed."""

    sku: str
    quantity: str


@dataclass
class SyncResult:
    """Summary returned by a reconciliation run."""

    success: bool
    message: str
    updated: int = 0
    skipped: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "updated": self.updated,
            "skipped": self.skipped,
            "total": self.total,
            "errors": list(self.errors),
        }
