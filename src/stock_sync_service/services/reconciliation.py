"""Reconciliation of catalog stock against the CSV feed.

A run walks fetch -> parse -> mapping -> sync, pushing a progress snapshot
at each phase and after every batch:

    fetch    10%
    parse    20%
    mapping  30%
    sync     30% + 70% * processed / total
    complete 100%
"""

import math
import re
from contextlib import suppress

import structlog

from shared.constants import (
    PERCENT_APPLY_SPAN,
    PERCENT_FETCH,
    PERCENT_MAPPING,
    PERCENT_PARSE,
    STOCK_STATUS_IN_STOCK,
    STOCK_STATUS_OUT_OF_STOCK,
    SYNC_BATCH_SIZE,
    SYNC_LOG_MAX_ERRORS,
)
from stock_sync_service.catalog import Catalog, ProductRef
from stock_sync_service.config import Settings
from stock_sync_service.exceptions import (
    CatalogError,
    ConfigError,
    FeedError,
    JobFinalizedError,
)
from stock_sync_service.infrastructure.state_store import StateStore
from stock_sync_service.models import (
    FeedConfiguration,
    FeedRow,
    JobStatus,
    JobStep,
    LogEntry,
    SyncResult,
)
from stock_sync_service.services.csv_parser import CsvStockParser
from stock_sync_service.services.feed_fetcher import CsvFeedFetcher
from stock_sync_service.services.job_tracker import SyncJobTracker
from stock_sync_service.services.product_index import ProductIndex
from stock_sync_service.services.sync_log import SyncLog

logger = structlog.get_logger()

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def coerce_quantity(raw: str) -> int:
    """Leading integer of ``raw``; 0 when there is none ("x" -> 0, "12.7" -> 12)."""
    match = _LEADING_INT.match(raw or "")
    return int(match.group(1)) if match else 0


def stock_status_for(quantity: int) -> str:
    return STOCK_STATUS_IN_STOCK if quantity > 0 else STOCK_STATUS_OUT_OF_STOCK


def progress_percent(processed: int, total: int) -> int:
    if total <= 0:
        return PERCENT_MAPPING
    # Halves round up.
    return PERCENT_MAPPING + math.floor(PERCENT_APPLY_SPAN * processed / total + 0.5)


def completion_message(updated: int, skipped: int) -> str:
    return f"Stock sync completed. Updated: {updated}, Skipped: {skipped}"


class ReconciliationEngine:
    """Applies feed quantities to the catalog, one batch at a time."""

    def __init__(
        self,
        catalog: Catalog,
        tracker: SyncJobTracker,
        sync_log: SyncLog,
        fetcher: CsvFeedFetcher | None = None,
        parser: CsvStockParser | None = None,
        batch_size: int = SYNC_BATCH_SIZE,
        log_failed_runs: bool = False,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.catalog = catalog
        self.tracker = tracker
        self.sync_log = sync_log
        self.fetcher = fetcher or CsvFeedFetcher()
        self.parser = parser or CsvStockParser()
        self.batch_size = batch_size
        self.log_failed_runs = log_failed_runs

    @classmethod
    def build(
        cls,
        catalog: Catalog,
        store: StateStore,
        settings: Settings,
        fetcher: CsvFeedFetcher | None = None,
    ) -> "ReconciliationEngine":
        return cls(
            catalog=catalog,
            tracker=SyncJobTracker.from_settings(store, settings),
            sync_log=SyncLog(
                store,
                key=f"{settings.state_key_prefix}:log",
                capacity=settings.sync_log_capacity,
            ),
            fetcher=fetcher,
            batch_size=settings.sync_batch_size,
            log_failed_runs=settings.log_failed_runs,
        )

    async def start_and_run(
        self, feed_config: FeedConfiguration, scheduled: bool = False
    ) -> SyncResult | None:
        """
        Claim the single-flight slot and run a tracked job in-process.

        A manual claim raises ``AlreadyRunningError`` while another job is
        active; a scheduled one returns None instead.
        """
        job_id = await self.tracker.start(scheduled=scheduled)
        if job_id is None:
            return None
        return await self.run(job_id, feed_config)

    async def run(self, job_id: str | None, feed_config: FeedConfiguration) -> SyncResult:
        """
        Execute one reconciliation.

        With ``job_id`` the run reports progress to the tracker and finishes
        the job; with None it runs untracked and only writes the log. An
        untracked run does not claim the single-flight slot.

        Feed failures end the run with an ``error`` snapshot and a failed
        result. Anything unexpected is recorded the same way and re-raised.
        """
        with structlog.contextvars.bound_contextvars(job_id=job_id):
            try:
                return await self._run(job_id, feed_config)
            except FeedError as e:
                logger.warning("Sync aborted", error=e.message, error_type=type(e).__name__)
                if job_id:
                    await self.tracker.fail(job_id, e.message)
                if self.log_failed_runs:
                    await self.sync_log.append(LogEntry(success=False, message=e.message))
                return SyncResult(success=False, message=e.message)
            except Exception as e:
                logger.exception("Sync crashed")
                if job_id:
                    with suppress(JobFinalizedError):
                        await self.tracker.fail(job_id, f"Sync failed: {e}")
                raise

    async def _run(self, job_id: str | None, feed_config: FeedConfiguration) -> SyncResult:
        if not feed_config.url:
            raise ConfigError("CSV URL is not configured.")

        await self._progress(
            job_id,
            status=JobStatus.RUNNING,
            step=JobStep.FETCH,
            percent=PERCENT_FETCH,
            message="Fetching CSV data...",
        )
        raw = await self.fetcher.fetch(
            feed_config.url,
            timeout=feed_config.timeout,
            verify_tls=feed_config.verify_tls,
        )

        await self._progress(
            job_id,
            step=JobStep.PARSE,
            percent=PERCENT_PARSE,
            message="Parsing CSV data...",
        )
        rows = self.parser.parse(raw, feed_config.sku_column, feed_config.stock_column)
        total = len(rows)

        await self._progress(
            job_id,
            step=JobStep.MAPPING,
            percent=PERCENT_MAPPING,
            message="Loading product database...",
            total=total,
        )
        index = await ProductIndex(self.catalog).build()

        updated = 0
        skipped = 0
        errors: list[str] = []
        for start in range(0, total, self.batch_size):
            for row in rows[start : start + self.batch_size]:
                reason = await self._apply_row(row, index)
                if reason is None:
                    updated += 1
                    continue
                skipped += 1
                if len(errors) < SYNC_LOG_MAX_ERRORS:
                    errors.append(reason)

            self.catalog.drop_cache()
            processed = updated + skipped
            logger.debug("Batch applied", processed=processed, total=total)
            await self._progress(
                job_id,
                step=JobStep.SYNC,
                percent=progress_percent(processed, total),
                message=f"Syncing products... {updated} updated, {skipped} skipped",
                updated=updated,
                skipped=skipped,
                total=total,
                processed=processed,
            )

        message = completion_message(updated, skipped)
        if job_id:
            await self.tracker.complete(
                job_id,
                message=message,
                updated=updated,
                skipped=skipped,
                total=total,
                processed=updated + skipped,
            )
        await self.sync_log.append(
            LogEntry(
                success=True,
                message=message,
                updated=updated,
                skipped=skipped,
                errors=errors,
            )
        )
        logger.info("Stock sync completed", updated=updated, skipped=skipped, total=total)

        return SyncResult(
            success=True,
            message=message,
            updated=updated,
            skipped=skipped,
            total=total,
            errors=errors,
        )

    async def _apply_row(self, row: FeedRow, index: dict[str, ProductRef]) -> str | None:
        """Write one row to the catalog; returns why the row was skipped, or None."""
        ref = index.get(row.sku)
        if ref is None:
            return f'Product with SKU "{row.sku}" not found.'

        quantity = coerce_quantity(row.quantity)
        try:
            product = await self.catalog.get(ref)
            if product is None:
                logger.warning("Could not load product", sku=row.sku)
                return f'Could not load product with SKU "{row.sku}".'
            product.set_stock(quantity, stock_status_for(quantity))
            await product.save()
        except CatalogError as e:
            logger.warning("Product update failed", sku=row.sku, error=e.message)
            return e.message
        return None

    async def _progress(self, job_id: str | None, **fields) -> None:
        if job_id:
            await self.tracker.update(job_id, **fields)
