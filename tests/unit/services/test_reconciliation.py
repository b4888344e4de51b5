"""Unit tests for the reconciliation engine."""

from typing import Any

import pytest

from stock_sync_service.catalog.memory import InMemoryCatalog
from stock_sync_service.exceptions import AlreadyRunningError, JobNotFoundError
from stock_sync_service.models import FeedConfiguration, JobStatus, JobStep, SyncJob
from stock_sync_service.services.job_tracker import SyncJobTracker
from stock_sync_service.services.reconciliation import (
    ReconciliationEngine,
    coerce_quantity,
    progress_percent,
    stock_status_for,
)
from stock_sync_service.services.sync_log import SyncLog


class RecordingTracker(SyncJobTracker):
    """Tracker that keeps every snapshot it writes."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.history: list[SyncJob] = []

    async def update(self, job_id: str, **fields: Any) -> SyncJob:
        job = await super().update(job_id, **fields)
        self.history.append(job)
        return job


class ExplodingCatalog(InMemoryCatalog):
    async def bulk_list_skus(self) -> list[tuple[str, int]]:
        raise RuntimeError("catalog offline")


@pytest.fixture
def recording_tracker(state_store) -> RecordingTracker:
    return RecordingTracker(state_store)


def build_engine(catalog, tracker, sync_log, fetcher, **kwargs) -> ReconciliationEngine:
    return ReconciliationEngine(
        catalog=catalog,
        tracker=tracker,
        sync_log=sync_log,
        fetcher=fetcher,
        **kwargs,
    )


def feed_of(rows: int) -> bytes:
    lines = ["Artnr,Lagerbestand"] + [f"SKU-{n},{n % 7}" for n in range(rows)]
    return ("\n".join(lines) + "\n").encode()


class TestQuantityCoercion:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("15", 15), ("0", 0), ("x", 0), ("", 0), (" 7 ", 7), ("12.7", 12), ("-3", -3), ("5 pcs", 5)],
    )
    def test_coerce(self, raw: str, expected: int) -> None:
        assert coerce_quantity(raw) == expected

    def test_status_from_quantity(self) -> None:
        assert stock_status_for(1) == "in_stock"
        assert stock_status_for(0) == "out_of_stock"
        assert stock_status_for(-2) == "out_of_stock"


class TestProgressPercent:
    def test_start_and_end_of_apply_span(self) -> None:
        assert progress_percent(0, 200) == 30
        assert progress_percent(200, 200) == 100

    def test_rounds_to_nearest(self) -> None:
        assert progress_percent(1, 3) == 53  # 30 + 23.33
        assert progress_percent(2, 3) == 77  # 30 + 46.67

    def test_halves_round_up(self) -> None:
        assert progress_percent(3, 4) == 83  # 30 + 52.5
        assert progress_percent(1, 4) == 48  # 30 + 17.5


class TestTrackedRun:
    @pytest.mark.asyncio
    async def test_example_feed(
        self, catalog, recording_tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        job_id = await recording_tracker.start()
        engine = build_engine(catalog, recording_tracker, sync_log, make_fetcher(sample_feed))

        result = await engine.run(job_id, feed_config)

        assert result.success is True
        assert (result.updated, result.skipped, result.total) == (2, 1, 3)

        a1 = catalog.record_for("A1")
        a3 = catalog.record_for("A3")
        assert (a1.stock_quantity, a1.stock_status) == (5, "in_stock")
        assert (a3.stock_quantity, a3.stock_status) == (0, "out_of_stock")

        job = await recording_tracker.snapshot(job_id)
        assert job.status == JobStatus.COMPLETE
        assert job.percent == 100
        assert (job.updated, job.skipped, job.total, job.processed) == (2, 1, 3, 3)
        assert job.message == "Stock sync completed. Updated: 2, Skipped: 1"
        assert await recording_tracker.active() is None

    @pytest.mark.asyncio
    async def test_counts_add_up(self, state_store, sync_log, make_fetcher, feed_config) -> None:
        catalog = InMemoryCatalog.with_skus(*(f"SKU-{n}" for n in range(0, 230, 2)))
        tracker = SyncJobTracker(state_store)
        job_id = await tracker.start()

        result = await build_engine(catalog, tracker, sync_log, make_fetcher(feed_of(230))).run(
            job_id, feed_config
        )

        assert result.updated + result.skipped == result.total == 230
        assert result.updated == 115

    @pytest.mark.asyncio
    async def test_steps_and_monotonic_percent(
        self, recording_tracker, sync_log, make_fetcher, feed_config
    ) -> None:
        catalog = InMemoryCatalog.with_skus(*(f"SKU-{n}" for n in range(120)))
        job_id = await recording_tracker.start()
        engine = build_engine(catalog, recording_tracker, sync_log, make_fetcher(feed_of(120)))

        await engine.run(job_id, feed_config)

        history = recording_tracker.history
        steps = [job.step for job in history]
        assert steps[:3] == [JobStep.FETCH, JobStep.PARSE, JobStep.MAPPING]
        assert steps[3:6] == [JobStep.SYNC] * 3  # 120 rows in batches of 50
        assert steps[-1] == JobStep.COMPLETE

        percents = [job.percent for job in history]
        assert percents[:3] == [10, 20, 30]
        assert percents == sorted(percents)
        assert history[-1].percent == 100
        assert history[-1].status == JobStatus.COMPLETE

        assert [job.processed for job in history[3:6]] == [50, 100, 120]
        assert all(job.total == 120 for job in history[2:])

    @pytest.mark.asyncio
    async def test_cache_dropped_after_each_batch(
        self, tracker, sync_log, make_fetcher, feed_config
    ) -> None:
        catalog = InMemoryCatalog.with_skus(*(f"SKU-{n}" for n in range(120)))
        job_id = await tracker.start()
        engine = build_engine(catalog, tracker, sync_log, make_fetcher(feed_of(120)), batch_size=50)

        await engine.run(job_id, feed_config)

        assert catalog.cache_drops == 3
        assert catalog.cached_count == 0

    @pytest.mark.asyncio
    async def test_appends_success_to_log(
        self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        job_id = await tracker.start()
        await build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed)).run(job_id, feed_config)

        entries = await sync_log.all()
        assert len(entries) == 1
        assert entries[0].success is True
        assert (entries[0].updated, entries[0].skipped) == (2, 1)
        assert entries[0].errors == ['Product with SKU "A2" not found.']

    @pytest.mark.asyncio
    async def test_save_failure_counts_as_skipped(
        self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        catalog.failing_refs.add(catalog.record_for("A1").ref)
        job_id = await tracker.start()

        result = await build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed)).run(
            job_id, feed_config
        )

        assert result.success is True
        assert (result.updated, result.skipped) == (1, 2)
        assert catalog.record_for("A1").stock_quantity is None
        assert result.errors == [
            'Could not save product with SKU "A1".',
            'Product with SKU "A2" not found.',
        ]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(
        self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        for _ in range(2):
            job_id = await tracker.start()
            result = await build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed)).run(
                job_id, feed_config
            )
            assert (result.updated, result.skipped) == (2, 1)

        assert catalog.record_for("A1").stock_quantity == 5
        assert catalog.record_for("A3").stock_quantity == 0


class TestFailedRun:
    @pytest.mark.asyncio
    async def test_empty_url_is_config_error(self, catalog, tracker, sync_log, make_fetcher) -> None:
        job_id = await tracker.start()
        config = FeedConfiguration(url="", sku_column="Artnr", stock_column="Lagerbestand")

        result = await build_engine(catalog, tracker, sync_log, make_fetcher(b"")).run(job_id, config)

        assert result.success is False
        assert result.message == "CSV URL is not configured."
        job = await tracker.snapshot(job_id)
        assert job.status == JobStatus.ERROR
        assert job.step == JobStep.INIT
        assert job.percent == 0
        assert await sync_log.all() == []
        assert await tracker.active() is None

    @pytest.mark.asyncio
    async def test_http_error_releases_job(
        self, catalog, tracker, sync_log, make_fetcher, feed_config
    ) -> None:
        job_id = await tracker.start()

        result = await build_engine(
            catalog, tracker, sync_log, make_fetcher(b"gone", status_code=404)
        ).run(job_id, feed_config)

        assert result.success is False
        job = await tracker.snapshot(job_id)
        assert job.status == JobStatus.ERROR
        assert job.step == JobStep.FETCH
        assert "404" in job.message
        assert await tracker.active() is None
        assert await tracker.start() != job_id

    @pytest.mark.asyncio
    async def test_column_mismatch(self, catalog, tracker, sync_log, make_fetcher, feed_config) -> None:
        job_id = await tracker.start()

        await build_engine(catalog, tracker, sync_log, make_fetcher(b"sku,qty\nA1,1\n")).run(
            job_id, feed_config
        )

        job = await tracker.snapshot(job_id)
        assert job.status == JobStatus.ERROR
        assert job.step == JobStep.PARSE
        assert "Artnr" in job.message and "qty" in job.message

    @pytest.mark.asyncio
    async def test_failed_runs_logged_when_enabled(
        self, catalog, tracker, sync_log, make_fetcher, feed_config
    ) -> None:
        job_id = await tracker.start()
        engine = build_engine(
            catalog, tracker, sync_log, make_fetcher(b""), log_failed_runs=True
        )

        await engine.run(job_id, feed_config)

        entries = await sync_log.all()
        assert len(entries) == 1
        assert entries[0].success is False
        assert entries[0].message == "CSV file is empty."

    @pytest.mark.asyncio
    async def test_unexpected_error_marks_job_and_reraises(
        self, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        job_id = await tracker.start()
        engine = build_engine(ExplodingCatalog(), tracker, sync_log, make_fetcher(sample_feed))

        with pytest.raises(RuntimeError):
            await engine.run(job_id, feed_config)

        job = await tracker.snapshot(job_id)
        assert job.status == JobStatus.ERROR
        assert "catalog offline" in job.message
        assert await tracker.active() is None

    @pytest.mark.asyncio
    async def test_unknown_job_id(self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed) -> None:
        engine = build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed))
        with pytest.raises(JobNotFoundError):
            await engine.run("sync_missing", feed_config)


class TestUntrackedRun:
    @pytest.mark.asyncio
    async def test_runs_without_job(
        self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        result = await build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed)).run(
            None, feed_config
        )

        assert (result.updated, result.skipped) == (2, 1)
        assert await tracker.active() is None
        assert len(await sync_log.all()) == 1

    def test_batch_size_must_be_positive(self, catalog, tracker, sync_log) -> None:
        with pytest.raises(ValueError):
            ReconciliationEngine(catalog, tracker, sync_log, batch_size=0)


class TestSkipReasons:
    @pytest.mark.asyncio
    async def test_reasons_are_capped(self, tracker, sync_log, make_fetcher, feed_config) -> None:
        engine = build_engine(InMemoryCatalog(), tracker, sync_log, make_fetcher(feed_of(120)))

        result = await engine.run(None, feed_config)

        assert result.skipped == 120
        assert len(result.errors) == 100
        assert result.errors[0] == 'Product with SKU "SKU-0" not found.'
        assert len((await sync_log.all())[0].errors) == 100


class TestStartAndRun:
    @pytest.mark.asyncio
    async def test_claims_and_finishes_job(
        self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        engine = build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed))

        result = await engine.start_and_run(feed_config)

        assert (result.updated, result.skipped) == (2, 1)
        assert await tracker.active() is None
        assert catalog.record_for("A1").stock_quantity == 5

    @pytest.mark.asyncio
    async def test_refuses_while_job_running(
        self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        running = await tracker.start()
        await tracker.update(running, status=JobStatus.RUNNING)
        engine = build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed))

        with pytest.raises(AlreadyRunningError) as exc_info:
            await engine.start_and_run(feed_config)

        assert exc_info.value.active_job_id == running
        assert catalog.record_for("A1").stock_quantity is None
        assert await sync_log.all() == []
        assert (await tracker.active())[0] == running

    @pytest.mark.asyncio
    async def test_scheduled_claim_skips_while_job_running(
        self, catalog, tracker, sync_log, make_fetcher, feed_config, sample_feed
    ) -> None:
        await tracker.start()
        engine = build_engine(catalog, tracker, sync_log, make_fetcher(sample_feed))

        assert await engine.start_and_run(feed_config, scheduled=True) is None
        assert catalog.record_for("A1").stock_quantity is None
