"""Pytest configuration and fixtures."""

from typing import Any, Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from stock_sync_service.api.dependencies import get_dispatcher, get_state_store
from stock_sync_service.catalog.memory import InMemoryCatalog
from stock_sync_service.config import Settings, get_settings
from stock_sync_service.infrastructure.state_store import InMemoryStateStore
from stock_sync_service.main import create_app
from stock_sync_service.models import FeedConfiguration
from stock_sync_service.services.feed_fetcher import CsvFeedFetcher
from stock_sync_service.services.job_tracker import SyncJobTracker
from stock_sync_service.services.sync_log import SyncLog

FEED_URL = "https://feeds.example.com/stock.csv"


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        feed_url=FEED_URL,
        feed_sku_column="Artnr",
        feed_stock_column="Lagerbestand",
        sync_enabled=True,
        sync_batch_size=50,
        redis_host="localhost",
        redis_port=6379,
    )


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def tracker(state_store: InMemoryStateStore, test_settings: Settings) -> SyncJobTracker:
    return SyncJobTracker.from_settings(state_store, test_settings)


@pytest.fixture
def sync_log(state_store: InMemoryStateStore, test_settings: Settings) -> SyncLog:
    return SyncLog(state_store, key=f"{test_settings.state_key_prefix}:log", capacity=10)


@pytest.fixture
def feed_config(test_settings: Settings) -> FeedConfiguration:
    return FeedConfiguration.from_settings(test_settings)


@pytest.fixture
def sample_feed() -> bytes:
    """Feed with one matched, one unmatched and one non-numeric row."""
    return b"Artnr,Lagerbestand\nA1,5\nA2,0\nA3,x\n"


@pytest.fixture
def catalog() -> InMemoryCatalog:
    """Catalog that knows A1 and A3 but not A2."""
    return InMemoryCatalog.with_skus("A1", "A3")


@pytest.fixture
def make_fetcher() -> Callable[..., CsvFeedFetcher]:
    """Build a fetcher whose HTTP transport always answers with ``body``."""

    def factory(body: bytes, status_code: int = 200) -> CsvFeedFetcher:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, content=body)

        return CsvFeedFetcher(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def dispatched() -> list[str]:
    """Job ids handed to the background dispatcher."""
    return []


@pytest.fixture
def app(
    test_settings: Settings,
    state_store: InMemoryStateStore,
    dispatched: list[str],
) -> Any:
    """Create test application."""

    def get_test_settings() -> Settings:
        return test_settings

    async def get_test_store() -> InMemoryStateStore:
        return state_store

    def get_test_dispatcher():
        return dispatched.append

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_state_store] = get_test_store
    app.dependency_overrides[get_dispatcher] = get_test_dispatcher
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)
