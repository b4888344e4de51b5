"""Business logic services."""

from stock_sync_service.services.csv_parser import CsvStockParser
from stock_sync_service.services.feed_fetcher import CsvFeedFetcher
from stock_sync_service.services.job_tracker import SyncJobTracker
from stock_sync_service.services.product_index import ProductIndex
from stock_sync_service.services.reconciliation import ReconciliationEngine
from stock_sync_service.services.sync_log import SyncLog

__all__ = [
    "CsvFeedFetcher",
    "CsvStockParser",
    "ProductIndex",
    "ReconciliationEngine",
    "SyncJobTracker",
    "SyncLog",
]
