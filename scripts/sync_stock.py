#!/usr/bin/env python3
"""CLI script to run one tracked stock sync against the catalog database."""

import argparse
import asyncio
import dataclasses
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from stock_sync_service.catalog.sql import SqlCatalog
from stock_sync_service.config import get_settings
from stock_sync_service.exceptions import AlreadyRunningError
from stock_sync_service.infrastructure.database.connection import catalog_session
from stock_sync_service.infrastructure.redis import RedisStateStore, open_redis
from stock_sync_service.log_config import configure_logging
from stock_sync_service.models import FeedConfiguration
from stock_sync_service.services.reconciliation import ReconciliationEngine

logger = structlog.get_logger()


async def main(args: argparse.Namespace) -> int:
    """Main sync function."""
    settings = get_settings()
    configure_logging(settings)

    feed_config = FeedConfiguration.from_settings(settings)
    overrides = {
        "url": args.url,
        "sku_column": args.sku_column,
        "stock_column": args.stock_column,
    }
    feed_config = dataclasses.replace(
        feed_config, **{k: v for k, v in overrides.items() if v is not None}
    )
    if args.insecure:
        feed_config = dataclasses.replace(feed_config, verify_tls=False)

    logger.info("Starting stock sync", url=feed_config.url)

    async with open_redis(settings.redis_url) as client, catalog_session(settings) as session:
        engine = ReconciliationEngine.build(SqlCatalog(session), RedisStateStore(client), settings)
        try:
            result = await engine.start_and_run(feed_config)
        except AlreadyRunningError as e:
            logger.error("Stock sync already running", active_job_id=e.active_job_id)
            return 2

    logger.info("Stock sync finished", **result.to_dict())
    return 0 if result.success else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sync catalog stock from the CSV feed")
    parser.add_argument("--url", help="Feed URL (defaults to FEED_URL)")
    parser.add_argument("--sku-column", help="SKU column name")
    parser.add_argument("--stock-column", help="Stock column name")
    parser.add_argument("--insecure", action="store_true", help="Skip TLS verification")
    sys.exit(asyncio.run(main(parser.parse_args())))
