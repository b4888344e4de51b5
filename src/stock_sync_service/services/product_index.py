"""In-memory SKU lookup built from one bulk catalog read."""

import structlog

from stock_sync_service.catalog import Catalog, ProductRef

logger = structlog.get_logger()


class ProductIndex:
    """SKU to product reference map, so each feed row costs a dict lookup
    instead of a catalog query."""

    def __init__(self, catalog: Catalog):
        self.catalog = catalog

    async def build(self) -> dict[str, ProductRef]:
        index: dict[str, ProductRef] = {}
        blank = 0
        for sku, ref in await self.catalog.bulk_list_skus():
            key = (sku or "").strip()
            if not key:
                blank += 1
                continue
            index.setdefault(key, ref)

        logger.info("Product index built", skus=len(index), blank_skus=blank)
        return index
