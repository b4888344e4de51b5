"""PostgreSQL catalog adapter.

Reads and writes the ``products`` table of the shop database:

    products(id, sku, stock, stock_status)

Every ``save`` commits on its own; a failed run leaves earlier updates in place.
"""

from typing import Any

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stock_sync_service.exceptions import CatalogError

logger = structlog.get_logger()


class SqlProduct:
    """Product row loaded from the catalog."""

    def __init__(self, catalog: "SqlCatalog", product_id: int, sku: str, stock: int | None, stock_status: str | None):
        self.catalog = catalog
        self.id = product_id
        self.sku = sku
        self.stock = stock
        self.stock_status = stock_status

    def set_stock(self, quantity: int, status: str) -> None:
        self.stock = quantity
        self.stock_status = status

    async def save(self) -> None:
        await self.catalog.save_stock(self)


class SqlCatalog:
    """Catalog backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._loaded: dict[int, SqlProduct] = {}

    async def find_by_sku(self, sku: str) -> int | None:
        query = text("SELECT id FROM products WHERE sku = :sku LIMIT 1")
        result = await self.session.execute(query, {"sku": sku})
        return result.scalar()

    async def bulk_list_skus(self) -> list[tuple[str, int]]:
        """Fetch every (sku, id) pair in one query."""
        query = text("""
            SELECT sku, id
            FROM products
            WHERE sku IS NOT NULL AND sku <> ''
        """)
        result = await self.session.execute(query)
        return [(row.sku, row.id) for row in result.fetchall()]

    async def get(self, ref: Any) -> SqlProduct | None:
        if ref in self._loaded:
            return self._loaded[ref]

        query = text("""
            SELECT id, sku, stock, stock_status
            FROM products
            WHERE id = :id
        """)
        try:
            result = await self.session.execute(query, {"id": ref})
        except SQLAlchemyError as e:
            raise CatalogError(f"Could not load product {ref}: {e}") from e

        row = result.first()
        if row is None:
            return None

        product = SqlProduct(self, row.id, row.sku, row.stock, row.stock_status)
        self._loaded[ref] = product
        return product

    async def save_stock(self, product: SqlProduct) -> None:
        update_query = text("""
            UPDATE products
            SET stock = :stock,
                stock_status = :stock_status
            WHERE id = :id
        """)
        try:
            await self.session.execute(
                update_query,
                {
                    "id": product.id,
                    "stock": product.stock,
                    "stock_status": product.stock_status,
                },
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise CatalogError(f'Could not save product with SKU "{product.sku}": {e}') from e

        logger.debug("Updated product stock", sku=product.sku, stock=product.stock)

    def drop_cache(self) -> None:
        self._loaded.clear()
        self.session.expunge_all()
