"""Catalog collaborators: the product store the engine writes stock into."""

from collections.abc import Hashable
from typing import Protocol

ProductRef = Hashable


class Product(Protocol):
    """A loaded product whose stock can be changed and persisted."""

    def set_stock(self, quantity: int, status: str) -> None: ...

    async def save(self) -> None:
        """Persist pending changes; raises ``CatalogError`` on failure."""
        ...


class Catalog(Protocol):
    """Product store keyed by SKU."""

    async def find_by_sku(self, sku: str) -> ProductRef | None: ...

    async def bulk_list_skus(self) -> list[tuple[str, ProductRef]]: ...

    async def get(self, ref: ProductRef) -> Product | None: ...

    def drop_cache(self) -> None:
        """Forget products loaded so far; called after every batch."""
        ...


__all__ = ["Catalog", "Product", "ProductRef"]
