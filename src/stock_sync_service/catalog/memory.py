"""Dict-backed catalog for tests and local demos."""

from dataclasses import dataclass, field

from stock_sync_service.exceptions import CatalogError


@dataclass
class StockRecord:
    """Stored stock state of one product."""

    ref: int
    sku: str
    stock_quantity: int | None = None
    stock_status: str | None = None


@dataclass
class InMemoryProduct:
    """Working copy of a record; changes land in the catalog on ``save``."""

    catalog: "InMemoryCatalog"
    ref: int
    sku: str
    stock_quantity: int | None = None
    stock_status: str | None = None

    def set_stock(self, quantity: int, status: str) -> None:
        self.stock_quantity = quantity
        self.stock_status = status

    async def save(self) -> None:
        self.catalog._persist(self)


@dataclass
class InMemoryCatalog:
    records: dict[int, StockRecord] = field(default_factory=dict)
    failing_refs: set[int] = field(default_factory=set)
    lookups: int = 0
    cache_drops: int = 0
    _loaded: dict[int, InMemoryProduct] = field(default_factory=dict, repr=False)

    @classmethod
    def with_skus(cls, *skus: str) -> "InMemoryCatalog":
        catalog = cls()
        for sku in skus:
            catalog.add(sku)
        return catalog

    def add(self, sku: str, stock_quantity: int | None = None) -> int:
        ref = len(self.records) + 1
        self.records[ref] = StockRecord(ref=ref, sku=sku, stock_quantity=stock_quantity)
        return ref

    def record_for(self, sku: str) -> StockRecord | None:
        return next((r for r in self.records.values() if r.sku == sku), None)

    async def find_by_sku(self, sku: str) -> int | None:
        self.lookups += 1
        record = self.record_for(sku)
        return record.ref if record else None

    async def bulk_list_skus(self) -> list[tuple[str, int]]:
        return [(record.sku, record.ref) for record in self.records.values()]

    async def get(self, ref: int) -> InMemoryProduct | None:
        if ref in self._loaded:
            return self._loaded[ref]
        record = self.records.get(ref)
        if record is None:
            return None
        product = InMemoryProduct(
            catalog=self,
            ref=record.ref,
            sku=record.sku,
            stock_quantity=record.stock_quantity,
            stock_status=record.stock_status,
        )
        self._loaded[ref] = product
        return product

    def drop_cache(self) -> None:
        self._loaded.clear()
        self.cache_drops += 1

    @property
    def cached_count(self) -> int:
        return len(self._loaded)

    def _persist(self, product: InMemoryProduct) -> None:
        if product.ref in self.failing_refs:
            raise CatalogError(f"Could not save product with SKU \"{product.sku}\".")
        record = self.records[product.ref]
        record.stock_quantity = product.stock_quantity
        record.stock_status = product.stock_status
