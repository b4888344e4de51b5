"""Bounded history of past sync outcomes."""

from shared.constants import SYNC_LOG_CAPACITY
from stock_sync_service.infrastructure.state_store import StateStore
from stock_sync_service.models import LogEntry


class SyncLog:
    """Fixed-capacity log; the oldest entry is evicted first."""

    def __init__(self, store: StateStore, key: str, capacity: int = SYNC_LOG_CAPACITY):
        self.store = store
        self.key = key
        self.capacity = capacity

    async def append(self, entry: LogEntry) -> None:
        await self.store.append_bounded(self.key, entry.model_dump(mode="json"), self.capacity)

    async def all(self) -> list[LogEntry]:
        """Entries in insertion order (oldest first)."""
        return [LogEntry.model_validate(item) for item in await self.store.get_list(self.key)]

    async def clear(self) -> None:
        await self.store.delete(self.key)
