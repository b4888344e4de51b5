"""Key-value state store contract and a process-local implementation.

Job snapshots, the active-job pointer and the sync log all live behind this
interface. Values are JSON-compatible and serialized with orjson in every
implementation, so callers never share mutable state with the store.
"""

import asyncio
import time
from collections import defaultdict
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Protocol

import orjson


class StateStore(Protocol):
    """Flat key-value store with expirations, a named lock and bounded lists."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def delete_if_equals(self, key: str, expected: Any) -> bool: ...

    def lock(self, name: str) -> AbstractAsyncContextManager[None]: ...

    async def append_bounded(self, key: str, value: Any, capacity: int) -> None: ...

    async def get_list(self, key: str) -> list[Any]: ...

    async def ping(self) -> bool: ...


class InMemoryStateStore:
    """Process-local store for tests and single-process development."""

    def __init__(self) -> None:
        self._values: dict[str, tuple[bytes, float | None]] = {}
        self._lists: dict[str, list[bytes]] = {}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _expired(self, key: str) -> bool:
        entry = self._values.get(key)
        if entry is None:
            return True
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._values[key]
            return True
        return False

    async def get(self, key: str) -> Any | None:
        if self._expired(key):
            return None
        return orjson.loads(self._values[key][0])

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        self._values[key] = (orjson.dumps(value), expires_at)

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._lists.pop(key, None)

    async def delete_if_equals(self, key: str, expected: Any) -> bool:
        if self._expired(key):
            return False
        if self._values[key][0] != orjson.dumps(expected):
            return False
        del self._values[key]
        return True

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        async with self._locks[name]:
            yield

    async def append_bounded(self, key: str, value: Any, capacity: int) -> None:
        items = self._lists.setdefault(key, [])
        items.append(orjson.dumps(value))
        del items[:-capacity]

    async def get_list(self, key: str) -> list[Any]:
        return [orjson.loads(item) for item in self._lists.get(key, [])]

    async def ping(self) -> bool:
        return True
