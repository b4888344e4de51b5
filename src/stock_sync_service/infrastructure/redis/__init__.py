"""Redis-backed state store for job snapshots, the active-job pointer and the log."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator

import orjson
import redis.asyncio as aioredis
import structlog

from stock_sync_service.config import get_settings

logger = structlog.get_logger()

_redis_client: aioredis.Redis | None = None

# Deletes KEYS[1] only while it still holds ARGV[1].
_COMPARE_AND_DELETE = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _create_client(url: str) -> aioredis.Redis:
    return aioredis.from_url(
        url,
        decode_responses=False,
        socket_connect_timeout=2,
        socket_timeout=5,
        retry_on_timeout=True,
    )


async def get_redis_client() -> aioredis.Redis | None:
    """Get or create the global async Redis client used by the API process."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        try:
            _redis_client = _create_client(settings.redis_url)
            await _redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning("Redis unavailable, job state disabled", error=str(e))
            _redis_client = None
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


@asynccontextmanager
async def open_redis(url: str | None = None) -> AsyncGenerator[aioredis.Redis, None]:
    """Short-lived client bound to the current event loop (worker tasks)."""
    client = _create_client(url or get_settings().redis_url)
    try:
        yield client
    finally:
        await client.aclose()


class RedisStateStore:
    """State store on Redis with orjson serialization.

    Unlike a cache, failures here propagate: a lost write to the active-job
    pointer would break the single-flight guarantee.
    """

    LOCK_TIMEOUT_SECONDS = 10
    LOCK_BLOCKING_TIMEOUT_SECONDS = 5

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def get(self, key: str) -> Any | None:
        data = await self.client.get(key)
        if data is None:
            return None
        return orjson.loads(data)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        await self.client.set(key, orjson.dumps(value), ex=ttl_seconds or None)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def delete_if_equals(self, key: str, expected: Any) -> bool:
        deleted = await self.client.eval(
            _COMPARE_AND_DELETE, 1, key, orjson.dumps(expected)
        )
        return bool(deleted)

    @asynccontextmanager
    async def lock(self, name: str) -> AsyncIterator[None]:
        async with self.client.lock(
            name,
            timeout=self.LOCK_TIMEOUT_SECONDS,
            blocking_timeout=self.LOCK_BLOCKING_TIMEOUT_SECONDS,
        ):
            yield

    async def append_bounded(self, key: str, value: Any, capacity: int) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.rpush(key, orjson.dumps(value))
            pipe.ltrim(key, -capacity, -1)
            await pipe.execute()

    async def get_list(self, key: str) -> list[Any]:
        items = await self.client.lrange(key, 0, -1)
        return [orjson.loads(item) for item in items]

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception as e:
            logger.warning("Redis ping failed", error=str(e))
            return False
