"""
Cache backends for the TTL cache.

- MemoryCacheBackend: process-local dict (development, tests)
- PostgresCacheBackend: the durable `cache` table (key, value jsonb, expires_at)
- RedisCacheBackend: Redis with native key expiry
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ..core.models import CacheEntry

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


class MemoryCacheBackend:
    """In-memory cache storage keyed by cache key."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def fetch(self, key: str) -> CacheEntry | None:
        async with self._lock:
            return self._entries.get(key)

    async def upsert(self, entry: CacheEntry) -> None:
        async with self._lock:
            self._entries[entry.key] = entry

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def delete_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at < now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    async def close(self) -> None:
        async with self._lock:
            self._entries.clear()


CACHE_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS cache (
    key text PRIMARY KEY,
    value jsonb NOT NULL,
    expires_at timestamptz NOT NULL,
    created_at timestamptz DEFAULT now()
);
CREATE INDEX IF NOT EXISTS cache_expires_idx ON cache(expires_at);
"""


class PostgresCacheBackend:
    """
    Cache storage in the PostgreSQL `cache` table.

    Values are stored as jsonb, so they must be JSON-serializable.
    """

    def __init__(self, pool: asyncpg.Pool, owns_pool: bool = False):
        """
        Args:
            pool: asyncpg connection pool
            owns_pool: Close the pool when the backend is closed
        """
        self._pool = pool
        self._owns_pool = owns_pool

    async def ensure_schema(self) -> None:
        """Create the cache table and its expiry index if missing."""
        async with self._pool.acquire() as conn:
            await conn.execute(CACHE_TABLE_DDL)

    async def fetch(self, key: str) -> CacheEntry | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT key, value, expires_at FROM cache WHERE key = $1",
                key,
            )
        if not row:
            return None
        value = row["value"]
        if isinstance(value, str):
            value = json.loads(value)
        return CacheEntry(key=row["key"], value=value, expires_at=row["expires_at"])

    async def upsert(self, entry: CacheEntry) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO cache (key, value, expires_at)
                VALUES ($1, $2::jsonb, $3)
                ON CONFLICT (key) DO UPDATE SET
                    value = EXCLUDED.value,
                    expires_at = EXCLUDED.expires_at
                """,
                entry.key,
                json.dumps(entry.value),
                entry.expires_at,
            )

    async def delete(self, key: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute("DELETE FROM cache WHERE key = $1", key)

    async def delete_expired(self, now: datetime) -> int:
        async with self._pool.acquire() as conn:
            status = await conn.execute("DELETE FROM cache WHERE expires_at < $1", now)
        # asyncpg returns the command tag, e.g. "DELETE 12"
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError):
            return 0

    async def close(self) -> None:
        if self._owns_pool:
            await self._pool.close()


class RedisCacheBackend:
    """
    Cache storage in Redis.

    Redis expires keys on its own, so delete_expired() has nothing to do.
    The absolute expiry is stored alongside the value so TTLCache applies
    the same staleness rule as with the other backends.
    """

    def __init__(self, client: Any, key_prefix: str = "enrich:"):
        """
        Args:
            client: redis.asyncio client created with decode_responses=True
            key_prefix: Prefix for every key
        """
        self._client = client
        self._key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def fetch(self, key: str) -> CacheEntry | None:
        data = await self._client.get(self._make_key(key))
        if not data:
            return None
        parsed = json.loads(data)
        return CacheEntry(
            key=key,
            value=parsed["value"],
            expires_at=datetime.fromisoformat(parsed["expires_at"]),
        )

    async def upsert(self, entry: CacheEntry) -> None:
        ttl = max(1, math.ceil((entry.expires_at - datetime.now(UTC)).total_seconds()))
        data = json.dumps({"value": entry.value, "expires_at": entry.expires_at.isoformat()})
        await self._client.set(self._make_key(entry.key), data, ex=ttl)

    async def delete(self, key: str) -> None:
        await self._client.delete(self._make_key(key))

    async def delete_expired(self, now: datetime) -> int:
        return 0

    async def close(self) -> None:
        await self._client.aclose()


async def create_redis_client(redis_url: str) -> Any:
    """
    Create a Redis client and verify the connection.

    Args:
        redis_url: Redis connection URL
    """
    import redis.asyncio as redis

    logger.info("Connecting to Redis")
    client = redis.from_url(redis_url, decode_responses=True)
    await client.ping()
    logger.info("Redis connected")
    return client


async def check_redis_health(client: Any) -> dict:
    """Check Redis health."""
    try:
        await client.ping()
        return {"connected": True}
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return {"connected": False, "error": str(e)}
