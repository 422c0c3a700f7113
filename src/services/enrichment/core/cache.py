"""
TTL Cache

Key/value cache with absolute expiry, used by the resolver to make
resolution idempotent within a namespace's TTL window.

The cache is an optimization, never a correctness dependency: every backend
fault degrades to a miss (get) or a no-op (put, sweep) and is logged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from src.common.telemetry import trace_async

from .models import CacheEntry

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


@runtime_checkable
class CacheBackend(Protocol):
    """Storage behind the TTL cache."""

    async def fetch(self, key: str) -> CacheEntry | None:
        """Return the stored entry (expired or not), or None."""
        ...

    async def upsert(self, entry: CacheEntry) -> None:
        """Insert or overwrite the entry for entry.key."""
        ...

    async def delete(self, key: str) -> None:
        ...

    async def delete_expired(self, now: datetime) -> int:
        """Delete entries with expires_at < now; return how many went."""
        ...

    async def close(self) -> None:
        ...


@dataclass
class CacheStats:
    """Statistics for cache operations."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    expired_reads: int = 0
    swept: int = 0
    errors: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "writes": self.writes,
            "expired_reads": self.expired_reads,
            "swept": self.swept,
            "errors": self.errors,
            "hit_rate": round(self.hit_rate, 4),
        }


class TTLCache:
    """
    Self-cleaning TTL cache over a pluggable backend.

    - get(): an expired entry is a miss and is deleted on the way out
    - put(): upsert with expires_at = now + ttl, last write wins
    - sweep(): bulk delete of expired entries, run on a schedule
    """

    def __init__(
        self,
        backend: CacheBackend,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            backend: Storage backend
            clock: Returns the current aware datetime (injectable for tests)
        """
        self._backend = backend
        self._clock = clock
        self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        return self._stats

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss, expiry or backend fault."""
        try:
            entry = await self._backend.fetch(key)
        except Exception as e:
            self._stats.errors += 1
            self._stats.misses += 1
            logger.warning(f"Cache retrieval failed for key {key}: {e}")
            return None

        if entry is None:
            self._stats.misses += 1
            return None

        if entry.is_expired(self._clock()):
            self._stats.expired_reads += 1
            self._stats.misses += 1
            try:
                await self._backend.delete(key)
            except Exception as e:
                self._stats.errors += 1
                logger.warning(f"Failed to delete expired cache key {key}: {e}")
            return None

        self._stats.hits += 1
        return entry.value

    async def put(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """
        Store value under key for ttl_seconds.

        Returns:
            True if the backend accepted the write
        """
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        entry = CacheEntry(
            key=key,
            value=value,
            expires_at=self._clock() + timedelta(seconds=ttl_seconds),
        )
        try:
            await self._backend.upsert(entry)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache storage failed for key {key}: {e}")
            return False

        self._stats.writes += 1
        return True

    @trace_async("enrichment.cache.sweep")
    async def sweep(self) -> int:
        """Delete every expired entry. Returns the number removed (0 on fault)."""
        try:
            removed = await self._backend.delete_expired(self._clock())
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Failed to clear expired cache: {e}")
            return 0

        self._stats.swept += removed
        logger.info(f"Expired cache entries cleared: {removed}")
        return removed

    async def close(self) -> None:
        try:
            await self._backend.close()
        except Exception as e:
            logger.warning(f"Error closing cache backend: {e}")
