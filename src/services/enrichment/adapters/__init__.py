"""
Storage adapters: cache backends and incident context sources.
"""

from .cache import (
    MemoryCacheBackend,
    PostgresCacheBackend,
    RedisCacheBackend,
    check_redis_health,
    create_redis_client,
)
from .database import (
    IncidentContextSource,
    InMemoryIncidentStore,
    PostgresIncidentStore,
    check_db_health,
    create_db_pool,
)

__all__ = [
    "IncidentContextSource",
    "InMemoryIncidentStore",
    "MemoryCacheBackend",
    "PostgresCacheBackend",
    "PostgresIncidentStore",
    "RedisCacheBackend",
    "check_db_health",
    "check_redis_health",
    "create_db_pool",
    "create_redis_client",
]
