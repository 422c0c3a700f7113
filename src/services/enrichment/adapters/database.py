"""
Database adapter for the enrichment service.

Handles PostgreSQL pool management and read-only access to incident
context in the `disasters` table owned by the primary entity store.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from ..core.models import IncidentContext

if TYPE_CHECKING:
    import asyncpg

logger = logging.getLogger(__name__)


async def create_db_pool(
    postgres_url: str,
    min_size: int = 2,
    max_size: int = 10,
) -> asyncpg.Pool:
    """
    Create a PostgreSQL connection pool.

    Args:
        postgres_url: Connection URL
        min_size: Minimum connections
        max_size: Maximum connections
    """
    import asyncpg

    logger.info(f"Creating database pool (min={min_size}, max={max_size})")
    pool = await asyncpg.create_pool(
        postgres_url,
        min_size=min_size,
        max_size=max_size,
    )
    logger.info("Database pool created")
    return pool


async def check_db_health(pool: asyncpg.Pool) -> dict:
    """Check database health."""
    try:
        async with pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
        return {"connected": True, "pool_size": pool.get_size()}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"connected": False, "error": str(e)}


@runtime_checkable
class IncidentContextSource(Protocol):
    """Read-only view of incidents used to disambiguate resolutions."""

    async def get(self, incident_id: str) -> IncidentContext | None:
        ...


class PostgresIncidentStore:
    """Reads incident tags and location from the `disasters` table."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def get(self, incident_id: str) -> IncidentContext | None:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id::text AS id, tags, location_name
                FROM disasters
                WHERE id::text = $1
                """,
                incident_id,
            )
        if not row:
            return None
        return IncidentContext.from_row(row)


class InMemoryIncidentStore:
    """Incident context held in memory, seeded at startup."""

    def __init__(self, incidents: Iterable[IncidentContext] = ()):
        self._incidents: dict[str, IncidentContext] = {}
        for incident in incidents:
            self.add(incident)

    def add(self, incident: IncidentContext) -> None:
        if not incident.incident_id:
            raise ValueError("incident_id is required")
        self._incidents[incident.incident_id] = incident

    async def get(self, incident_id: str) -> IncidentContext | None:
        return self._incidents.get(incident_id)
