"""
Tests for the enrichment runtime (in-memory stores, no network).
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from src.services.enrichment.adapters.cache import MemoryCacheBackend
from src.services.enrichment.adapters.database import InMemoryIncidentStore
from src.services.enrichment.config import EnrichmentServiceConfig
from src.services.enrichment.core.models import Fallback, IncidentContext, Resolved, RoomId
from src.services.enrichment.exceptions import IncidentNotFoundError, InputValidationError
from src.services.enrichment.runtime import EnrichmentRuntime


class RecordingConnection:
    def __init__(self) -> None:
        self.frames = []

    async def send_json(self, data):
        self.frames.append(data)


INCIDENT = IncidentContext(incident_id="1", tags=("water",), location_name="Manhattan, NYC")


async def _build(**overrides):
    config = EnrichmentServiceConfig(fema_enabled=False, **overrides)
    return EnrichmentRuntime.build(config, incidents=InMemoryIncidentStore([INCIDENT]))


@pytest_asyncio.fixture
async def runtime():
    runtime = await _build()
    yield runtime
    await runtime.close()


class TestIncidentLookup:
    @pytest.mark.asyncio
    async def test_known_incident(self, runtime):
        assert await runtime.get_incident("1") == INCIDENT

    @pytest.mark.asyncio
    async def test_unknown_incident(self, runtime):
        with pytest.raises(IncidentNotFoundError):
            await runtime.get_incident("999")

    @pytest.mark.asyncio
    async def test_blank_id(self, runtime):
        with pytest.raises(InputValidationError):
            await runtime.get_incident("  ")


class TestGeocode:
    @pytest.mark.asyncio
    async def test_unconfigured_uses_pattern_matching(self, runtime):
        result = await runtime.geocode("Flooding near Manhattan, NYC, need food")

        assert isinstance(result, Fallback)
        assert result.value["extracted_location"] == "Manhattan, NYC"
        assert result.value["mock"] is True
        assert result.cached is False
        assert result.value["coordinates"]["lat"] == 40.7831
        assert result.value["coordinates"]["lng"] == -73.9712
        assert result.value["coordinates"]["service"] == "mock"

    @pytest.mark.asyncio
    async def test_equivalent_text_hits_cache(self):
        """The second request is answered from the cache without writing again."""
        backend = MemoryCacheBackend()
        backend.upsert = AsyncMock(wraps=backend.upsert)
        runtime = EnrichmentRuntime.build(
            EnrichmentServiceConfig(fema_enabled=False),
            cache_backend=backend,
            incidents=InMemoryIncidentStore([INCIDENT]),
        )
        try:
            first = await runtime.geocode("Flooding near Manhattan, NYC, need food")
            result = await runtime.geocode("  FLOODING near   Manhattan, NYC, need food ")
        finally:
            await runtime.close()

        assert result.cached is True
        assert isinstance(result, Fallback)
        assert result.value == first.value
        assert result.value["coordinates"]["service"] == "mock"
        assert backend.upsert.await_count == 1
        assert runtime.cache.stats.writes == 1

    @pytest.mark.asyncio
    async def test_blank_text(self, runtime):
        with pytest.raises(InputValidationError):
            await runtime.geocode("   ")


class TestVerifyImage:
    @pytest.mark.asyncio
    async def test_fallback_verdict_is_cached(self, runtime):
        first = await runtime.verify_image("1", "https://img.test/stock-flood.jpg")
        second = await runtime.verify_image("1", "https://img.test/stock-flood.jpg")

        assert first.value["status"] == "suspicious"
        assert first.cached is False
        assert second.cached is True
        assert second.value["authenticity_score"] == first.value["authenticity_score"]

    @pytest.mark.asyncio
    async def test_unknown_incident(self, runtime):
        with pytest.raises(IncidentNotFoundError):
            await runtime.verify_image("999", "https://img.test/a.jpg")

    @pytest.mark.asyncio
    async def test_empty_image_url(self, runtime):
        with pytest.raises(InputValidationError):
            await runtime.verify_image("1", "")


class TestOfficialUpdates:
    @pytest.mark.asyncio
    async def test_red_cross_only(self, runtime):
        updates = await runtime.official_updates("1")
        assert [u["id"] for u in updates] == ["redcross_current"]

    @pytest.mark.asyncio
    async def test_no_sources_uses_curated(self):
        runtime = await _build(red_cross_enabled=False)
        try:
            updates = await runtime.official_updates("1")
        finally:
            await runtime.close()

        # "nyc" matches the NYC Emergency Management update
        assert [u["id"] for u in updates] == ["2"]


class TestSocialMedia:
    @pytest.mark.asyncio
    async def test_reports_are_pushed_to_room(self, runtime):
        member = RecordingConnection()
        outsider = RecordingConnection()
        runtime.hub.connect("member", member)
        runtime.hub.connect("outsider", outsider)
        runtime.hub.join("member", RoomId.disaster("1"))

        posts = await runtime.social_media_reports("1")

        assert [p["id"] for p in posts] == ["3", "1"]
        assert len(member.frames) == 1
        frame = member.frames[0]
        assert frame["event"] == "social_media_updated"
        assert frame["room"] == "disaster_1"
        assert frame["data"]["disaster_id"] == "1"
        assert [p["id"] for p in frame["data"]["posts"]] == ["3", "1"]
        assert outsider.frames == []


class TestIncidentEvents:
    @pytest.mark.asyncio
    async def test_publish_to_room(self, runtime):
        member = RecordingConnection()
        runtime.hub.connect("member", member)
        runtime.hub.join("member", RoomId.disaster("1"))

        delivered = await runtime.publish_incident_event("1", "disaster_updated", {"title": "Flood"})

        assert delivered == 1
        assert member.frames[0]["event"] == "disaster_updated"
        assert member.frames[0]["data"] == {"title": "Flood"}

    @pytest.mark.asyncio
    async def test_empty_room(self, runtime):
        assert await runtime.publish_incident_event("1", "resources_updated", {}) == 0

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, runtime):
        with pytest.raises(InputValidationError):
            await runtime.publish_incident_event("1", "disaster_deleted", {})


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_runs_background_tasks(self, runtime):
        runtime.start()

        assert runtime.sweep_task.running
        assert runtime.heartbeat_task.running

    @pytest.mark.asyncio
    async def test_stats(self, runtime):
        await runtime.geocode("Shelter open in Brooklyn tonight")

        stats = runtime.stats

        assert set(stats["resolvers"]) == {
            "geocoding",
            "image_verification",
            "official_updates",
            "social_media",
        }
        assert stats["resolvers"]["geocoding"]["fallbacks"] == 1
        assert stats["hub"]["active_connections"] == 0
        assert stats["tasks"]["cache_sweep"]["running"] is False

    @pytest.mark.asyncio
    async def test_readiness_without_external_stores(self, runtime):
        ready, checks = await runtime.readiness()

        assert ready is True
        assert checks["database"] == {"enabled": False}
        assert checks["redis"] == {"enabled": False}
        assert checks["cache_backend"] == "memory"
