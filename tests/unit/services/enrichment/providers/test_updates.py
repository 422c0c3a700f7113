"""
Tests for the official updates namespace.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import httpx
import pytest

from src.services.enrichment.core.models import (
    Fallback,
    IncidentContext,
    ResolutionRequest,
    Resolved,
)
from src.services.enrichment.core.resolver import (
    NamespacePolicy,
    ProviderChainResolver,
    normalize_reference,
)
from src.services.enrichment.exceptions import ProviderError
from src.services.enrichment.providers.updates import (
    CuratedUpdates,
    CuratedUpdatesFallback,
    FemaUpdatesScraper,
    RedCrossUpdatesFeed,
    sort_newest_first,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

FEMA_HTML = """
<html><body>
  <div class="news-item">
    <h3 class="title">Disaster Declaration Approved</h3>
    <p class="summary">Federal aid has been made available.</p>
    <a href="/press-release/20260301/declaration">Read more</a>
  </div>
  <div class="news-item">
    <h3 class="title">Missing summary</h3>
  </div>
  <div class="news-item">
    <h3 class="title">Shelters Open</h3>
    <p class="summary">Shelters are open across the county.</p>
  </div>
  <div class="news-item">
    <h3 class="title">Fourth item</h3>
    <p class="summary">Beyond the item limit.</p>
  </div>
</body></html>
"""


def _request(context):
    return ResolutionRequest(namespace="official_updates", payload=context.incident_id, context=context)


def _http(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSortNewestFirst:
    def test_orders_by_timestamp(self):
        updates = [
            {"id": "old", "timestamp": (NOW - timedelta(hours=3)).isoformat()},
            {"id": "new", "timestamp": NOW.isoformat()},
            {"id": "mid", "timestamp": (NOW - timedelta(hours=1)).isoformat()},
        ]
        assert [u["id"] for u in sort_newest_first(updates)] == ["new", "mid", "old"]


class TestFemaUpdatesScraper:
    """Tests for FEMA page parsing."""

    def test_parse(self):
        scraper = FemaUpdatesScraper(MagicMock(), url="https://www.fema.gov/news", max_items=3)

        updates = scraper.parse(FEMA_HTML, now=NOW)

        assert updates == [
            {
                "id": "fema_0",
                "source": "FEMA",
                "title": "Disaster Declaration Approved",
                "content": "Federal aid has been made available.",
                "url": "https://www.fema.gov/press-release/20260301/declaration",
                "timestamp": NOW.isoformat(),
                "priority": "high",
            },
            {
                "id": "fema_2",
                "source": "FEMA",
                "title": "Shelters Open",
                "content": "Shelters are open across the county.",
                "url": "https://www.fema.gov/news",
                "timestamp": NOW.isoformat(),
                "priority": "high",
            },
        ]

    def test_parse_respects_max_items(self):
        scraper = FemaUpdatesScraper(MagicMock(), max_items=1)
        assert len(scraper.parse(FEMA_HTML, now=NOW)) == 1

    def test_parse_page_without_items(self):
        scraper = FemaUpdatesScraper(MagicMock())
        assert scraper.parse("<html><body><p>Maintenance</p></body></html>") == []

    @pytest.mark.asyncio
    async def test_attempt_fetches_page(self):
        scraper = FemaUpdatesScraper(
            _http(lambda request: httpx.Response(200, text=FEMA_HTML)),
            url="https://www.fema.gov/news",
        )

        outcome = await scraper.attempt(_request(IncidentContext(incident_id="1")))

        assert [u["title"] for u in outcome.value] == ["Disaster Declaration Approved", "Shelters Open"]

    @pytest.mark.asyncio
    async def test_attempt_http_error(self):
        scraper = FemaUpdatesScraper(_http(lambda request: httpx.Response(503)))
        with pytest.raises(ProviderError):
            await scraper.attempt(_request(IncidentContext(incident_id="1")))


class TestCuratedUpdates:
    def test_default_has_four_updates(self):
        assert len(CuratedUpdates.default(NOW)) == 4

    def test_relevant_by_tag_in_content(self):
        curated = CuratedUpdates.default(NOW)
        relevant = curated.relevant_to(IncidentContext(incident_id="1", tags=("emergency",)))
        assert [u.id for u in relevant] == ["1", "3"]

    def test_relevant_by_location_token(self):
        curated = CuratedUpdates.default(NOW)
        relevant = curated.relevant_to(IncidentContext(incident_id="1", location_name="NYC"))
        assert [u.id for u in relevant] == ["2"]

    def test_nothing_relevant(self):
        curated = CuratedUpdates.default(NOW)
        context = IncidentContext(incident_id="1", tags=("earthquake",), location_name="Reno, NV")
        assert curated.relevant_to(context) == []


class TestCuratedUpdatesFallback:
    def test_relevant_only_newest_first(self):
        fallback = CuratedUpdatesFallback(CuratedUpdates.default(NOW))
        value = fallback.produce(
            _request(IncidentContext(incident_id="1", tags=("emergency",))), "all providers failed"
        )
        assert [u["id"] for u in value] == ["1", "3"]

    def test_simulation_adds_random_updates(self):
        rng = MagicMock()
        rng.random.return_value = 0.5
        fallback = CuratedUpdatesFallback(CuratedUpdates.default(NOW), simulation_mode=True, rng=rng)

        value = fallback.produce(_request(IncidentContext(incident_id="1")), "")

        assert [u["id"] for u in value] == ["4", "2", "1", "3"]

    def test_simulation_can_skip_updates(self):
        rng = MagicMock()
        rng.random.return_value = 0.1
        fallback = CuratedUpdatesFallback(CuratedUpdates.default(NOW), simulation_mode=True, rng=rng)

        assert fallback.produce(_request(IncidentContext(incident_id="1")), "") == []


class TestUpdatesUnion:
    """Aggregation across every source at once."""

    def _resolver(self, providers):
        return ProviderChainResolver(
            NamespacePolicy(
                name="official_updates",
                ttl_seconds=1800,
                strategy="union",
                normalizer=normalize_reference,
            ),
            providers=providers,
            fallback=CuratedUpdatesFallback(CuratedUpdates.default(NOW)),
        )

    @pytest.mark.asyncio
    async def test_all_sources_contribute(self):
        fema = FemaUpdatesScraper(_http(lambda request: httpx.Response(200, text=FEMA_HTML)))

        result = await self._resolver([fema, RedCrossUpdatesFeed()]).resolve(
            _request(IncidentContext(incident_id="7"))
        )

        assert isinstance(result, Resolved)
        assert result.source_provider == "fema+red_cross"
        assert result.confidence == 1.0
        assert {u["source"] for u in result.value} == {"FEMA", "American Red Cross"}
        assert len(result.value) == 3

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_other_sources(self):
        fema = FemaUpdatesScraper(_http(lambda request: httpx.Response(500)))

        result = await self._resolver([fema, RedCrossUpdatesFeed()]).resolve(
            _request(IncidentContext(incident_id="7"))
        )

        assert isinstance(result, Resolved)
        assert result.source_provider == "red_cross"
        assert result.confidence == 0.5
        assert [u["id"] for u in result.value] == ["redcross_current"]

    @pytest.mark.asyncio
    async def test_no_items_anywhere_uses_curated(self):
        fema = FemaUpdatesScraper(_http(lambda request: httpx.Response(200, text="<html></html>")))

        result = await self._resolver([fema]).resolve(
            _request(IncidentContext(incident_id="7", tags=("emergency",)))
        )

        assert isinstance(result, Fallback)
        assert [u["id"] for u in result.value] == ["1", "3"]
