"""
Updates namespace: official updates for an incident, aggregated from every
source at once (union strategy).
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from ..core.models import IncidentContext, ProviderOutcome, ProviderSuccess, ResolutionRequest
from ..exceptions import ProviderError

logger = logging.getLogger(__name__)


def sort_newest_first(updates: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order updates by ISO timestamp, newest first."""
    return sorted(
        updates,
        key=lambda u: datetime.fromisoformat(u["timestamp"]),
        reverse=True,
    )


class FemaUpdatesScraper:
    """Scrapes `.news-item` blocks from the FEMA news page."""

    name = "fema"

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str = "https://www.fema.gov/about/news-multimedia/press-releases",
        max_items: int = 3,
    ):
        self._http = http
        self._url = url
        self._max_items = max_items

    def parse(self, html: str, now: datetime | None = None) -> list[dict[str, Any]]:
        """Extract up to max_items updates that have both a title and a summary."""
        timestamp = (now or datetime.now(UTC)).isoformat()
        soup = BeautifulSoup(html, "html.parser")
        updates = []

        for index, item in enumerate(soup.select(".news-item")[: self._max_items]):
            title = item.select_one(".title")
            summary = item.select_one(".summary")
            link = item.find("a", href=True)
            if not title or not summary:
                continue
            title_text = title.get_text(strip=True)
            summary_text = summary.get_text(strip=True)
            if not title_text or not summary_text:
                continue
            updates.append(
                {
                    "id": f"fema_{index}",
                    "source": "FEMA",
                    "title": title_text,
                    "content": summary_text,
                    "url": urljoin(self._url, link["href"]) if link else self._url,
                    "timestamp": timestamp,
                    "priority": "high",
                }
            )

        return updates

    async def attempt(self, request: ResolutionRequest) -> ProviderOutcome:
        try:
            response = await self._http.get(
                self._url,
                headers={"User-Agent": "Mozilla/5.0 (compatible; DisasterEnrichment/0.1)"},
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"scrape failed: {e}") from e

        updates = self.parse(response.text)
        logger.debug(f"FEMA scrape found {len(updates)} updates")
        return ProviderSuccess(value=updates)


class RedCrossUpdatesFeed:
    """
    Current Red Cross operations notice.

    The Red Cross publishes no machine-readable feed, so this yields one
    standing notice stamped with the request time.
    """

    name = "red_cross"

    async def attempt(self, request: ResolutionRequest) -> ProviderOutcome:
        return ProviderSuccess(
            value=[
                {
                    "id": "redcross_current",
                    "source": "American Red Cross",
                    "title": "Disaster Relief Operations Active",
                    "content": "Red Cross teams are actively providing assistance in the affected areas.",
                    "url": "https://redcross.org",
                    "timestamp": datetime.now(UTC).isoformat(),
                    "priority": "medium",
                }
            ]
        )


@dataclass(frozen=True)
class CuratedUpdate:
    id: str
    source: str
    title: str
    content: str
    url: str
    timestamp: datetime
    priority: str

    @property
    def words(self) -> set[str]:
        text = f"{self.source} {self.title} {self.content}".lower()
        return set(re.findall(r"[a-z0-9]+", text))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "timestamp": self.timestamp.isoformat(),
            "priority": self.priority,
        }


class CuratedUpdates:
    """Static set of official updates served when no live source answers."""

    def __init__(self, updates: Iterable[CuratedUpdate]):
        self._updates = tuple(updates)

    def __iter__(self):
        return iter(self._updates)

    def __len__(self) -> int:
        return len(self._updates)

    @classmethod
    def default(cls, now: datetime | None = None) -> CuratedUpdates:
        now = now or datetime.now(UTC)
        return cls(
            [
                CuratedUpdate(
                    id="1",
                    source="FEMA",
                    title="Federal Emergency Declaration Issued",
                    content=(
                        "Federal emergency declaration has been issued for the affected areas. "
                        "Federal assistance is now available."
                    ),
                    url="https://fema.gov/emergency-declaration",
                    timestamp=now - timedelta(hours=2),
                    priority="high",
                ),
                CuratedUpdate(
                    id="2",
                    source="NYC Emergency Management",
                    title="Evacuation Centers Opened",
                    content=(
                        "Multiple evacuation centers have been opened throughout the city. "
                        "Transportation is being provided."
                    ),
                    url="https://nyc.gov/emergency-management",
                    timestamp=now - timedelta(hours=1),
                    priority="high",
                ),
                CuratedUpdate(
                    id="3",
                    source="Red Cross",
                    title="Disaster Relief Operations Underway",
                    content=(
                        "American Red Cross has deployed disaster relief workers and "
                        "emergency response vehicles to the area."
                    ),
                    url="https://redcross.org/disaster-relief",
                    timestamp=now - timedelta(hours=3),
                    priority="medium",
                ),
                CuratedUpdate(
                    id="4",
                    source="National Weather Service",
                    title="Weather Update and Forecast",
                    content="Current weather conditions and extended forecast for the disaster area.",
                    url="https://weather.gov/forecast",
                    timestamp=now - timedelta(minutes=30),
                    priority="medium",
                ),
            ]
        )

    def relevant_to(self, context: IncidentContext) -> list[CuratedUpdate]:
        """Updates whose content mentions an incident tag or location token."""
        tags = [t.lower() for t in context.tags if t]
        tokens = set(context.location_tokens)
        relevant = []
        for update in self._updates:
            content = update.content.lower()
            if any(tag in content for tag in tags) or tokens & update.words:
                relevant.append(update)
        return relevant


class CuratedUpdatesFallback:
    """
    Serves the curated updates relevant to the incident.

    In simulation mode each non-matching update is also included with
    probability 0.7, to make demo feeds look busier.
    """

    name = "curated"

    def __init__(
        self,
        curated: CuratedUpdates,
        simulation_mode: bool = False,
        rng: random.Random | None = None,
    ):
        self._curated = curated
        self._simulation_mode = simulation_mode
        self._rng = rng or random.Random()

    def produce(self, request: ResolutionRequest, reason: str) -> list[dict[str, Any]]:
        relevant = set(u.id for u in self._curated.relevant_to(request.context))
        selected = [
            u
            for u in self._curated
            if u.id in relevant or (self._simulation_mode and self._rng.random() > 0.3)
        ]
        return sort_newest_first(u.to_dict() for u in selected)
