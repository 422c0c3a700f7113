"""
Social media namespace: citizen posts relevant to an incident, ranked by the
relevance scorer.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from ..core.models import (
    IncidentContext,
    ProviderOutcome,
    ProviderSuccess,
    ResolutionRequest,
    ScorableItem,
)
from ..core.scorer import RelevanceScorer

logger = logging.getLogger(__name__)

POST_TEMPLATES = (
    "Need medical supplies in {location} #emergency",
    "Offering transportation help for evacuation #disasterhelp",
    "Water shortage reported in {location} area",
    "Rescue teams needed at {location} #urgent",
    "Food distribution point set up at {location}",
)

POST_LOCATIONS = ("Manhattan", "Brooklyn", "Queens", "Bronx", "Staten Island")


@dataclass(frozen=True)
class SocialPost:
    id: str
    user: str
    post: str
    timestamp: datetime
    platform: str
    priority: str
    keywords: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "post": self.post,
            "timestamp": self.timestamp.isoformat(),
            "platform": self.platform,
            "priority": self.priority,
            "keywords": list(self.keywords),
        }

    def to_scorable(self) -> ScorableItem:
        return ScorableItem(
            item_id=self.id,
            priority=self.priority,
            body=self.post,
            timestamp=self.timestamp,
            keywords=frozenset(self.keywords),
            extra=self.to_dict(),
        )

    def mentions_location(self, location: str) -> bool:
        return bool(location) and location.lower() in self.post.lower()

    def mentions_keyword(self, keyword: str) -> bool:
        keyword = keyword.lower()
        return keyword in self.post.lower() or any(keyword in k.lower() for k in self.keywords)


class SocialMediaFeed:
    """
    Social media posts available to the service.

    Built once at startup and injected; optionally generates synthetic posts
    in simulation mode.
    """

    name = "social_feed"

    def __init__(
        self,
        posts: Iterable[SocialPost],
        scorer: RelevanceScorer | None = None,
        simulation_mode: bool = False,
        rng: random.Random | None = None,
    ):
        self._posts = tuple(posts)
        self._scorer = scorer or RelevanceScorer()
        self._simulation_mode = simulation_mode
        self._rng = rng or random.Random()

    @property
    def posts(self) -> tuple[SocialPost, ...]:
        return self._posts

    @classmethod
    def default(
        cls,
        scorer: RelevanceScorer | None = None,
        simulation_mode: bool = False,
        now: datetime | None = None,
    ) -> SocialMediaFeed:
        now = now or datetime.now(UTC)
        posts = [
            SocialPost(
                id="1",
                user="citizen1",
                post="#floodrelief Need food and water in Lower East Side NYC",
                timestamp=now - timedelta(minutes=30),
                platform="twitter",
                priority="high",
                keywords=("floodrelief", "food", "water"),
            ),
            SocialPost(
                id="2",
                user="helper123",
                post="Offering shelter in Brooklyn for flood victims. DM me #disasterhelp",
                timestamp=now - timedelta(minutes=45),
                platform="twitter",
                priority="medium",
                keywords=("shelter", "disasterhelp"),
            ),
            SocialPost(
                id="3",
                user="emergencyalert",
                post="URGENT: Water rising rapidly in Manhattan financial district. Evacuate immediately!",
                timestamp=now - timedelta(minutes=15),
                platform="twitter",
                priority="urgent",
                keywords=("urgent", "evacuate", "water", "manhattan"),
            ),
            SocialPost(
                id="4",
                user="redcross_ny",
                post="Emergency shelter opened at 123 Main St, Brooklyn. Capacity for 200 people.",
                timestamp=now - timedelta(hours=1),
                platform="twitter",
                priority="high",
                keywords=("shelter", "emergency", "brooklyn"),
            ),
        ]
        return cls(posts, scorer=scorer, simulation_mode=simulation_mode)

    def relevant_to(self, context: IncidentContext) -> list[SocialPost]:
        """Posts matching the incident's primary place name or any of its tags."""
        place = (context.location_name or "").split(",")[0].strip()
        relevant = []
        for post in self._posts:
            location_match = post.mentions_location(place)
            tag_match = any(post.mentions_keyword(tag) for tag in context.tags if tag)
            if location_match or tag_match:
                relevant.append(post)
        return relevant

    def collect(self, context: IncidentContext, now: datetime | None = None) -> list[dict[str, Any]]:
        """
        Relevant posts, highest relevance first, each tagged with its
        relevance_score and the incident id.
        """
        ranked = self._scorer.rank(
            (post.to_scorable() for post in self.relevant_to(context)), context, now
        )
        return [
            {
                **item.extra,
                "relevance_score": round(score, 4),
                "disaster_id": context.incident_id,
            }
            for item, score in ranked
        ]

    async def attempt(self, request: ResolutionRequest) -> ProviderOutcome:
        return ProviderSuccess(value=self.collect(request.context))

    def search(
        self,
        keyword: str | None = None,
        location: str | None = None,
        priority: str | None = None,
    ) -> list[dict[str, Any]]:
        """Ad-hoc filtered view of the feed."""
        posts = list(self._posts)
        if keyword:
            posts = [p for p in posts if p.mentions_keyword(keyword)]
        if location:
            posts = [p for p in posts if p.mentions_location(location)]
        if priority:
            posts = [p for p in posts if p.priority == priority]

        results = [p.to_dict() for p in posts]
        if self._simulation_mode and self._rng.random() > 0.7:
            results.insert(0, self.generate_post().to_dict())
        return results

    def generate_post(self, now: datetime | None = None) -> SocialPost:
        """A synthetic post built from the templates."""
        now = now or datetime.now(UTC)
        template = self._rng.choice(POST_TEMPLATES)
        return SocialPost(
            id=str(int(now.timestamp() * 1000)),
            user=f"user_{self._rng.randrange(1000)}",
            post=template.format(location=self._rng.choice(POST_LOCATIONS)),
            timestamp=now,
            platform="twitter",
            priority=self._rng.choice(("urgent", "high", "medium")),
            keywords=("emergency", "help", "disaster"),
        )


class EmptyFeedFallback:
    """No posts when the feed cannot be read."""

    name = "empty"

    def produce(self, request: ResolutionRequest, reason: str) -> list[dict[str, Any]]:
        return []
