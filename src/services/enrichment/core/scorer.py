"""
Relevance Scorer

Ranks transient content (social posts, official updates) against an
incident. Pure and deterministic: the same item, context and clock reading
always give the same score.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from .models import IncidentContext, ScorableItem


def _default_priority_weights() -> dict[str, float]:
    return {"urgent": 10.0, "high": 7.0, "medium": 5.0, "low": 2.0}


@dataclass(frozen=True)
class ScoringWeights:
    """Scoring constants. Unknown priorities weigh 0."""

    priority: dict[str, float] = field(default_factory=_default_priority_weights)
    tag_match: float = 5.0
    location_match: float = 3.0
    recency_max: float = 5.0
    recency_decay_per_hour: float = 1.0


class RelevanceScorer:
    """Weighted-sum relevance scoring."""

    def __init__(self, weights: ScoringWeights | None = None):
        self._weights = weights or ScoringWeights()

    def score(
        self,
        item: ScorableItem,
        context: IncidentContext,
        now: datetime | None = None,
    ) -> float:
        """
        Score one item.

        score = priority weight
              + tag_match for each incident tag found in the body
              + location_match for each location token found in the body
              + max(0, recency_max - hours_old * recency_decay_per_hour)
        """
        w = self._weights
        now = now or datetime.now(UTC)
        body = item.body.lower()

        total = w.priority.get(str(item.priority).lower(), 0.0)

        for tag in context.tags:
            if tag and tag.lower() in body:
                total += w.tag_match

        for token in context.location_tokens:
            if token in body:
                total += w.location_match

        # future-dated items count as brand new
        hours_old = max(0.0, (now - item.timestamp).total_seconds() / 3600)
        total += max(0.0, w.recency_max - hours_old * w.recency_decay_per_hour)

        return total

    def rank(
        self,
        items: Iterable[ScorableItem],
        context: IncidentContext,
        now: datetime | None = None,
    ) -> list[tuple[ScorableItem, float]]:
        """Items paired with their scores, highest first; ties keep input order."""
        now = now or datetime.now(UTC)
        scored = [(item, self.score(item, context, now)) for item in items]
        # sorted() is stable
        return sorted(scored, key=lambda pair: pair[1], reverse=True)
