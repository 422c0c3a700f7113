"""
Enrichment Models

Data classes shared by the resolver, the cache, the scorer and the hub.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Union

from ..exceptions import InvalidRoomError


class Namespace(str, Enum):
    """Resolution domains, each with its own providers, TTL and fallback."""

    GEOCODING = "geocoding"
    VERIFICATION = "image_verification"
    UPDATES = "official_updates"
    SOCIAL_MEDIA = "social_media"


@dataclass(frozen=True)
class CacheEntry:
    """A stored value and the absolute time it stops being valid."""

    key: str
    value: Any
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class IncidentContext:
    """
    Disambiguation context drawn from the primary entity a request concerns.
    """

    incident_id: str | None = None
    tags: tuple[str, ...] = ()
    location_name: str | None = None

    @property
    def discriminator(self) -> str:
        """Part of the context that distinguishes cache entries."""
        return self.incident_id or ""

    @property
    def location_tokens(self) -> list[str]:
        """Location name split on commas and whitespace, lowercased."""
        if not self.location_name:
            return []
        return [t for t in re.split(r"[,\s]+", self.location_name.lower()) if t]

    def to_dict(self) -> dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "tags": list(self.tags),
            "location_name": self.location_name,
        }

    @classmethod
    def from_row(cls, row: Any) -> IncidentContext:
        """Build from a `disasters` row (asyncpg Record or mapping)."""
        return cls(
            incident_id=str(row["id"]),
            tags=tuple(row["tags"] or ()),
            location_name=row["location_name"],
        )


@dataclass(frozen=True)
class ResolutionRequest:
    """
    A namespaced request for enrichment.

    `payload` is opaque to the resolver: free text for geocoding, an image
    reference for verification, an incident id for update aggregation.
    """

    namespace: str
    payload: str
    context: IncidentContext = field(default_factory=IncidentContext)


@dataclass(frozen=True)
class Resolved:
    """An external provider produced the value."""

    value: Any
    source_provider: str
    confidence: float = 1.0
    cached: bool = False

    @property
    def is_fallback(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": "resolved",
            "value": self.value,
            "source_provider": self.source_provider,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Fallback:
    """Every provider failed; a local heuristic produced the value."""

    value: Any
    reason: str
    cached: bool = False

    @property
    def is_fallback(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": "fallback",
            "value": self.value,
            "reason": self.reason,
        }


ResolutionResult = Union[Resolved, Fallback]


def result_from_dict(data: dict[str, Any], cached: bool = False) -> ResolutionResult:
    """Rehydrate a cached result, preserving its original tag."""
    if data.get("outcome") == "fallback":
        return Fallback(value=data["value"], reason=data.get("reason", ""), cached=cached)
    return Resolved(
        value=data["value"],
        source_provider=data.get("source_provider", "unknown"),
        confidence=data.get("confidence", 1.0),
        cached=cached,
    )


@dataclass(frozen=True)
class ProviderSuccess:
    """A provider attempt that produced a usable value."""

    value: Any
    confidence: float = 1.0


@dataclass(frozen=True)
class ProviderFailure:
    """A provider attempt that produced nothing usable."""

    provider: str
    reason: str


ProviderOutcome = Union[ProviderSuccess, ProviderFailure]


@dataclass(frozen=True)
class ScorableItem:
    """
    Transient content ranked by the relevance scorer.

    Never persisted; `extra` carries the source fields (user, platform, url...)
    so a ranked item can be returned in its original shape.
    """

    item_id: str
    priority: str
    body: str
    timestamp: datetime
    keywords: frozenset[str] = frozenset()
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RoomId:
    """
    Broadcast scope for one entity, serialized canonically as "<kind>_<id>".
    """

    kind: str
    entity_id: str

    _KIND_PATTERN = re.compile(r"^[a-z][a-z0-9]*$")

    def __post_init__(self) -> None:
        if not self._KIND_PATTERN.match(self.kind):
            raise InvalidRoomError(f"{self.kind}_{self.entity_id}", "invalid entity kind")
        if not self.entity_id or any(c.isspace() for c in self.entity_id):
            raise InvalidRoomError(f"{self.kind}_{self.entity_id}", "invalid entity id")

    def __str__(self) -> str:
        return f"{self.kind}_{self.entity_id}"

    @classmethod
    def disaster(cls, disaster_id: str) -> RoomId:
        return cls(kind="disaster", entity_id=str(disaster_id))

    @classmethod
    def parse(cls, value: str) -> RoomId:
        """
        Parse a canonical room identifier.

        The kind never contains "_", so the first underscore separates it
        from the id (ids may contain underscores).
        """
        if not isinstance(value, str) or "_" not in value:
            raise InvalidRoomError(str(value), "expected '<kind>_<id>'")
        kind, entity_id = value.split("_", 1)
        return cls(kind=kind, entity_id=entity_id)


@dataclass(frozen=True)
class BroadcastEvent:
    """A pushed event. `room` is None on the unscoped (heartbeat) channel."""

    room: RoomId | None
    event_type: str
    payload: dict[str, Any]
    emitted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_frame(self) -> dict[str, Any]:
        """Wire representation sent to subscribers."""
        return {
            "event": self.event_type,
            "room": str(self.room) if self.room else None,
            "data": self.payload,
            "emitted_at": self.emitted_at.isoformat(),
        }
