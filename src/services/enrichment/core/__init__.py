"""
Core enrichment logic.

Resolver, cache, scorer and broadcast hub, independent of any transport,
provider or storage technology.
"""

from .cache import CacheBackend, CacheStats, TTLCache
from .hub import BroadcastHub, SubscriberConnection
from .models import (
    BroadcastEvent,
    CacheEntry,
    Fallback,
    IncidentContext,
    Namespace,
    ProviderFailure,
    ProviderOutcome,
    ProviderSuccess,
    ResolutionRequest,
    ResolutionResult,
    Resolved,
    RoomId,
    ScorableItem,
)
from .resolver import (
    FallbackProvider,
    NamespacePolicy,
    Provider,
    ProviderChainResolver,
    make_cache_key,
    normalize_reference,
    normalize_text,
)
from .scheduler import PeriodicTask
from .scorer import RelevanceScorer, ScoringWeights

__all__ = [
    "BroadcastEvent",
    "BroadcastHub",
    "CacheBackend",
    "CacheEntry",
    "CacheStats",
    "Fallback",
    "FallbackProvider",
    "IncidentContext",
    "Namespace",
    "NamespacePolicy",
    "PeriodicTask",
    "Provider",
    "ProviderChainResolver",
    "ProviderFailure",
    "ProviderOutcome",
    "ProviderSuccess",
    "RelevanceScorer",
    "ResolutionRequest",
    "ResolutionResult",
    "Resolved",
    "RoomId",
    "ScorableItem",
    "ScoringWeights",
    "SubscriberConnection",
    "TTLCache",
    "make_cache_key",
    "normalize_reference",
    "normalize_text",
]
