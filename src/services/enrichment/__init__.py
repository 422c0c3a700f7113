"""
Disaster Enrichment Service

Enriches disaster-response records using unreliable third-party services
(geocoding, image verification, official updates) and pushes live changes
to subscribers of per-incident rooms.

Usage:
    # As a service
    python -m src.services.enrichment --port 8080

    # Programmatic
    from src.services.enrichment import EnrichmentRuntime, EnrichmentServiceConfig
"""

__version__ = "0.1.0"

from .config import EnrichmentServiceConfig
from .core.hub import BroadcastHub
from .core.resolver import NamespacePolicy, ProviderChainResolver
from .core.scorer import RelevanceScorer
from .runtime import EnrichmentRuntime

__all__ = [
    "BroadcastHub",
    "EnrichmentRuntime",
    "EnrichmentServiceConfig",
    "NamespacePolicy",
    "ProviderChainResolver",
    "RelevanceScorer",
]
