"""
Enrichment Runtime

Builds and owns every long-lived object of the service: cache, incident
store, the four namespace resolvers, the broadcast hub and the periodic
tasks. Created in the application lifespan and injected into the
transport, so nothing lives in module-level registries.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .adapters.cache import (
    MemoryCacheBackend,
    PostgresCacheBackend,
    RedisCacheBackend,
    check_redis_health,
    create_redis_client,
)
from .adapters.database import (
    IncidentContextSource,
    InMemoryIncidentStore,
    PostgresIncidentStore,
    check_db_health,
    create_db_pool,
)
from .config import EnrichmentServiceConfig
from .core.cache import CacheBackend, TTLCache
from .core.hub import BroadcastHub
from .core.models import IncidentContext, Namespace, ResolutionRequest, ResolutionResult, RoomId
from .core.resolver import NamespacePolicy, ProviderChainResolver, normalize_reference, normalize_text
from .core.scheduler import PeriodicTask
from .core.scorer import RelevanceScorer, ScoringWeights
from .exceptions import IncidentNotFoundError, InputValidationError
from .providers.gemini import GeminiClient
from .providers.geocoding import MockGeocodingFallback, build_geocoding_providers
from .providers.social_media import EmptyFeedFallback, SocialMediaFeed
from .providers.updates import (
    CuratedUpdates,
    CuratedUpdatesFallback,
    FemaUpdatesScraper,
    RedCrossUpdatesFeed,
    sort_newest_first,
)
from .providers.verification import (
    GeminiVerificationProvider,
    MockVerificationFallback,
    VerificationThresholds,
)

logger = logging.getLogger(__name__)

# Events the primary entity service may push through the hub.
INCIDENT_EVENT_TYPES = frozenset({"disaster_updated", "resources_updated"})

SOCIAL_MEDIA_BROADCAST_LIMIT = 5


class EnrichmentRuntime:
    """The service's object graph and its high-level operations."""

    def __init__(
        self,
        config: EnrichmentServiceConfig,
        cache: TTLCache,
        incidents: IncidentContextSource,
        hub: BroadcastHub,
        geocoding: ProviderChainResolver,
        verification: ProviderChainResolver,
        updates: ProviderChainResolver,
        social_media: ProviderChainResolver,
        social_feed: SocialMediaFeed,
        http: httpx.AsyncClient | None = None,
        db_pool: Any = None,
        redis_client: Any = None,
    ):
        self.config = config
        self.cache = cache
        self.incidents = incidents
        self.hub = hub
        self.geocoding = geocoding
        self.verification = verification
        self.updates = updates
        self.social_media = social_media
        self.social_feed = social_feed
        self._http = http
        self._db_pool = db_pool
        self._redis_client = redis_client

        self.sweep_task = PeriodicTask(
            "cache_sweep", self.cache.sweep, config.cache_sweep_interval_seconds
        )
        self.heartbeat_task = PeriodicTask(
            "heartbeat", self.hub.heartbeat, config.heartbeat_interval_seconds
        )

    @classmethod
    def build(
        cls,
        config: EnrichmentServiceConfig,
        cache_backend: CacheBackend | None = None,
        incidents: IncidentContextSource | None = None,
        http: httpx.AsyncClient | None = None,
        db_pool: Any = None,
        redis_client: Any = None,
    ) -> EnrichmentRuntime:
        """
        Assemble the runtime from already-connected collaborators.

        Missing collaborators default to in-memory implementations.
        """
        http = http or httpx.AsyncClient(timeout=httpx.Timeout(config.provider_timeout_seconds))
        cache = TTLCache(cache_backend or MemoryCacheBackend())
        incidents = incidents or InMemoryIncidentStore()

        scorer = RelevanceScorer(
            ScoringWeights(
                priority=dict(config.priority_weights),
                tag_match=config.tag_match_weight,
                location_match=config.location_match_weight,
                recency_max=config.recency_max_bonus,
                recency_decay_per_hour=config.recency_decay_per_hour,
            )
        )
        thresholds = VerificationThresholds(
            verified=config.verified_threshold,
            suspicious=config.suspicious_threshold,
        )

        gemini = None
        if config.gemini_api_key:
            gemini = GeminiClient(
                http,
                config.gemini_api_key,
                model=config.gemini_model,
                base_url=config.gemini_base_url,
            )

        resolver_options = {
            "cache": cache,
            "provider_timeout": config.provider_timeout_seconds,
            "circuit_failure_threshold": config.circuit_failure_threshold,
            "circuit_recovery_seconds": config.circuit_recovery_seconds,
        }

        geocoding = ProviderChainResolver(
            NamespacePolicy(
                name=Namespace.GEOCODING.value,
                ttl_seconds=config.geocoding_ttl_seconds,
                normalizer=normalize_text,
            ),
            providers=build_geocoding_providers(config, http, gemini),
            fallback=MockGeocodingFallback(),
            **resolver_options,
        )

        verification = ProviderChainResolver(
            NamespacePolicy(
                name=Namespace.VERIFICATION.value,
                ttl_seconds=config.verification_ttl_seconds,
                normalizer=normalize_reference,
            ),
            providers=[GeminiVerificationProvider(gemini, thresholds)] if gemini else [],
            fallback=MockVerificationFallback(simulation_mode=config.simulation_mode),
            **resolver_options,
        )

        update_sources: list[Any] = []
        if config.fema_enabled:
            update_sources.append(
                FemaUpdatesScraper(http, url=config.fema_url, max_items=config.fema_max_items)
            )
        if config.red_cross_enabled:
            update_sources.append(RedCrossUpdatesFeed())

        updates = ProviderChainResolver(
            NamespacePolicy(
                name=Namespace.UPDATES.value,
                ttl_seconds=config.updates_ttl_seconds,
                strategy="union",
                normalizer=normalize_reference,
            ),
            providers=update_sources,
            fallback=CuratedUpdatesFallback(
                CuratedUpdates.default(), simulation_mode=config.simulation_mode
            ),
            **resolver_options,
        )

        social_feed = SocialMediaFeed.default(
            scorer=scorer, simulation_mode=config.simulation_mode
        )
        social_media = ProviderChainResolver(
            NamespacePolicy(
                name=Namespace.SOCIAL_MEDIA.value,
                ttl_seconds=config.social_media_ttl_seconds,
                normalizer=normalize_reference,
            ),
            providers=[social_feed],
            fallback=EmptyFeedFallback(),
            **resolver_options,
        )

        return cls(
            config=config,
            cache=cache,
            incidents=incidents,
            hub=BroadcastHub(send_timeout=config.websocket_send_timeout_seconds),
            geocoding=geocoding,
            verification=verification,
            updates=updates,
            social_media=social_media,
            social_feed=social_feed,
            http=http,
            db_pool=db_pool,
            redis_client=redis_client,
        )

    @classmethod
    async def create(cls, config: EnrichmentServiceConfig) -> EnrichmentRuntime:
        """Connect to the configured storage and assemble the runtime."""
        db_pool = None
        if config.cache_backend == "postgres" or config.incident_store == "postgres":
            db_pool = await create_db_pool(
                config.postgres_url,
                min_size=config.postgres_pool_min,
                max_size=config.postgres_pool_max,
            )

        redis_client = None
        cache_backend: CacheBackend
        if config.cache_backend == "postgres":
            cache_backend = PostgresCacheBackend(db_pool)
            await cache_backend.ensure_schema()
        elif config.cache_backend == "redis":
            redis_client = await create_redis_client(config.redis_url)
            cache_backend = RedisCacheBackend(redis_client)
        else:
            cache_backend = MemoryCacheBackend()

        incidents: IncidentContextSource
        if config.incident_store == "postgres":
            incidents = PostgresIncidentStore(db_pool)
        else:
            incidents = InMemoryIncidentStore()

        logger.info(
            f"Enrichment runtime using {config.cache_backend} cache and "
            f"{config.incident_store} incident store"
        )
        return cls.build(
            config,
            cache_backend=cache_backend,
            incidents=incidents,
            db_pool=db_pool,
            redis_client=redis_client,
        )

    def start(self) -> None:
        """Start the periodic cache sweep and heartbeat."""
        self.sweep_task.start()
        self.heartbeat_task.start()

    async def close(self) -> None:
        """Stop background tasks and release every connection."""
        await self.sweep_task.stop()
        await self.heartbeat_task.stop()
        await self.cache.close()
        if self._http is not None:
            await self._http.aclose()
        if self._db_pool is not None:
            await self._db_pool.close()

    async def get_incident(self, incident_id: str) -> IncidentContext:
        """
        Raises:
            IncidentNotFoundError: If the incident does not exist
        """
        if not incident_id or not incident_id.strip():
            raise InputValidationError("incident_id", "must not be empty")
        incident = await self.incidents.get(incident_id)
        if incident is None:
            raise IncidentNotFoundError(incident_id)
        return incident

    async def geocode(self, text: str) -> ResolutionResult:
        return await self.geocoding.resolve(
            ResolutionRequest(namespace=Namespace.GEOCODING.value, payload=text)
        )

    async def verify_image(self, incident_id: str, image_url: str) -> ResolutionResult:
        if not image_url or not image_url.strip():
            raise InputValidationError("image_url", "must not be empty")
        incident = await self.get_incident(incident_id)
        result = await self.verification.resolve(
            ResolutionRequest(
                namespace=Namespace.VERIFICATION.value,
                payload=image_url,
                context=incident,
            )
        )
        logger.info(
            f"Image verification completed for disaster {incident_id}: {result.value['status']}"
        )
        return result

    async def official_updates(self, incident_id: str) -> list[dict[str, Any]]:
        incident = await self.get_incident(incident_id)
        result = await self.updates.resolve(
            ResolutionRequest(
                namespace=Namespace.UPDATES.value,
                payload=incident_id,
                context=incident,
            )
        )
        updates = sort_newest_first(result.value)
        logger.info(f"Official updates retrieved for disaster {incident_id}: {len(updates)} updates")
        return updates

    async def social_media_reports(self, incident_id: str) -> list[dict[str, Any]]:
        """Relevant posts for the incident; the top few are pushed to its room."""
        incident = await self.get_incident(incident_id)
        result = await self.social_media.resolve(
            ResolutionRequest(
                namespace=Namespace.SOCIAL_MEDIA.value,
                payload=incident_id,
                context=incident,
            )
        )
        posts = list(result.value)
        await self.hub.publish(
            RoomId.disaster(incident_id),
            "social_media_updated",
            {"disaster_id": incident_id, "posts": posts[:SOCIAL_MEDIA_BROADCAST_LIMIT]},
        )
        logger.info(
            f"Social media data processed for disaster {incident_id}: {len(posts)} relevant posts"
        )
        return posts

    async def publish_incident_event(
        self, incident_id: str, event_type: str, payload: dict[str, Any]
    ) -> int:
        """Relay a primary-entity change to subscribers of the incident's room."""
        if event_type not in INCIDENT_EVENT_TYPES:
            raise InputValidationError(
                "event_type", f"must be one of {', '.join(sorted(INCIDENT_EVENT_TYPES))}"
            )
        return await self.hub.publish(RoomId.disaster(incident_id), event_type, payload)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats.to_dict(),
            "resolvers": {
                r.policy.name: r.stats
                for r in (self.geocoding, self.verification, self.updates, self.social_media)
            },
            "hub": self.hub.stats,
            "tasks": {
                t.name: {"running": t.running, "ticks": t.ticks, "errors": t.errors}
                for t in (self.sweep_task, self.heartbeat_task)
            },
        }

    async def readiness(self) -> tuple[bool, dict[str, Any]]:
        """Dependency checks. Redis is not critical; PostgreSQL is when used."""
        checks: dict[str, Any] = {}
        ready = True

        if self._db_pool is not None:
            db_health = await check_db_health(self._db_pool)
            checks["database"] = db_health
            if not db_health.get("connected"):
                ready = False
        else:
            checks["database"] = {"enabled": False}

        if self._redis_client is not None:
            checks["redis"] = await check_redis_health(self._redis_client)
        else:
            checks["redis"] = {"enabled": False}

        checks["cache_backend"] = self.config.cache_backend
        return ready, checks
