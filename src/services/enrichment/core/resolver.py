"""
Provider Chain Resolver

Generic cascading resolution used by every enrichment namespace:

1. Validate and normalize the request, derive the cache key
2. Return a cached result if one is live
3. Otherwise try providers in priority order (strategy "first") or all at
   once and take the union of their contributions (strategy "union")
4. If nothing usable came back, ask the namespace's fallback provider
5. Write the result through to the cache and return it

Provider failures never escape resolve(); callers always get a
ResolutionResult. Only an empty payload is rejected.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
import time
import unicodedata
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from src.common.logging import get_sanitized_logger
from src.common.resilience import CircuitBreaker, CircuitOpenError
from src.common.telemetry import get_tracer, record_exception

from ..exceptions import InputValidationError
from .cache import TTLCache
from .models import (
    Fallback,
    ProviderFailure,
    ProviderOutcome,
    ProviderSuccess,
    Resolved,
    ResolutionRequest,
    ResolutionResult,
    result_from_dict,
)

logger = get_sanitized_logger(__name__)
tracer = get_tracer(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """Canonical form of free text: NFKC, trimmed, single-spaced, casefolded."""
    value = unicodedata.normalize("NFKC", value)
    return _WHITESPACE.sub(" ", value).strip().casefold()


def normalize_reference(value: str) -> str:
    """Canonical form of URLs and identifiers, which are case-sensitive."""
    return value.strip()


def make_cache_key(namespace: str, normalized_input: str, discriminator: str = "") -> str:
    """Cache key: namespace tag plus a digest of everything that selects the result."""
    digest = hashlib.sha256(
        "\x1f".join((namespace, normalized_input, discriminator)).encode("utf-8")
    ).hexdigest()
    return f"{namespace}:{digest}"


@runtime_checkable
class Provider(Protocol):
    """An external capability attempted during resolution."""

    name: str

    async def attempt(self, request: ResolutionRequest) -> ProviderOutcome:
        """
        Try to produce a value for the request.

        Returning ProviderFailure and raising are equivalent: both skip to
        the next provider.
        """
        ...


@runtime_checkable
class FallbackProvider(Protocol):
    """Local heuristic that always produces a value."""

    name: str

    def produce(self, request: ResolutionRequest, reason: str) -> Any:
        ...


@dataclass(frozen=True)
class NamespacePolicy:
    """Per-namespace resolution settings."""

    name: str
    ttl_seconds: int
    strategy: Literal["first", "union"] = "first"
    normalizer: Callable[[str], str] = normalize_text


@dataclass
class ProviderStats:
    """Counters for one provider."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    skipped_open_circuit: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "successes": self.successes,
            "failures": self.failures,
            "timeouts": self.timeouts,
            "skipped_open_circuit": self.skipped_open_circuit,
            "last_error": self.last_error,
        }


@dataclass
class ResolverStats:
    """Counters for one resolver."""

    resolutions: int = 0
    cache_hits: int = 0
    resolved: int = 0
    fallbacks: int = 0
    providers: dict[str, ProviderStats] = field(default_factory=dict)


class ProviderChainResolver:
    """
    Cascading resolver for one namespace.

    Features:
    - Write-through TTL cache keyed on the normalized input
    - Per-attempt timeout; a provider that times out or raises is skipped,
      never retried
    - Per-provider circuit breaker so a provider that keeps failing is
      skipped without waiting out its timeout
    - Terminal fallback, so resolution always produces a value
    """

    def __init__(
        self,
        policy: NamespacePolicy,
        providers: Sequence[Provider],
        fallback: FallbackProvider,
        cache: TTLCache | None = None,
        provider_timeout: float = 10.0,
        circuit_failure_threshold: int = 5,
        circuit_recovery_seconds: float = 30.0,
    ):
        """
        Args:
            policy: Namespace name, TTL, strategy and normalizer
            providers: Providers in priority order
            fallback: Heuristic used when no provider succeeds
            cache: TTL cache (resolution is uncached when None)
            provider_timeout: Seconds allowed for each provider attempt
            circuit_failure_threshold: Consecutive failures before a provider is skipped
            circuit_recovery_seconds: Seconds before a skipped provider is tried again
        """
        self._policy = policy
        self._providers = tuple(providers)
        self._fallback = fallback
        self._cache = cache
        self._provider_timeout = provider_timeout
        self._stats = ResolverStats(
            providers={p.name: ProviderStats() for p in self._providers}
        )
        self._breakers = {
            p.name: CircuitBreaker(
                failure_threshold=circuit_failure_threshold,
                recovery_timeout=circuit_recovery_seconds,
                name=f"{policy.name}.{p.name}",
            )
            for p in self._providers
        }

    @property
    def policy(self) -> NamespacePolicy:
        return self._policy

    @property
    def providers(self) -> tuple[Provider, ...]:
        return self._providers

    @property
    def stats(self) -> dict[str, Any]:
        """Resolver counters and per-provider circuit state."""
        return {
            "namespace": self._policy.name,
            "strategy": self._policy.strategy,
            "resolutions": self._stats.resolutions,
            "cache_hits": self._stats.cache_hits,
            "resolved": self._stats.resolved,
            "fallbacks": self._stats.fallbacks,
            "providers": {
                name: {
                    **stats.to_dict(),
                    "circuit": self._breakers[name].stats.to_dict(),
                }
                for name, stats in self._stats.providers.items()
            },
        }

    def cache_key(self, request: ResolutionRequest) -> str:
        normalized = self._policy.normalizer(request.payload)
        return make_cache_key(self._policy.name, normalized, request.context.discriminator)

    def _validate(self, request: ResolutionRequest) -> None:
        if request.namespace != self._policy.name:
            raise InputValidationError(
                "namespace",
                f"expected '{self._policy.name}', got '{request.namespace}'",
            )
        if not isinstance(request.payload, str) or not request.payload.strip():
            raise InputValidationError("payload", "must be a non-empty string")

    async def resolve(self, request: ResolutionRequest) -> ResolutionResult:
        """
        Resolve a request to a value.

        Raises:
            InputValidationError: If the payload is empty (before any provider
                or cache access)
        """
        self._validate(request)

        with tracer.start_as_current_span("enrichment.resolve") as span:
            span.set_attribute("enrichment.namespace", self._policy.name)
            self._stats.resolutions += 1
            cache_key = self.cache_key(request)

            if self._cache is not None:
                cached = await self._cache.get(cache_key)
                if cached is not None:
                    try:
                        result = result_from_dict(cached, cached=True)
                    except (KeyError, TypeError) as e:
                        logger.warning(f"Ignoring malformed cache entry {cache_key}: {e}")
                    else:
                        self._stats.cache_hits += 1
                        span.set_attribute("enrichment.cache_hit", True)
                        logger.info(f"{self._policy.name} result retrieved from cache")
                        return result

            span.set_attribute("enrichment.cache_hit", False)

            if self._policy.strategy == "union":
                result = await self._resolve_union(request)
            else:
                result = await self._resolve_first(request)

            if isinstance(result, Fallback):
                self._stats.fallbacks += 1
                span.set_attribute("enrichment.outcome", "fallback")
            else:
                self._stats.resolved += 1
                span.set_attribute("enrichment.outcome", "resolved")
                span.set_attribute("enrichment.provider", result.source_provider)

            if self._cache is not None:
                await self._cache.put(cache_key, result.to_dict(), self._policy.ttl_seconds)

            return result

    async def _resolve_first(self, request: ResolutionRequest) -> ResolutionResult:
        failures: list[ProviderFailure] = []

        for provider in self._providers:
            outcome = await self._attempt(provider, request)
            if isinstance(outcome, ProviderSuccess):
                return Resolved(
                    value=outcome.value,
                    source_provider=provider.name,
                    confidence=outcome.confidence,
                )
            failures.append(outcome)

        return self._fall_back(request, failures)

    async def _resolve_union(self, request: ResolutionRequest) -> ResolutionResult:
        outcomes = await asyncio.gather(
            *(self._attempt(provider, request) for provider in self._providers)
        )

        items: list[Any] = []
        contributors: list[str] = []
        failures: list[ProviderFailure] = []
        for provider, outcome in zip(self._providers, outcomes):
            if isinstance(outcome, ProviderFailure):
                failures.append(outcome)
            elif outcome.value:
                items.extend(outcome.value)
                contributors.append(provider.name)

        if not items:
            if not failures:
                failures.append(ProviderFailure("union", "all providers returned no items"))
            return self._fall_back(request, failures)

        return Resolved(
            value=items,
            source_provider="+".join(contributors),
            confidence=len(contributors) / len(self._providers),
        )

    def _fall_back(
        self, request: ResolutionRequest, failures: list[ProviderFailure]
    ) -> Fallback:
        if failures:
            reason = "; ".join(f"{f.provider}: {f.reason}" for f in failures)
        else:
            reason = "no providers configured"
        logger.info(f"{self._policy.name}: using {self._fallback.name} fallback ({reason})")
        return Fallback(value=self._fallback.produce(request, reason), reason=reason)

    async def _attempt(
        self, provider: Provider, request: ResolutionRequest
    ) -> ProviderOutcome:
        """Run one provider attempt; never raises (except on cancellation)."""
        stats = self._stats.providers[provider.name]
        breaker = self._breakers[provider.name]

        try:
            await breaker.acquire()
        except CircuitOpenError:
            stats.skipped_open_circuit += 1
            logger.warning(f"Circuit open, skipping provider {provider.name}")
            return ProviderFailure(provider.name, "circuit open")

        stats.attempts += 1
        started = time.perf_counter()
        try:
            outcome = await asyncio.wait_for(
                provider.attempt(request), timeout=self._provider_timeout
            )
        except asyncio.TimeoutError:
            stats.timeouts += 1
            outcome = ProviderFailure(
                provider.name, f"timed out after {self._provider_timeout:.1f}s"
            )
        except Exception as e:
            record_exception(e)
            outcome = ProviderFailure(provider.name, str(e) or type(e).__name__)

        if isinstance(outcome, ProviderSuccess) and outcome.value is None:
            outcome = ProviderFailure(provider.name, "returned no value")

        if isinstance(outcome, ProviderFailure):
            stats.failures += 1
            stats.last_error = outcome.reason
            await breaker.record_failure()
            logger.warning(
                f"{self._policy.name}: provider {provider.name} failed: {outcome.reason}"
            )
        else:
            stats.successes += 1
            await breaker.record_success()
            logger.debug(
                f"{self._policy.name}: provider {provider.name} succeeded "
                f"in {time.perf_counter() - started:.2f}s"
            )

        return outcome
