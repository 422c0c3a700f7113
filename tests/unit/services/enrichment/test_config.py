"""
Tests for service configuration and CLI overrides.
"""

import argparse

import pytest
from pydantic import ValidationError

from src.services.enrichment.__main__ import build_config
from src.services.enrichment.config import EnrichmentServiceConfig


def _args(**overrides):
    values = {
        "host": None,
        "port": None,
        "cache_backend": None,
        "incident_store": None,
        "postgres_url": None,
        "redis_url": None,
        "simulation": False,
        "log_level": "info",
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class TestEnrichmentServiceConfig:
    def test_defaults(self):
        config = EnrichmentServiceConfig()

        assert config.port == 8080
        assert config.cache_backend == "memory"
        assert config.geocoding_ttl_seconds == 7200
        assert config.verification_ttl_seconds == 3600
        assert config.updates_ttl_seconds == 1800
        assert config.social_media_ttl_seconds == 3600
        assert config.cache_sweep_interval_seconds == 3600
        assert config.heartbeat_interval_seconds == 30
        assert config.provider_timeout_seconds == 10
        assert config.simulation_mode is False
        assert config.nominatim_enabled is False
        assert config.priority_weights == {"urgent": 10.0, "high": 7.0, "medium": 5.0, "low": 2.0}

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ENRICH_PORT", "9000")
        monkeypatch.setenv("ENRICH_CACHE_BACKEND", "redis")
        monkeypatch.setenv("ENRICH_SIMULATION_MODE", "true")

        config = EnrichmentServiceConfig()

        assert config.port == 9000
        assert config.cache_backend == "redis"
        assert config.simulation_mode is True

    def test_unknown_cache_backend(self):
        with pytest.raises(ValidationError):
            EnrichmentServiceConfig(cache_backend="memcached")

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValidationError):
            EnrichmentServiceConfig(geocoding_ttl_seconds=0)

    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ValidationError):
            EnrichmentServiceConfig(verified_threshold=40, suspicious_threshold=70)


class TestBuildConfig:
    """CLI arguments override environment configuration."""

    def test_no_overrides(self):
        config = build_config(_args())
        assert config.host == "0.0.0.0"
        assert config.log_level == "INFO"

    def test_overrides(self):
        config = build_config(
            _args(
                port=9100,
                cache_backend="postgres",
                incident_store="postgres",
                postgres_url="postgresql://u:p@db:5432/disasters",
                simulation=True,
                log_level="debug",
            )
        )

        assert config.port == 9100
        assert config.cache_backend == "postgres"
        assert config.incident_store == "postgres"
        assert config.postgres_url == "postgresql://u:p@db:5432/disasters"
        assert config.simulation_mode is True
        assert config.log_level == "DEBUG"
