"""
OpenTelemetry Setup and Configuration.

Handles initialization of the tracer provider and the OTLP span exporter.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)

_DISABLED_VALUES = ("false", "0", "no", "off")


@dataclass
class TelemetryConfig:
    """Configuration for telemetry setup."""

    service_name: str = "disaster-enrichment"
    service_version: str = "0.1.0"
    environment: str = field(default_factory=lambda: os.getenv("ENRICH_ENV", "development"))

    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    )
    otlp_insecure: bool = True

    resource_attributes: dict[str, str] = field(default_factory=dict)


# Global state
_tracer_provider: Any = None
_telemetry_initialized = False


def _is_telemetry_disabled_by_env() -> bool:
    return os.getenv("ENRICH_TELEMETRY_ENABLED", "true").lower() in _DISABLED_VALUES


def init_telemetry(config: TelemetryConfig | None = None) -> bool:
    """
    Initialize OpenTelemetry tracing.

    Call once at application startup. Can be disabled by setting
    ENRICH_TELEMETRY_ENABLED=false.

    Returns:
        True if a tracer provider was installed
    """
    global _tracer_provider, _telemetry_initialized

    if _telemetry_initialized:
        logger.debug("Telemetry already initialized")
        return _tracer_provider is not None

    if _is_telemetry_disabled_by_env():
        logger.info("Telemetry disabled via ENRICH_TELEMETRY_ENABLED")
        _telemetry_initialized = True
        return False

    cfg = config or TelemetryConfig()

    try:
        resource_attrs = {
            SERVICE_NAME: cfg.service_name,
            SERVICE_VERSION: cfg.service_version,
            "deployment.environment": cfg.environment,
        }
        resource_attrs.update(cfg.resource_attributes)

        _tracer_provider = TracerProvider(resource=Resource.create(resource_attrs))
        _tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(endpoint=cfg.otlp_endpoint, insecure=cfg.otlp_insecure)
            )
        )
        trace.set_tracer_provider(_tracer_provider)
        logger.info(f"Tracing initialized, exporting to {cfg.otlp_endpoint}")
    except Exception as e:
        logger.error(f"Failed to initialize telemetry: {e}")
        _tracer_provider = None

    _telemetry_initialized = True
    return _tracer_provider is not None


def shutdown_telemetry() -> None:
    """Flush pending spans and shut the tracer provider down."""
    global _tracer_provider, _telemetry_initialized

    if _tracer_provider is None:
        _telemetry_initialized = False
        return

    try:
        _tracer_provider.force_flush(timeout_millis=5000)
        _tracer_provider.shutdown()
        logger.debug("Tracer provider shut down")
    except Exception as e:
        logger.warning(f"Error during telemetry shutdown: {e}")
    finally:
        _tracer_provider = None
        _telemetry_initialized = False


def get_tracer(name: str = "disaster-enrichment") -> trace.Tracer:
    """
    Get a tracer for creating spans.

    Args:
        name: Tracer name (typically module name)
    """
    return trace.get_tracer(name)


def is_telemetry_enabled() -> bool:
    """Check if a tracer provider has been installed."""
    return _tracer_provider is not None
