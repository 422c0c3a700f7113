"""
Telemetry Module

OpenTelemetry tracing for the enrichment service.

Usage:
    from src.common.telemetry import init_telemetry, get_tracer

    # Initialize at application startup
    init_telemetry(TelemetryConfig(service_name="disaster-enrichment"))

    tracer = get_tracer(__name__)
    with tracer.start_as_current_span("enrichment.resolve") as span:
        span.set_attribute("enrichment.namespace", "geocoding")
        ...

Until init_telemetry() installs an SDK provider, get_tracer() hands out the
OpenTelemetry API's non-recording tracer, so instrumented code runs unchanged
in tests.
"""

from src.common.telemetry.setup import (
    TelemetryConfig,
    get_tracer,
    init_telemetry,
    is_telemetry_enabled,
    shutdown_telemetry,
)
from src.common.telemetry.tracing import record_exception, trace_async

__all__ = [
    "TelemetryConfig",
    "get_tracer",
    "init_telemetry",
    "is_telemetry_enabled",
    "shutdown_telemetry",
    "record_exception",
    "trace_async",
]
