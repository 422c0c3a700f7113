"""
Shared infrastructure used by the enrichment service.

Submodules:
- logging: log sanitization
- resilience: circuit breaker
- telemetry: OpenTelemetry setup and tracing helpers
"""
