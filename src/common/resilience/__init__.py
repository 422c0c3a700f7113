"""
Resilience Patterns

Circuit breaker for failing fast on unhealthy third-party providers.
"""

from src.common.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerStats,
    CircuitOpenError,
    CircuitState,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerStats",
    "CircuitOpenError",
    "CircuitState",
]
