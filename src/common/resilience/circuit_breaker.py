"""
Circuit Breaker Pattern

Skips a provider that keeps failing until its recovery window has passed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitBreakerStats:
    """Statistics for circuit breaker monitoring."""

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    total_calls: int = 0
    total_failures: int = 0
    total_successes: int = 0
    total_rejections: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "total_rejections": self.total_rejections,
        }


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit is open."""

    def __init__(self, name: str):
        super().__init__(f"Circuit {name} is open")
        self.name = name


class CircuitBreaker:
    """
    Circuit breaker for failing fast on unhealthy dependencies.

    States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Failing fast, calls rejected immediately
    - HALF_OPEN: One trial call allowed to test recovery; a trial that never
      reports back is replaced after another recovery_timeout
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        name: str = "circuit",
        clock: Callable[[], float] = time.monotonic,
    ):
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._clock = clock
        self._stats = CircuitBreakerStats()
        self._lock = asyncio.Lock()
        self._trial_started: float | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def stats(self) -> CircuitBreakerStats:
        """Get current statistics."""
        return self._stats

    @property
    def state(self) -> CircuitState:
        return self._stats.state

    async def acquire(self) -> None:
        """
        Admit one call, or reject it while the circuit is open.

        Every admitted call must be followed by record_success() or
        record_failure(). While half-open only the trial call is admitted.

        Raises:
            CircuitOpenError: If the call is rejected
        """
        async with self._lock:
            self._stats.total_calls += 1

            if self._stats.state == CircuitState.OPEN:
                if self._should_attempt_recovery():
                    self._stats.state = CircuitState.HALF_OPEN
                    self._trial_started = self._clock()
                    logger.info(f"Circuit {self._name}: attempting recovery")
                else:
                    self._stats.total_rejections += 1
                    raise CircuitOpenError(self._name)
            elif self._stats.state == CircuitState.HALF_OPEN:
                if self._trial_in_flight():
                    self._stats.total_rejections += 1
                    raise CircuitOpenError(self._name)
                self._trial_started = self._clock()

    def _trial_in_flight(self) -> bool:
        if self._trial_started is None:
            return False
        return self._clock() - self._trial_started < self._recovery_timeout

    def _should_attempt_recovery(self) -> bool:
        if self._stats.last_failure_time is None:
            return True
        elapsed = self._clock() - self._stats.last_failure_time
        return elapsed >= self._recovery_timeout

    async def record_success(self) -> None:
        """Record a successful call."""
        async with self._lock:
            self._stats.total_successes += 1
            self._stats.last_success_time = self._clock()
            self._trial_started = None

            if self._stats.state == CircuitState.HALF_OPEN:
                logger.info(f"Circuit {self._name}: recovered, now closed")
            self._stats.state = CircuitState.CLOSED
            self._stats.failure_count = 0

    async def record_failure(self) -> None:
        """
        Record a failed call.

        Also used for calls that returned normally but produced nothing usable,
        so a provider that keeps answering with garbage opens its circuit too.
        """
        async with self._lock:
            self._stats.failure_count += 1
            self._stats.total_failures += 1
            self._stats.last_failure_time = self._clock()
            self._trial_started = None

            if self._stats.state == CircuitState.HALF_OPEN:
                self._stats.state = CircuitState.OPEN
                logger.warning(f"Circuit {self._name}: recovery failed, reopening")
            elif (
                self._stats.state == CircuitState.CLOSED
                and self._stats.failure_count >= self._failure_threshold
            ):
                self._stats.state = CircuitState.OPEN
                logger.warning(
                    f"Circuit {self._name}: opened after {self._stats.failure_count} failures"
                )

