"""
Enrichment Exception Hierarchy

All service-specific exceptions inherit from EnrichmentError.

Only InputValidationError and IncidentNotFoundError ever reach a caller of
the resolver. Provider and cache faults are handled inside the subsystem and
turn into degraded results rather than exceptions.
"""

from __future__ import annotations


class EnrichmentError(Exception):
    """
    Base exception for all enrichment errors.

    Attributes:
        message: Human-readable error description
        code: Optional machine-readable error code
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class InputValidationError(EnrichmentError):
    """The request payload is empty or malformed; no provider was consulted."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"Invalid '{field}': {reason}", code="INPUT_INVALID")
        self.field = field
        self.reason = reason


class IncidentNotFoundError(EnrichmentError):
    """The referenced incident does not exist in the primary entity store."""

    def __init__(self, incident_id: str) -> None:
        super().__init__(f"Disaster not found: {incident_id}", code="INCIDENT_NOT_FOUND")
        self.incident_id = incident_id


class InvalidRoomError(EnrichmentError):
    """A room identifier does not follow the '<kind>_<id>' form."""

    def __init__(self, room: str, reason: str) -> None:
        super().__init__(f"Invalid room '{room}': {reason}", code="ROOM_INVALID")
        self.room = room
        self.reason = reason


class ProviderError(EnrichmentError):
    """A third-party provider failed or returned an unusable payload."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"Provider '{provider}' failed: {reason}", code="PROVIDER_FAILED")
        self.provider = provider
        self.reason = reason
