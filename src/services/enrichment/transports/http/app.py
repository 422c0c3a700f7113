"""
FastAPI HTTP Transport for the Enrichment Service

Provides REST endpoints and a WebSocket channel:
- /health - Liveness probe
- /ready - Readiness probe (checks DB, cache)
- /api/geocode - Extract a location from text and geocode it
- /api/disasters/{id}/verify-image - Verify an image against an incident
- /api/disasters/{id}/official-updates - Aggregated official updates
- /api/disasters/{id}/social-media - Ranked social media reports
- /api/mock-social-media - Filtered view of the social feed
- /api/disasters/{id}/events - Relay a primary-entity change to the room
- /api/stats - Resolver, cache and hub statistics
- /ws - Room subscriptions (join_room / leave_room)

NOTE: Do NOT add `from __future__ import annotations` to this file.
PEP 563 breaks FastAPI's runtime introspection for parameter sources.
"""

import json
import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ...config import EnrichmentServiceConfig
from ...core.models import BroadcastEvent, RoomId
from ...exceptions import (
    EnrichmentError,
    IncidentNotFoundError,
    InputValidationError,
    InvalidRoomError,
)
from ...runtime import EnrichmentRuntime

logger = logging.getLogger(__name__)


# Request models
class GeocodeRequest(BaseModel):
    """Request body for /api/geocode. One of text or description is required."""

    text: str | None = Field(None, max_length=5000)
    description: str | None = Field(None, max_length=5000)


class VerifyImageRequest(BaseModel):
    """Request body for /api/disasters/{id}/verify-image."""

    image_url: str = Field(..., min_length=1, max_length=2000)
    report_id: str | None = Field(None, max_length=100)


class IncidentEventRequest(BaseModel):
    """Request body for /api/disasters/{id}/events."""

    event_type: str = Field(..., min_length=1, max_length=50)
    payload: dict[str, Any] = Field(default_factory=dict)


def get_runtime(request: Request) -> EnrichmentRuntime:
    """Get the runtime attached to the application."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise RuntimeError("Runtime not initialized")
    return runtime


def create_app(
    config: EnrichmentServiceConfig | None = None,
    runtime: EnrichmentRuntime | None = None,
) -> FastAPI:
    """
    Create a FastAPI application for the enrichment service.

    Args:
        config: Service configuration
        runtime: Pre-built runtime (built from config at startup when None)

    Returns:
        FastAPI application instance
    """
    _config = config or (runtime.config if runtime else EnrichmentServiceConfig())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        logger.info(f"Starting enrichment service: {_config.server_name}")

        app.state.runtime = runtime or await EnrichmentRuntime.create(_config)
        app.state.runtime.start()

        logger.info("Enrichment service initialized")
        yield

        logger.info("Shutting down enrichment service")
        await app.state.runtime.close()
        logger.info("Enrichment service shut down")

    app = FastAPI(
        title="Disaster Enrichment Service",
        description="Geocoding, image verification, official updates and live incident rooms",
        version=_config.server_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": exc.message, "code": exc.code},
        )

    @app.exception_handler(InvalidRoomError)
    async def invalid_room_handler(request: Request, exc: InvalidRoomError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": exc.message, "code": exc.code},
        )

    @app.exception_handler(IncidentNotFoundError)
    async def not_found_handler(request: Request, exc: IncidentNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content={"error": exc.message, "code": exc.code},
        )

    @app.exception_handler(EnrichmentError)
    async def enrichment_error_handler(request: Request, exc: EnrichmentError) -> JSONResponse:
        logger.error(f"Unhandled enrichment error on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": exc.message, "code": exc.code},
        )

    @app.get("/health")
    async def liveness_check() -> JSONResponse:
        """Liveness probe - just checks if process is alive."""
        return JSONResponse(
            content={"status": "alive"},
            status_code=200,
        )

    @app.get("/ready")
    async def readiness_check(request: Request) -> JSONResponse:
        """Readiness probe - checks dependencies."""
        ready, checks = await get_runtime(request).readiness()
        return JSONResponse(
            content={"status": "ready" if ready else "not_ready", "checks": checks},
            status_code=200 if ready else 503,
        )

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with service info."""
        return {
            "name": _config.server_name,
            "version": _config.server_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "geocode": "/api/geocode",
                "verify_image": "/api/disasters/{id}/verify-image",
                "official_updates": "/api/disasters/{id}/official-updates",
                "social_media": "/api/disasters/{id}/social-media",
                "mock_social_media": "/api/mock-social-media",
                "events": "/api/disasters/{id}/events",
                "stats": "/api/stats",
                "websocket": "/ws",
            },
        }

    @app.post("/api/geocode")
    async def geocode_endpoint(body: GeocodeRequest, request: Request) -> dict[str, Any]:
        """Extract a location from free text and geocode it."""
        text = body.text or body.description
        if not text or not text.strip():
            raise InputValidationError("text", "text or description is required")

        result = await get_runtime(request).geocode(text)
        logger.info(f"Geocoding completed: {result.value['extracted_location']}")
        return result.value

    @app.post("/api/disasters/{disaster_id}/verify-image")
    async def verify_image_endpoint(
        disaster_id: str, body: VerifyImageRequest, request: Request
    ) -> dict[str, Any]:
        """Verify an image's authenticity in the context of an incident."""
        result = await get_runtime(request).verify_image(disaster_id, body.image_url)
        return {**result.value, "report_id": body.report_id, "cached": result.cached}

    @app.get("/api/disasters/{disaster_id}/official-updates")
    async def official_updates_endpoint(disaster_id: str, request: Request) -> list[dict[str, Any]]:
        """Official updates for an incident, newest first."""
        return await get_runtime(request).official_updates(disaster_id)

    @app.get("/api/disasters/{disaster_id}/social-media")
    async def social_media_endpoint(disaster_id: str, request: Request) -> list[dict[str, Any]]:
        """Social media reports for an incident, most relevant first."""
        return await get_runtime(request).social_media_reports(disaster_id)

    @app.get("/api/mock-social-media")
    async def mock_social_media_endpoint(
        request: Request,
        keyword: str | None = Query(None, max_length=100),
        location: str | None = Query(None, max_length=100),
        priority: str | None = Query(None, max_length=20),
    ) -> list[dict[str, Any]]:
        """Filtered view of the social feed."""
        return get_runtime(request).social_feed.search(
            keyword=keyword, location=location, priority=priority
        )

    @app.post("/api/disasters/{disaster_id}/events")
    async def incident_event_endpoint(
        disaster_id: str, body: IncidentEventRequest, request: Request
    ) -> dict[str, Any]:
        """Publish a primary-entity change to the incident's room."""
        delivered = await get_runtime(request).publish_incident_event(
            disaster_id, body.event_type, body.payload
        )
        return {"room": str(RoomId.disaster(disaster_id)), "delivered": delivered}

    @app.get("/api/stats")
    async def get_stats(request: Request) -> JSONResponse:
        """Get service statistics."""
        return JSONResponse(content=get_runtime(request).stats)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """
        Room subscription channel.

        Inbound: {"type": "join_room" | "leave_room", "room": "disaster_<id>"}
        Outbound: {"event", "room", "data", "emitted_at"} frames
        """
        runtime: EnrichmentRuntime = websocket.app.state.runtime
        hub = runtime.hub
        subscriber_id = uuid.uuid4().hex

        await websocket.accept()
        hub.connect(subscriber_id, websocket)
        await hub.send_to(
            subscriber_id,
            "connection_status",
            {"connected": True, "timestamp": datetime.now(UTC).isoformat()},
        )

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except ValueError:
                    await _send_error(websocket, "Message is not valid JSON", "MESSAGE_INVALID")
                    continue
                await _handle_client_message(runtime, subscriber_id, websocket, message)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket error for {subscriber_id}: {e}", exc_info=True)
        finally:
            hub.disconnect(subscriber_id)

    return app


async def _handle_client_message(
    runtime: EnrichmentRuntime,
    subscriber_id: str,
    websocket: WebSocket,
    message: Any,
) -> None:
    """Apply one inbound WebSocket message; malformed input gets an error frame."""
    hub = runtime.hub
    message_type = message.get("type") if isinstance(message, dict) else None

    if message_type == "ping":
        await _send_frame(websocket, None, "pong", {})
        return

    if message_type not in ("join_room", "leave_room"):
        await _send_error(websocket, f"Unknown message type: {message_type}", "MESSAGE_INVALID")
        return

    try:
        room = RoomId.parse(message.get("room"))
    except InvalidRoomError as e:
        await _send_error(websocket, e.message, e.code)
        return

    if message_type == "join_room":
        hub.join(subscriber_id, room)
        await _send_frame(websocket, room, "room_joined", {})
    else:
        hub.leave(subscriber_id, room)
        await _send_frame(websocket, room, "room_left", {})


async def _send_frame(
    websocket: WebSocket, room: RoomId | None, event_type: str, payload: dict[str, Any]
) -> None:
    event = BroadcastEvent(room=room, event_type=event_type, payload=payload)
    await websocket.send_json(event.to_frame())


async def _send_error(websocket: WebSocket, message: str, code: str | None) -> None:
    await _send_frame(websocket, None, "error", {"message": message, "code": code})


async def run_http_server(config: EnrichmentServiceConfig | None = None) -> None:
    """
    Run the HTTP server.

    Args:
        config: Service configuration
    """
    import uvicorn

    _config = config or EnrichmentServiceConfig()
    app = create_app(_config)

    logger.info(f"Starting HTTP server on {_config.host}:{_config.port}")

    server_config = uvicorn.Config(
        app,
        host=_config.host,
        port=_config.port,
        log_level=_config.log_level.lower(),
    )
    server = uvicorn.Server(server_config)
    await server.serve()
