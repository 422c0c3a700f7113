"""
Tests for the FastAPI transport (REST endpoints and /ws rooms).
"""

import pytest
from fastapi.testclient import TestClient

from src.services.enrichment.adapters.database import InMemoryIncidentStore
from src.services.enrichment.config import EnrichmentServiceConfig
from src.services.enrichment.core.models import IncidentContext
from src.services.enrichment.runtime import EnrichmentRuntime
from src.services.enrichment.transports.http import create_app


@pytest.fixture
def client():
    config = EnrichmentServiceConfig(fema_enabled=False)
    runtime = EnrichmentRuntime.build(
        config,
        incidents=InMemoryIncidentStore(
            [IncidentContext(incident_id="1", tags=("water",), location_name="Manhattan, NYC")]
        ),
    )
    with TestClient(create_app(runtime=runtime)) as client:
        yield client


class TestProbes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    def test_ready(self, client):
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_root_lists_endpoints(self, client):
        body = client.get("/").json()
        assert body["name"] == "disaster-enrichment"
        assert body["endpoints"]["websocket"] == "/ws"


class TestGeocodeEndpoint:
    def test_geocode_text(self, client):
        response = client.post("/api/geocode", json={"text": "Flooding near Manhattan, NYC, need food"})

        assert response.status_code == 200
        body = response.json()
        assert body["extracted_location"] == "Manhattan, NYC"
        assert body["coordinates"]["lat"] == 40.7831
        assert body["coordinates"]["service"] == "mock"

    def test_geocode_description(self, client):
        response = client.post("/api/geocode", json={"description": "Shelter open in Brooklyn tonight"})
        assert response.json()["extracted_location"] == "Brooklyn"

    def test_missing_text(self, client):
        response = client.post("/api/geocode", json={})

        assert response.status_code == 400
        assert response.json()["code"] == "INPUT_INVALID"

    def test_blank_text(self, client):
        assert client.post("/api/geocode", json={"text": "   "}).status_code == 400


class TestIncidentEndpoints:
    def test_verify_image(self, client):
        response = client.post(
            "/api/disasters/1/verify-image",
            json={"image_url": "https://img.test/staged.jpg", "report_id": "r-7"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "suspicious"
        assert body["report_id"] == "r-7"
        assert body["cached"] is False

    def test_verify_image_unknown_incident(self, client):
        response = client.post(
            "/api/disasters/999/verify-image", json={"image_url": "https://img.test/a.jpg"}
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Disaster not found: 999", "code": "INCIDENT_NOT_FOUND"}

    def test_verify_image_requires_url(self, client):
        assert client.post("/api/disasters/1/verify-image", json={}).status_code == 422

    def test_official_updates(self, client):
        response = client.get("/api/disasters/1/official-updates")

        assert response.status_code == 200
        assert [u["source"] for u in response.json()] == ["American Red Cross"]

    def test_official_updates_unknown_incident(self, client):
        assert client.get("/api/disasters/999/official-updates").status_code == 404

    def test_social_media(self, client):
        response = client.get("/api/disasters/1/social-media")

        assert response.status_code == 200
        posts = response.json()
        assert [p["id"] for p in posts] == ["3", "1"]
        assert all("relevance_score" in p for p in posts)

    def test_mock_social_media_filters(self, client):
        response = client.get("/api/mock-social-media", params={"keyword": "shelter"})
        assert [p["id"] for p in response.json()] == ["2", "4"]

    def test_event_with_unknown_type(self, client):
        response = client.post(
            "/api/disasters/1/events", json={"event_type": "disaster_deleted", "payload": {}}
        )
        assert response.status_code == 400

    def test_stats(self, client):
        client.post("/api/geocode", json={"text": "Shelter open in Brooklyn tonight"})

        stats = client.get("/api/stats").json()

        assert stats["resolvers"]["geocoding"]["resolutions"] == 1
        assert stats["tasks"]["heartbeat"]["running"] is True


class TestWebSocket:
    """Room subscriptions over /ws."""

    def test_connection_status_on_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            frame = ws.receive_json()

        assert frame["event"] == "connection_status"
        assert frame["room"] is None
        assert frame["data"]["connected"] is True

    def test_join_then_receive_room_event(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "join_room", "room": "disaster_1"})
            joined = ws.receive_json()

            response = client.post(
                "/api/disasters/1/events",
                json={"event_type": "disaster_updated", "payload": {"title": "Flood update"}},
            )
            event = ws.receive_json()

        assert joined["event"] == "room_joined"
        assert joined["room"] == "disaster_1"
        assert response.json() == {"room": "disaster_1", "delivered": 1}
        assert event["event"] == "disaster_updated"
        assert event["room"] == "disaster_1"
        assert event["data"] == {"title": "Flood update"}

    def test_leave_room_stops_delivery(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "join_room", "room": "disaster_1"})
            ws.receive_json()
            ws.send_json({"type": "leave_room", "room": "disaster_1"})
            left = ws.receive_json()

            response = client.post(
                "/api/disasters/1/events", json={"event_type": "resources_updated", "payload": {}}
            )

        assert left["event"] == "room_left"
        assert response.json()["delivered"] == 0

    def test_invalid_room(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "join_room", "room": "lobby"})
            frame = ws.receive_json()

        assert frame["event"] == "error"
        assert frame["data"]["code"] == "ROOM_INVALID"

    def test_invalid_json(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_text("{not json")
            frame = ws.receive_json()

        assert frame["event"] == "error"
        assert frame["data"]["code"] == "MESSAGE_INVALID"

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "subscribe_all"})
            frame = ws.receive_json()

        assert frame["data"]["code"] == "MESSAGE_INVALID"

    def test_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()
            ws.send_json({"type": "ping"})
            assert ws.receive_json()["event"] == "pong"

