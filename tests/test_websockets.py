import copy

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from hostel_service.application.query_cache import QueryCache
from hostel_service.container import build_container
from hostel_service.domain.documents import user_to_document
from hostel_service.domain.models import UserProfile
from hostel_service.infrastructure.cdn import CdnClient
from hostel_service.infrastructure.geo_services import GeoServicesClient
from hostel_service.infrastructure.identity import IdentityClient
from hostel_service.main import app

from .conftest import ACCOUNTS, SAMPLE_HOSTELS, bearer, cdn_handler, geo_handler


@pytest.fixture
def live_client(test_settings, identity_provider):
    """Synchronous client; the container starts inside the app lifespan"""
    container = build_container(
        config=test_settings,
        cache=QueryCache(timeout=2, retries=0),
        identity=IdentityClient(
            test_settings.IDENTITY_API_KEY,
            test_settings.IDENTITY_API_URL,
            transport=httpx.MockTransport(identity_provider.handler),
        ),
        cdn=CdnClient("demo", "unsigned", transport=httpx.MockTransport(cdn_handler)),
        geo=GeoServicesClient(transport=httpx.MockTransport(geo_handler)),
    )
    collections = container.hostel_repo.store.collections
    for document in SAMPLE_HOSTELS:
        collections["hostels"][document["_id"]] = copy.deepcopy(document)
    for email, info in ACCOUNTS.items():
        profile = UserProfile(id=info["localId"], email=email, name=info["displayName"], role=info["role"])
        collections["users"][profile.id] = user_to_document(profile)
    app.state.container = container
    with TestClient(app) as client:
        yield client
    app.state.container = None


def receive_until(ws, predicate, limit=10):
    for _ in range(limit):
        message = ws.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected message not received")


class TestMapSocket:
    def test_position_updates(self, live_client):
        with live_client.websocket_connect("/ws/map") as ws:
            ws.send_json({"type": "position", "latitude": 5.1167, "longitude": -1.2833, "accuracy": 10})
            first = ws.receive_json()
            assert first["type"] == "location"
            assert first["area"] == "Science"
            assert first["moved"] is True
            assert first["permission"] == "granted"
            assert [h["id"] for h in first["nearby"]] == ["annex", "valco", "amamoma"]

            ws.send_json({"type": "position", "latitude": 5.1168, "longitude": -1.2833})
            second = ws.receive_json()
            assert second["moved"] is False
            assert "nearby" not in second

    def test_errors(self, live_client):
        with live_client.websocket_connect("/ws/map") as ws:
            ws.send_json({"type": "error", "code": 1})
            denied = ws.receive_json()
            assert denied == {
                "type": "location_error",
                "kind": "permission-denied",
                "message": "Location permission denied",
                "retryable": False,
                "permission": "denied",
            }
            ws.send_json({"type": "error", "code": 3})
            timeout = ws.receive_json()
            assert timeout["retryable"] is True
            assert timeout["permission"] == "denied"

            ws.send_json({"type": "unsupported"})
            assert ws.receive_json()["permission"] == "unsupported"

    def test_viewport(self, live_client):
        with live_client.websocket_connect("/ws/map") as ws:
            ws.send_json({"type": "viewport", "north": 5.118, "south": 5.113, "east": -1.283, "west": -1.285})
            message = ws.receive_json()
            assert message["type"] == "hostels"
            assert {h["id"] for h in message["items"]} == {"annex", "valco"}
            assert message["bounds"]["south"] < 5.1140

            ws.send_json({"type": "zoom"})
            assert ws.receive_json()["error"] == "unknown_message"


class TestSearchSocket:
    def test_only_the_last_term_is_searched(self, live_client):
        with live_client.websocket_connect("/ws/search") as ws:
            for term in ("sc", "sci", "scien", "science"):
                ws.send_json({"term": term})
            message = ws.receive_json()
            assert message["type"] == "results"
            assert message["term"] == "science"
            assert [h["id"] for h in message["items"]] == ["annex", "valco"]


class TestHostelSocket:
    def test_initial_state(self, live_client):
        token = bearer("user-1")["Authorization"].split()[1]
        with live_client.websocket_connect(f"/ws/hostels/valco?token={token}") as ws:
            messages = {m["type"]: m["data"] for m in (ws.receive_json() for _ in range(3))}
            assert messages["hostel"]["id"] == "valco"
            assert messages["reviews"] == []
            assert messages["favorite"] is False

    def test_live_reviews(self, live_client):
        with live_client.websocket_connect("/ws/hostels/valco") as ws:
            receive_until(ws, lambda m: m["type"] == "reviews")
            response = live_client.post(
                "/api/v1/hostels/valco/reviews",
                headers=bearer("user-1"),
                json={"rating": 5, "comment": "Friendly porters and good lighting"},
            )
            assert response.status_code == 201
            update = receive_until(ws, lambda m: m["type"] == "reviews" and m["data"])
            assert update["data"][0]["rating"] == 5
            hostel = receive_until(ws, lambda m: m["type"] == "hostel" and m["data"]["review_count"] == 1)
            assert hostel["data"]["average_rating"] == 5.0

    def test_deleted_hostel(self, live_client):
        with live_client.websocket_connect("/ws/hostels/heights") as ws:
            receive_until(ws, lambda m: m["type"] == "hostel")
            live_client.delete("/api/v1/admin/hostels/heights", headers=bearer("admin-1"))
            assert receive_until(ws, lambda m: m["type"] == "hostel")["data"] is None

    def test_invalid_token(self, live_client):
        with live_client.websocket_connect("/ws/hostels/valco?token=forged") as ws:
            with pytest.raises(WebSocketDisconnect) as exc:
                ws.receive_json()
        assert exc.value.code == 4401
