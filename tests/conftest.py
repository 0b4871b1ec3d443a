"""
Hostel Finder - test configuration and fixtures
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from hostel_service.application.notifications import NotificationCenter
from hostel_service.application.query_cache import QueryCache
from hostel_service.config import Settings
from hostel_service.container import build_container
from hostel_service.domain.documents import user_to_document
from hostel_service.domain.models import UserProfile, UserRole
from hostel_service.infrastructure.cdn import CdnClient
from hostel_service.infrastructure.database.memory import (
    MemoryFavoriteRepository, MemoryHostelRepository, MemoryReviewRepository,
    MemoryStore, MemoryUserRepository,
)
from hostel_service.infrastructure.geo_services import GeoServicesClient
from hostel_service.infrastructure.identity import IdentityClient
from hostel_service.main import app


def hostel_document(hostel_id: str, **overrides) -> Dict[str, Any]:
    """Minimal valid hostel document"""
    document = {
        "_id": hostel_id,
        "name": f"Hostel {hostel_id}",
        "description": "",
        "location": "Science",
        "coordinates": {"latitude": 5.1167, "longitude": -1.2833},
        "gender": "mixed",
        "price_range": {"min": 500, "max": 900, "currency": "GHS"},
        "amenities": ["wifi"],
        "average_rating": 4.0,
        "review_count": 0,
        "favorite_count": 0,
        "views": 0,
        "verified": False,
        "featured": False,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    document.update(overrides)
    return document


SAMPLE_HOSTELS = [
    hostel_document(
        "valco",
        name="Valco Trust Hostel",
        description="Short walk to the science faculty",
        location="Valco Trust",
        coordinates={"latitude": 5.1140, "longitude": -1.2840},
        price_range={"min": 800, "max": 1200, "currency": "GHS"},
        amenities=["wifi", "security", "water"],
        average_rating=4.5,
        views=120,
        favorite_count=2,
        verified=True,
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    ),
    hostel_document(
        "amamoma",
        name="Amamoma Lodge",
        location="Ayensu",
        gender="female",
        coordinates={"latitude": 5.1100, "longitude": -1.2900},
        price_range={"min": 400, "max": 600, "currency": "GHS"},
        amenities=["water", "fan"],
        average_rating=3.9,
        views=40,
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    ),
    hostel_document(
        "annex",
        name="Science Annex",
        location="Science",
        gender="male",
        price_range={"min": 1500, "max": 2500, "currency": "GHS"},
        amenities=["wifi", "meals", "air-conditioning"],
        average_rating=4.8,
        views=300,
        verified=True,
        featured=True,
        created_at=datetime(2023, 9, 1, tzinfo=timezone.utc),
    ),
    hostel_document(
        "heights",
        name="Kwaprow Heights",
        location="Kwaprow",
        coordinates={"latitude": 5.1300, "longitude": -1.3000},
        price_range={"min": 300, "max": 500, "currency": "GHS"},
        amenities=["fan"],
        average_rating=3.0,
        views=5,
        created_at=datetime(2024, 8, 1, tzinfo=timezone.utc),
    ),
]

PASSWORD = "secret123"

ACCOUNTS = {
    "student@ucc.edu.gh": {"localId": "user-1", "displayName": "Ama Student", "role": UserRole.USER},
    "manager@ucc.edu.gh": {"localId": "manager-1", "displayName": "Kofi Manager", "role": UserRole.MANAGER},
    "admin@ucc.edu.gh": {"localId": "admin-1", "displayName": "Esi Admin", "role": UserRole.ADMIN},
}


class FakeIdentityProvider:
    """Identity-toolkit style endpoints served through httpx.MockTransport"""

    def __init__(self):
        self.accounts = {
            email: {"localId": info["localId"], "displayName": info["displayName"], "password": PASSWORD}
            for email, info in ACCOUNTS.items()
        }
        self.requests = []

    @staticmethod
    def token_for(user_id: str) -> str:
        return f"token-{user_id}"

    @staticmethod
    def _error(code: str) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": 400, "message": code}})

    def _session(self, email: str) -> httpx.Response:
        account = self.accounts[email]
        return httpx.Response(200, json={
            "localId": account["localId"],
            "email": email,
            "idToken": self.token_for(account["localId"]),
            "refreshToken": "refresh",
            "expiresIn": "3600",
        })

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit(":", 1)[-1]
        body = json.loads(request.content or b"{}")
        self.requests.append((method, body))

        if method == "signInWithPassword":
            account = self.accounts.get(body["email"])
            if account is None:
                return self._error("EMAIL_NOT_FOUND")
            if account["password"] != body["password"]:
                return self._error("INVALID_PASSWORD")
            return self._session(body["email"])
        if method == "signUp":
            if body["email"] in self.accounts:
                return self._error("EMAIL_EXISTS")
            if len(body["password"]) < 6:
                return self._error("WEAK_PASSWORD : Password should be at least 6 characters")
            user_id = f"user-{len(self.accounts) + 1}"
            self.accounts[body["email"]] = {"localId": user_id, "displayName": None, "password": body["password"]}
            return self._session(body["email"])
        if method == "signInWithIdp":
            email = body["postBody"].split("&")[0].split("=", 1)[1] + "@gmail.com"
            self.accounts.setdefault(email, {"localId": f"google-{len(self.accounts)}", "displayName": None,
                                             "password": None})
            return self._session(email)
        if method == "lookup":
            for email, account in self.accounts.items():
                if self.token_for(account["localId"]) == body["idToken"]:
                    return httpx.Response(200, json={"users": [{
                        "localId": account["localId"],
                        "email": email,
                        "displayName": account["displayName"],
                    }]})
            return self._error("INVALID_ID_TOKEN")
        if method == "sendOobCode":
            return httpx.Response(200, json={"email": body["email"]})
        if method == "resetPassword":
            if body["oobCode"] != "valid-code":
                return self._error("INVALID_OOB_CODE")
            return httpx.Response(200, json={"email": "student@ucc.edu.gh"})
        if method == "update":
            return httpx.Response(200, json={"displayName": body.get("displayName")})
        return httpx.Response(404, json={"error": {"message": "NOT_FOUND"}})


def cdn_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={
        "public_id": "hostels/photo-1",
        "secure_url": "https://res.cloudinary.com/demo/image/upload/v1/hostels/photo-1.jpg",
        "width": 640,
        "height": 480,
        "bytes": 1024,
        "format": "jpg",
    })


def geo_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/search":
        return httpx.Response(200, json=[
            {"display_name": "Science Market, Cape Coast", "lat": "5.1170", "lon": "-1.2830", "type": "marketplace"},
        ])
    return httpx.Response(200, json={
        "code": "Ok",
        "routes": [{"distance": 1250.0, "duration": 300.0, "geometry": {"type": "LineString", "coordinates": []}}],
    })


@pytest.fixture
def make_hostel():
    return hostel_document


@pytest.fixture
async def store() -> MemoryStore:
    store = MemoryStore()
    for document in SAMPLE_HOSTELS:
        store.insert("hostels", document)
    return store


@pytest.fixture
def empty_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def hostel_repo(store):
    return MemoryHostelRepository(store)


@pytest.fixture
def review_repo(store):
    return MemoryReviewRepository(store)


@pytest.fixture
def favorite_repo(store):
    return MemoryFavoriteRepository(store)


@pytest.fixture
def user_repo(store):
    return MemoryUserRepository(store)


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache(timeout=2, retries=0)


@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter(default_duration=0)


@pytest.fixture
def student() -> UserProfile:
    return UserProfile(id="user-1", email="student@ucc.edu.gh", name="Ama Student")


@pytest.fixture
def manager() -> UserProfile:
    return UserProfile(id="manager-1", email="manager@ucc.edu.gh", name="Kofi Manager", role=UserRole.MANAGER)


@pytest.fixture
def admin() -> UserProfile:
    return UserProfile(id="admin-1", email="admin@ucc.edu.gh", name="Esi Admin", role=UserRole.ADMIN)


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
async def identity_client(identity_provider):
    client = IdentityClient("test-key", "https://identity.test/v1", transport=httpx.MockTransport(identity_provider.handler))
    await client.start()
    yield client
    await client.stop()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        STORE_BACKEND="memory",
        PREFERENCES_BACKEND="memory",
        IDENTITY_API_KEY="test-key",
        IDENTITY_API_URL="https://identity.test/v1",
        CDN_CLOUD_NAME="demo",
        CDN_UPLOAD_PRESET="unsigned",
        NOTIFICATION_DURATION=0,
    )


@pytest.fixture
async def container(test_settings, identity_provider):
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
    await container.start()
    store = container.hostel_repo.store
    for document in SAMPLE_HOSTELS:
        store.insert("hostels", document)
    for email, info in ACCOUNTS.items():
        profile = UserProfile(id=info["localId"], email=email, name=info["displayName"], role=info["role"])
        await container.user_repo.create(user_to_document(profile))
    yield container
    await container.cache.settle()
    await container.stop()


@pytest.fixture
async def client(container):
    """HTTP client against the app with the test container installed"""
    app.state.container = container
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.container = None


def bearer(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {FakeIdentityProvider.token_for(user_id)}"}


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return bearer("user-1")


@pytest.fixture
def manager_headers() -> Dict[str, str]:
    return bearer("manager-1")


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return bearer("admin-1")
