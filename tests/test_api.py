from io import BytesIO

from httpx import AsyncClient
from PIL import Image

from .conftest import PASSWORD, bearer


async def test_health(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestHostelQueries:
    async def test_default_query(self, client: AsyncClient):
        response = await client.post("/api/v1/hostels/query", json={})
        assert response.status_code == 200
        data = response.json()
        assert [h["id"] for h in data["items"]] == ["annex", "valco", "amamoma", "heights"]
        assert data["status"] == "ready"
        assert data["has_more"] is False
        assert data["error"] is None

    async def test_filtered_query(self, client: AsyncClient):
        response = await client.post("/api/v1/hostels/query", json={
            "filters": {"price_min": 700, "price_max": 1000, "amenities": ["wifi"]},
            "sort": "price-asc",
        })
        assert [h["id"] for h in response.json()["items"]] == ["valco"]

    async def test_invalid_filters(self, client: AsyncClient):
        response = await client.post("/api/v1/hostels/query", json={"filters": {"price_min": 900, "price_max": 100}})
        assert response.status_code == 422
        assert response.json()["errors"] == {
            "price_max": "Maximum price must be greater than or equal to minimum price",
        }

    async def test_unknown_sort_is_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/hostels/query", json={"sort": "cheapest"})
        assert response.status_code == 422

    async def test_remembered_filters(self, client: AsyncClient, auth_headers):
        await client.post("/api/v1/hostels/query", headers=auth_headers, json={
            "filters": {"gender": "female"},
            "sort": "newest",
            "remember": True,
        })
        response = await client.get("/api/v1/hostels/preferred", headers=auth_headers)
        assert [h["id"] for h in response.json()["items"]] == ["amamoma"]

    async def test_explicit_pages(self, client: AsyncClient):
        first = (await client.post("/api/v1/hostels/page", json={"sort": "newest", "page_size": 3})).json()
        assert [h["id"] for h in first["items"]] == ["heights", "amamoma", "valco"]
        assert first["has_more"] is True
        second = (await client.post("/api/v1/hostels/page", json={
            "sort": "newest", "page_size": 3, "cursor": first["cursor"],
        })).json()
        assert [h["id"] for h in second["items"]] == ["annex"]
        assert second["has_more"] is False

    async def test_bad_cursor(self, client: AsyncClient):
        response = await client.post("/api/v1/hostels/page", json={"cursor": "garbage!"})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_cursor"

    async def test_load_more_and_refresh(self, client: AsyncClient):
        response = await client.post("/api/v1/hostels/query/more", json={})
        assert len(response.json()["items"]) == 4
        response = await client.post("/api/v1/hostels/query/refresh", json={})
        assert response.json()["status"] == "ready"
        response = await client.post("/api/v1/hostels/query/retry", json={})
        assert len(response.json()["items"]) == 4


class TestHostelDetails:
    async def test_detail_counts_a_view(self, client: AsyncClient, container):
        response = await client.get("/api/v1/hostels/valco")
        assert response.status_code == 200
        assert response.json()["name"] == "Valco Trust Hostel"
        await container.cache.settle()
        assert (await container.hostel_repo.find_by_id("valco"))["views"] == 121

    async def test_missing(self, client: AsyncClient):
        response = await client.get("/api/v1/hostels/nowhere")
        assert response.status_code == 404
        assert response.json()["success"] is False

    async def test_search(self, client: AsyncClient, auth_headers):
        assert (await client.get("/api/v1/hostels/search", params={"q": "sc"})).json() == []
        response = await client.get("/api/v1/hostels/search", params={"q": "science"}, headers=auth_headers)
        assert [h["id"] for h in response.json()] == ["annex", "valco"]
        prefs = (await client.get("/api/v1/preferences", headers=auth_headers)).json()
        assert prefs["recent_searches"] == ["science"]

    async def test_nearby(self, client: AsyncClient):
        response = await client.get("/api/v1/hostels/nearby", params={"lat": 5.1167, "lng": -1.2833})
        data = response.json()
        assert [h["id"] for h in data] == ["annex", "valco", "amamoma"]
        assert data[0]["distance_text"] == "0 m"

    async def test_in_bounds(self, client: AsyncClient):
        response = await client.get("/api/v1/hostels/in-bounds", params={
            "north": 5.118, "south": 5.113, "east": -1.283, "west": -1.285,
        })
        data = response.json()
        assert {h["id"] for h in data["items"]} == {"annex", "valco"}
        assert data["bounds"]["north"] > data["bounds"]["south"]


class TestAuth:
    async def test_login(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/login", json={"email": "student@ucc.edu.gh", "password": PASSWORD})
        assert response.status_code == 200
        data = response.json()
        assert data["id_token"] == "token-user-1"
        assert data["user"]["name"] == "Ama Student"

    async def test_wrong_password(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/login", json={"email": "student@ucc.edu.gh", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["error"] == "wrong-password"

    async def test_signup(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/signup", json={
            "email": "kojo@ucc.edu.gh", "password": PASSWORD, "name": "Kojo", "role": "manager",
        })
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "manager"

    async def test_duplicate_signup(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/signup", json={
            "email": "student@ucc.edu.gh", "password": PASSWORD, "name": "Ama",
        })
        assert response.status_code == 409

    async def test_me(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/v1/users/me", headers=auth_headers)
        assert response.json()["email"] == "student@ucc.edu.gh"
        response = await client.patch("/api/v1/users/me", headers=auth_headers, json={"phone": "0241234567"})
        assert response.json()["phone"] == "0241234567"

    async def test_unauthenticated(self, client: AsyncClient):
        response = await client.get("/api/v1/users/me")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_forged_token(self, client: AsyncClient):
        response = await client.get("/api/v1/users/me", headers={"Authorization": "Bearer forged"})
        assert response.status_code == 401
        assert response.json()["error"] == "invalid-token"

    async def test_password_reset(self, client: AsyncClient):
        response = await client.post("/api/v1/auth/password-reset/confirm", json={"code": "bad", "new_password": PASSWORD})
        assert response.status_code == 401
        response = await client.post("/api/v1/auth/password-reset/confirm", json={
            "code": "valid-code", "new_password": PASSWORD,
        })
        assert response.json()["success"] is True


class TestFavorites:
    async def test_toggle(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/v1/favorites/valco/toggle", headers=auth_headers)
        assert response.json() == {"hostel_id": "valco", "favorited": True}

        favorites = (await client.get("/api/v1/favorites", headers=auth_headers)).json()
        assert favorites["hostel_ids"] == ["valco"]
        assert favorites["hostels"][0]["favorite_count"] == 3

        status = (await client.get("/api/v1/favorites/valco", headers=auth_headers)).json()
        assert status["favorited"] is True

        notifications = (await client.get("/api/v1/notifications", headers=auth_headers)).json()
        assert [n["message"] for n in notifications] == ["Added to favorites"]

    async def test_requires_auth(self, client: AsyncClient):
        response = await client.post("/api/v1/favorites/valco/toggle")
        assert response.status_code == 401

    async def test_unknown_hostel(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/v1/favorites/nowhere/toggle", headers=auth_headers)
        assert response.status_code == 404

    async def test_dismiss_notification(self, client: AsyncClient, auth_headers):
        await client.post("/api/v1/favorites/valco/toggle", headers=auth_headers)
        notification = (await client.get("/api/v1/notifications", headers=auth_headers)).json()[0]
        response = await client.delete(f"/api/v1/notifications/{notification['id']}", headers=auth_headers)
        assert response.status_code == 200
        response = await client.delete(f"/api/v1/notifications/{notification['id']}", headers=auth_headers)
        assert response.status_code == 404


class TestReviews:
    async def test_add_and_list(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/v1/hostels/valco/reviews", headers=auth_headers, json={
            "rating": 4, "comment": "Clean rooms and reliable water",
        })
        assert response.status_code == 201
        review_id = response.json()["id"]

        reviews = (await client.get("/api/v1/hostels/valco/reviews")).json()
        assert [r["id"] for r in reviews["items"]] == [review_id]
        assert (await client.get("/api/v1/hostels/valco")).json()["review_count"] == 1

        response = await client.post(f"/api/v1/reviews/{review_id}/helpful", headers=auth_headers)
        assert response.status_code == 200

    async def test_invalid_review(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/v1/hostels/valco/reviews", headers=auth_headers, json={
            "rating": 0, "comment": "Too short",
        })
        assert response.status_code == 422
        assert set(response.json()["errors"]) == {"rating", "comment"}

    async def test_load_more(self, client: AsyncClient):
        response = await client.post("/api/v1/hostels/valco/reviews/more")
        assert response.json()["items"] == []


class TestListings:
    LISTING = {
        "name": "Oguaa Lodge",
        "location": "Science",
        "latitude": 5.1160,
        "longitude": -1.2830,
        "gender": "mixed",
        "price_min": 600,
        "price_max": 900,
        "amenities": ["wifi", "water"],
    }

    async def test_students_cannot_create(self, client: AsyncClient, auth_headers):
        response = await client.post("/api/v1/hostels", headers=auth_headers, json=self.LISTING)
        assert response.status_code == 403

    async def test_manager_creates_and_admin_verifies(self, client: AsyncClient, manager_headers, admin_headers):
        response = await client.post("/api/v1/hostels", headers=manager_headers, json=self.LISTING)
        assert response.status_code == 201
        hostel = response.json()
        assert hostel["verified"] is False
        assert hostel["created_by"] == "manager-1"

        response = await client.patch(f"/api/v1/hostels/{hostel['id']}", headers=manager_headers,
                                      json={"description": "Quiet and close to the library"})
        assert response.json()["description"] == "Quiet and close to the library"

        response = await client.post(f"/api/v1/admin/hostels/{hostel['id']}/verify", headers=admin_headers)
        assert response.json()["verified"] is True

        verified = await client.post("/api/v1/hostels/query", json={"filters": {"verified_only": True}})
        assert hostel["id"] in {h["id"] for h in verified.json()["items"]}

    async def test_manager_cannot_edit_others(self, client: AsyncClient, manager_headers):
        response = await client.patch("/api/v1/hostels/valco", headers=manager_headers, json={"name": "Mine"})
        assert response.status_code == 403

    async def test_admin_delete(self, client: AsyncClient, admin_headers, manager_headers):
        response = await client.delete("/api/v1/admin/hostels/heights", headers=manager_headers)
        assert response.status_code == 403
        response = await client.delete("/api/v1/admin/hostels/heights", headers=admin_headers)
        assert response.status_code == 200
        assert (await client.get("/api/v1/hostels/heights")).status_code == 404

    async def test_role_change(self, client: AsyncClient, admin_headers):
        response = await client.put("/api/v1/admin/users/user-1/role", headers=admin_headers, json={"role": "manager"})
        assert response.json()["role"] == "manager"
        response = await client.post("/api/v1/hostels", headers=bearer("user-1"), json=self.LISTING)
        assert response.status_code == 201


class TestPreferences:
    async def test_update(self, client: AsyncClient, auth_headers):
        response = await client.patch("/api/v1/preferences", headers=auth_headers, json={
            "theme": "dark",
            "filters": {"gender": "male", "verified_only": True},
            "view_mode": "map",
        })
        data = response.json()
        assert data["theme"] == "dark"
        assert data["view_mode"] == "map"
        assert data["active_filter_count"] == 2

        data = (await client.post("/api/v1/preferences/filters/reset", headers=auth_headers)).json()
        assert data["active_filter_count"] == 0
        assert data["theme"] == "dark"

    async def test_recent_searches(self, client: AsyncClient, auth_headers):
        for term in ("valco", "amamoma", "valco"):
            response = await client.post("/api/v1/preferences/recent-searches", headers=auth_headers,
                                         json={"term": term})
        assert response.json()["recent_searches"] == ["valco", "amamoma"]
        response = await client.delete("/api/v1/preferences/recent-searches", headers=auth_headers)
        assert response.json()["recent_searches"] == []

    async def test_requires_auth(self, client: AsyncClient):
        assert (await client.get("/api/v1/preferences")).status_code == 401


class TestMapAndMedia:
    async def test_config(self, client: AsyncClient):
        data = (await client.get("/api/v1/map/config")).json()
        assert data["zoom"] == 15
        assert data["center"] == {"latitude": 5.1167, "longitude": -1.2833}
        assert "valco" in data["locations"]

    async def test_area(self, client: AsyncClient):
        response = await client.get("/api/v1/map/area", params={"lat": 5.1167, "lng": -1.2833})
        assert response.json() == {"name": "Science"}

    async def test_geocode(self, client: AsyncClient):
        response = await client.get("/api/v1/map/geocode", params={"q": "Science Market"})
        assert response.json()[0]["name"] == "Science Market"

    async def test_route(self, client: AsyncClient):
        response = await client.get("/api/v1/map/route", params={
            "from_lat": 5.1167, "from_lng": -1.2833, "to_lat": 5.1140, "to_lng": -1.2840,
        })
        data = response.json()
        assert data["distance"] == "1.2 km"
        assert data["duration"] == "5 min"

    async def test_image_url(self, client: AsyncClient):
        response = await client.get("/api/v1/media/url/hostels/photo-1", params={"preset": "thumbnail"})
        assert response.json()["url"] == (
            "https://res.cloudinary.com/demo/image/upload/c_thumb,w_150,h_150,g_auto/q_auto,f_auto/hostels/photo-1"
        )
        response = await client.get("/api/v1/media/url/hostels/photo-1", params={"preset": "poster"})
        assert response.status_code == 422

    async def test_upload(self, client: AsyncClient, manager_headers):
        buffer = BytesIO()
        Image.new("RGB", (32, 32), (0, 80, 160)).save(buffer, format="PNG")
        response = await client.post(
            "/api/v1/media/upload",
            headers=manager_headers,
            files=[("files", ("room.png", buffer.getvalue(), "image/png"))],
        )
        assert response.status_code == 200
        images = response.json()["images"]
        assert images[0]["public_id"] == "hostels/photo-1"
        assert images[0]["is_primary"] is True

    async def test_upload_rejects_other_types(self, client: AsyncClient, manager_headers):
        response = await client.post(
            "/api/v1/media/upload",
            headers=manager_headers,
            files=[("files", ("notes.txt", b"hello", "text/plain"))],
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Please upload a JPEG, PNG, WebP, or HEIC image"
