"""Integration tests for session security endpoints."""

import time

import pytest
from httpx import AsyncClient

from tests.conftest import make_user
from tests.factories.user import TEST_PASSWORD


pytestmark = pytest.mark.integration

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _error_code(response) -> str:
    return response.json()["type"].rsplit("/", 1)[-1]


async def _login(client: AsyncClient, email: str, user_agent: str) -> dict:
    response = await client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": TEST_PASSWORD},
        headers={"User-Agent": user_agent},
    )
    assert response.status_code == 200
    data = response.json()
    return {
        "session_id": data["session_id"],
        "headers": {"Authorization": f"Bearer {data['access_token']}"},
    }


@pytest.fixture
async def user(db, roles):
    return await make_user(db, roles["viewer"], email="traveller@example.com")


class TestListSessions:
    """Tests for GET /api/v1/sessions."""

    async def test_lists_each_device(self, client: AsyncClient, user):
        """Every login shows up once with its parsed device info."""
        desktop = await _login(client, user.email, CHROME_UA)
        phone = await _login(client, user.email, IPHONE_UA)

        response = await client.get("/api/v1/sessions", headers=desktop["headers"])

        assert response.status_code == 200
        sessions = {s["session_id"]: s for s in response.json()}
        assert set(sessions) == {desktop["session_id"], phone["session_id"]}
        assert sessions[desktop["session_id"]]["is_current"] is True
        assert sessions[desktop["session_id"]]["browser"] == "Chrome"
        assert sessions[desktop["session_id"]]["device"] == "desktop"
        assert sessions[phone["session_id"]]["is_current"] is False
        assert sessions[phone["session_id"]]["device"] == "mobile"

    async def test_requires_authentication(self, client: AsyncClient):
        response = await client.get("/api/v1/sessions")

        assert response.status_code == 401


class TestRevokeSessions:
    """Tests for revoking sessions."""

    async def test_revoke_one_session(self, client: AsyncClient, user):
        """A revoked session can no longer call the API."""
        desktop = await _login(client, user.email, CHROME_UA)
        phone = await _login(client, user.email, IPHONE_UA)

        response = await client.delete(
            f"/api/v1/sessions/{phone['session_id']}", headers=desktop["headers"]
        )

        assert response.status_code == 204
        rejected = await client.get("/api/v1/auth/me", headers=phone["headers"])
        assert rejected.status_code == 401
        assert _error_code(rejected) == "session_revoked"
        still_ok = await client.get("/api/v1/auth/me", headers=desktop["headers"])
        assert still_ok.status_code == 200

    async def test_revoke_unknown_session(self, client: AsyncClient, user):
        desktop = await _login(client, user.email, CHROME_UA)

        response = await client.delete(
            "/api/v1/sessions/00000000-0000-0000-0000-000000000000",
            headers=desktop["headers"],
        )

        assert response.status_code == 404

    async def test_cannot_revoke_another_users_session(self, client: AsyncClient, db, user):
        other = await make_user(db, email="other@example.com")
        mine = await _login(client, user.email, CHROME_UA)
        theirs = await _login(client, other.email, CHROME_UA)

        response = await client.delete(
            f"/api/v1/sessions/{theirs['session_id']}", headers=mine["headers"]
        )

        assert response.status_code == 404
        assert (await client.get("/api/v1/auth/me", headers=theirs["headers"])).status_code == 200

    async def test_revoke_others_keeps_current(self, client: AsyncClient, user):
        """Signing out other devices leaves the current session alone."""
        current = await _login(client, user.email, CHROME_UA)
        await _login(client, user.email, IPHONE_UA)
        await _login(client, user.email, IPHONE_UA)

        response = await client.post(
            "/api/v1/sessions/revoke-others", headers=current["headers"]
        )

        assert response.status_code == 200
        assert response.json()["revoked"] == 2
        remaining = await client.get("/api/v1/sessions", headers=current["headers"])
        assert [s["session_id"] for s in remaining.json()] == [current["session_id"]]


class TestSessionTimeout:
    """Tests for the idle countdown and expiry."""

    async def test_status_of_fresh_session(self, client: AsyncClient, user):
        login = await _login(client, user.email, CHROME_UA)

        response = await client.get("/api/v1/sessions/status", headers=login["headers"])

        assert response.status_code == 200
        data = response.json()
        assert data["session_id"] == login["session_id"]
        assert data["timeout_seconds"] == 120 * 60
        assert data["expired"] is False
        assert data["show_warning"] is False

    async def test_status_does_not_extend(self, client: AsyncClient, user, redis):
        """Polling the countdown leaves the idle time untouched."""
        login = await _login(client, user.email, CHROME_UA)
        key = f"session:activity:{login['session_id']}"
        redis.values[key] = str(time.time() - 600)

        response = await client.get("/api/v1/sessions/status", headers=login["headers"])

        assert response.json()["idle_seconds"] >= 600
        assert float(redis.values[key]) < time.time() - 500

    async def test_extend_resets_idle_time(self, client: AsyncClient, user, redis):
        login = await _login(client, user.email, CHROME_UA)
        redis.values[f"session:activity:{login['session_id']}"] = str(time.time() - 600)

        response = await client.post("/api/v1/sessions/extend", headers=login["headers"])

        assert response.status_code == 200
        assert response.json()["idle_seconds"] < 5

    async def test_idle_session_expires(self, client: AsyncClient, user, redis):
        """A session idle past the configured lifetime is rejected and ended."""
        login = await _login(client, user.email, CHROME_UA)
        redis.values[f"session:activity:{login['session_id']}"] = str(time.time() - 121 * 60)

        response = await client.get("/api/v1/auth/me", headers=login["headers"])

        assert response.status_code == 401
        assert _error_code(response) == "session_expired"
        again = await client.get("/api/v1/auth/me", headers=login["headers"])
        assert _error_code(again) == "session_revoked"
