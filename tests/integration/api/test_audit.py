"""Integration tests for the audit trail."""

import pytest
from httpx import AsyncClient

from backoffice.core.auth.backend import decode_token


pytestmark = pytest.mark.integration


def _session_of(headers: dict[str, str]) -> str:
    token_data = decode_token(headers["Authorization"].removeprefix("Bearer "))
    assert token_data is not None
    return str(token_data.session_id)


class TestAuditTrail:
    """Tests for /api/v1/audit."""

    async def test_change_records_actor_and_session(
        self, client: AsyncClient, admin, admin_headers
    ):
        created = await client.post(
            "/api/v1/roles",
            json={"name": "support", "display_name": "Support"},
            headers=admin_headers,
        )
        assert created.status_code == 201

        response = await client.get(
            "/api/v1/audit",
            params={"resource_type": "roles", "action": "create"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        entry = next(
            e for e in response.json()["items"] if e["resource_id"] == created.json()["id"]
        )
        assert entry["user_id"] == str(admin.id)
        assert entry["session_id"] == _session_of(admin_headers)
        assert entry["changes"]["name"] == "support"

    async def test_viewer_cannot_read_audit_trail(self, client: AsyncClient, viewer_headers):
        response = await client.get("/api/v1/audit", headers=viewer_headers)

        assert response.status_code == 403
