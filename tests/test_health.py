"""Tests for health check endpoints."""

import pytest
from httpx import AsyncClient

from backoffice import __version__


@pytest.mark.asyncio
async def test_liveness_endpoint(client: AsyncClient):
    """Test that liveness endpoint returns 200."""
    response = await client.get("/health/live")

    assert response.status_code == 200
    assert response.json()["status"] == "alive"


@pytest.mark.asyncio
async def test_readiness_endpoint(client: AsyncClient):
    """Test that readiness endpoint checks the database and Redis."""
    response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"] == {"database": "ok", "redis": "ok"}
    assert data["jobs"] == "ok"


@pytest.mark.asyncio
async def test_readiness_degraded_without_redis(client: AsyncClient, redis, monkeypatch):
    """Readiness reports 503 when Redis cannot be reached."""

    async def refuse() -> bool:
        raise ConnectionRefusedError("redis down")

    monkeypatch.setattr(redis, "ping", refuse)

    response = await client.get("/health/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "degraded"
    assert data["checks"]["database"] == "ok"
    assert "redis down" in data["checks"]["redis"]


@pytest.mark.asyncio
async def test_info_endpoint(client: AsyncClient):
    """Test that info endpoint returns application metadata."""
    response = await client.get("/info")

    assert response.status_code == 200
    data = response.json()
    assert data["version"] == __version__
    assert "environment" in data
    assert data["default_locale"] == "zh_TW"
    assert "en" in data["supported_locales"]
