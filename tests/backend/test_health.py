"""
Tests for the health check endpoint.

Validates response structure and content for GET /api/v1/health.
"""
from datetime import datetime

import pytest
from httpx import AsyncClient

from foundry import __version__


class TestHealthEndpoint:
    """Tests for GET /api/v1/health."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_returns_ok(self, async_client: AsyncClient) -> None:
        """Health endpoint returns status ok."""
        response = await async_client.get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_returns_version(self, async_client: AsyncClient) -> None:
        """Health endpoint returns the package version."""
        response = await async_client.get("/api/v1/health")

        assert response.json()["version"] == __version__

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_returns_valid_timestamp(self, async_client: AsyncClient) -> None:
        """Health endpoint returns a valid ISO format timestamp."""
        response = await async_client.get("/api/v1/health")

        timestamp = response.json()["timestamp"]
        assert "T" in timestamp
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        assert parsed is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_health_returns_json(self, async_client: AsyncClient) -> None:
        """Health endpoint returns JSON content type."""
        response = await async_client.get("/api/v1/health")

        assert "application/json" in response.headers.get("content-type", "")
