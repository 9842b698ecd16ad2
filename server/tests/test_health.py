"""Tests for health and root endpoints."""

from unittest.mock import AsyncMock

import pytest
from carwash.services import redis_client


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/v1/health")
        assert response.json() == {"status": "healthy", "service": "carwash-api"}

    @pytest.mark.asyncio
    async def test_database(self, client):
        response = await client.get("/api/v1/health/db")
        assert response.json() == {"status": "healthy", "database": "connected"}

    @pytest.mark.asyncio
    async def test_redis_unavailable(self, client):
        response = await client.get("/api/v1/health/redis")
        assert response.status_code == 503
        assert response.json()["redis"] == "disconnected"

    @pytest.mark.asyncio
    async def test_redis_available(self, client, monkeypatch):
        monkeypatch.setattr(redis_client, "redis_client", AsyncMock())
        response = await client.get("/api/v1/health/redis")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"
