# tests/test_gateway.py — Health, middleware and error rendering tests
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from database import get_db_session
from main import app
from telemetry import setup_telemetry
from tests.conftest import get_auth_headers


@pytest.mark.asyncio
async def test_health_endpoint(client: AsyncClient):
    """Health endpoint returns OK"""
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["realtime"]["total_connections"] == 0


@pytest.mark.asyncio
async def test_root_banner(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Taskboard"


@pytest.mark.asyncio
async def test_security_and_tracing_headers(client: AsyncClient):
    resp = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert resp.headers.get("X-Content-Type-Options") == "nosniff"
    assert resp.headers.get("X-Frame-Options") == "DENY"
    assert resp.headers.get("X-Request-ID") == "req-123"
    assert resp.headers.get("X-Correlation-ID") == "req-123"
    assert "x-response-time" in {k.lower() for k in resp.headers}


@pytest.mark.asyncio
async def test_error_body_carries_request_id(client: AsyncClient):
    resp = await client.get("/api/users/me", headers={"X-Request-ID": "req-456"})
    assert resp.status_code == 401
    body = resp.json()
    assert body["request_id"] == "req-456"
    assert resp.headers.get("WWW-Authenticate") == "Bearer"


@pytest.mark.asyncio
async def test_store_failure_is_internal_error(client: AsyncClient, test_user, broadcaster):
    """A failing store yields a generic 500 and no broadcast"""
    broken = AsyncMock()
    broken.execute.side_effect = OperationalError("SELECT", {}, Exception("disk I/O error"))

    async def broken_session():
        yield broken

    app.dependency_overrides[get_db_session] = broken_session
    resp = await client.patch(
        "/api/tasks/any/status", json={"status": "done"}, headers=get_auth_headers(test_user),
    )
    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "internal_error"
    assert body["detail"] == "Internal server error"
    assert "disk" not in resp.text
    assert broadcaster.published == []


def test_telemetry_disabled_without_endpoint():
    assert setup_telemetry(app=None, endpoint="") is None
