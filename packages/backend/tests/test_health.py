"""Health endpoint and middleware tests."""

import pytest


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status, version, and socket counts."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert data["redis"] == "disabled"
    assert "version" in data
    assert data["realtime"]["tenant_connections"] == 0


@pytest.mark.asyncio
async def test_health_counts_live_connections(app, client, make_connection):
    app.state.bus.register_tenant(3, make_connection())
    app.state.bus.register_visitor("v", make_connection())

    data = (await client.get("/api/v1/health")).json()
    assert data["realtime"]["tenant_connections"] == 1
    assert data["realtime"]["visitor_connections"] == 1


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/v1/health")
    r2 = await client.get("/api/v1/health")
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    r = await client.get("/api/v1/health", headers={"X-Request-ID": "test-trace-12345"})
    assert r.headers["X-Request-ID"] == "test-trace-12345"
