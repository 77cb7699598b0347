import pytest


@pytest.mark.asyncio
async def test_health_ok(client):
    r = await client.get("/health", headers={"x-request-id": "req-123"})
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["database"] == "ok"
    assert data["request_id"] == "req-123"
    assert r.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_version_ok(client):
    r = await client.get("/version")
    assert r.status_code == 200
    data = r.json()
    assert "version" in data and "git_sha" in data
