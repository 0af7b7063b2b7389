from main import app
from utils.deps import get_cache


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok", "cache": "ok"}


async def test_health_degraded_when_cache_down(client, down_cache):
    app.dependency_overrides[get_cache] = lambda: down_cache

    response = await client.get("/health")

    assert response.json()["status"] == "degraded"
    assert response.json()["cache"] == "unavailable"


async def test_system_status(client, admin_headers):
    response = await client.get("/system/status", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["cache"]["connected"] is True
    # the admin login wrote one access and one refresh record
    assert data["tokens"] == {"total": 2, "active": 2}


async def test_system_routes_require_manage_system(client, user_headers):
    response = await client.get("/system/status", headers=user_headers)
    assert response.status_code == 403

    response = await client.post("/system/purge-tokens", headers=user_headers)
    assert response.status_code == 403


async def test_purge_tokens(client, admin_headers):
    response = await client.post("/system/purge-tokens", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"purged": 0}


async def test_request_id_header(client):
    response = await client.get("/health", headers={"X-Request-ID": "abc-123"})

    assert response.headers["x-request-id"] == "abc-123"
