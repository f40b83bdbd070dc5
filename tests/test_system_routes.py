from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from renderapis.main import create_app


@pytest.mark.asyncio
async def test_health_reports_connected_database(client, connected_manager):
    connected_manager.client = MagicMock()
    connected_manager.client.admin.command = AsyncMock(return_value={"ok": 1.0})
    connected_manager.get_stats = AsyncMock(
        return_value={
            "collections": 1,
            "documents": 2,
            "data_size": 1536,
            "storage_size": 4096,
            "indexes": 3,
            "index_size": 2048,
        }
    )

    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["status"] == "Server is running"
    database = body["database"]
    assert database["connected"] is True
    assert database["healthy"] is True
    assert database["state"] == "connected"
    assert database["host"] == "localhost"
    assert database["stats"]["documents"] == 2
    assert database["stats"]["formatted"]["data_size"] == "1.5 KB"
    assert body["server"]["environment"] == "test"
    assert set(body["uptime"]) == {"raw", "formatted"}
    assert "max_rss" in body["memory"]


@pytest.mark.asyncio
async def test_health_when_disconnected(offline_client):
    response = await offline_client.get("/health")

    assert response.status_code == 200
    database = response.json()["database"]
    assert database["connected"] is False
    assert database["healthy"] is False
    assert database["state"] == "disconnected"
    assert "stats" not in database


@pytest.mark.asyncio
async def test_status_redirects_to_health(client):
    response = await client.get("/status")

    assert response.status_code == 307
    assert response.headers["location"] == "/health"


@pytest.mark.asyncio
async def test_api_info_lists_endpoints(offline_client):
    response = await offline_client.get("/api")

    body = response.json()
    assert body["database"] == "Disconnected"
    assert body["version"] == "1.0.0"
    assert "POST /api/projects" in body["endpoints"]


@pytest.mark.asyncio
async def test_version_info(client):
    response = await client.get("/api/version")

    body = response.json()
    assert body["name"] == "RenderAPIs"
    assert body["environment"] == "test"
    assert body["build"] == {"commit": "unknown", "branch": "unknown"}
    assert set(body["dependencies"]) == {"production", "test"}


@pytest.mark.asyncio
async def test_api_docs_describes_project_schema(client):
    response = await client.get("/api/docs")

    body = response.json()
    assert body["success"] is True
    assert body["schemas"]["Project"]["status"] == "planning|in-progress|completed|on-hold"
    assert {(e["method"], e["path"]) for e in body["endpoints"]} >= {
        ("GET", "/api/projects"),
        ("POST", "/api/projects"),
        ("DELETE", "/api/projects/{id}"),
    }


@pytest.mark.asyncio
async def test_unknown_route(client):
    response = await client.get("/api/unknown")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Route /api/unknown not found"
    assert body["method"] == "GET"


@pytest.mark.asyncio
async def test_development_errors_include_diagnostics(test_settings, connected_manager):
    app = create_app(test_settings.model_copy(update={"ENVIRONMENT": "development"}), db_manager=connected_manager)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        response = await ac.get("/api/projects/not-an-id")

    body = response.json()
    assert response.status_code == 400
    assert body["error"] == "Invalid ID format"
    assert "stack" in body


@pytest.mark.asyncio
async def test_production_adds_hsts(test_settings, connected_manager):
    app = create_app(test_settings.model_copy(update={"ENVIRONMENT": "production"}), db_manager=connected_manager)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        response = await ac.get("/api/projects/not-an-id")

    assert "Strict-Transport-Security" in response.headers
    assert "error" not in response.json()
