"""Test health endpoint and basic API structure."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["app"] == "TrafficHub"


@pytest.mark.asyncio
async def test_api_docs(client: AsyncClient):
    resp = await client.get("/docs")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_clients_require_auth(client: AsyncClient):
    resp = await client.get("/api/v1/clients/")
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_health_score_requires_auth(client: AsyncClient):
    resp = await client.post("/api/v1/clients/some-id/health-score")
    assert resp.status_code in (401, 403)


@pytest.mark.asyncio
async def test_create_and_list_clients(client: AsyncClient, auth_headers):
    resp = await client.post(
        "/api/v1/clients/",
        json={"name": "Padaria Central", "monthly_value": 2500},
        headers=auth_headers,
    )
    assert resp.status_code == 201
    created = resp.json()
    assert created["name"] == "Padaria Central"
    assert created["health_score"] is None

    resp = await client.get("/api/v1/clients/", headers=auth_headers)
    assert resp.status_code == 200
    assert [c["id"] for c in resp.json()] == [created["id"]]

    resp = await client.get(f"/api/v1/clients/{created['id']}", headers=auth_headers)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_get_client_404(client: AsyncClient, auth_headers):
    resp = await client.get("/api/v1/clients/missing", headers=auth_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_create_client_rejects_negative_value(client: AsyncClient, auth_headers):
    resp = await client.post(
        "/api/v1/clients/", json={"name": "X", "monthly_value": -1}, headers=auth_headers
    )
    assert resp.status_code == 422


def test_run_serves_app_with_uvicorn():
    from unittest.mock import patch

    from app.main import run

    with patch("uvicorn.run") as serve:
        run()
    serve.assert_called_once()
    args, kwargs = serve.call_args
    assert args == ("app.main:app",)
    assert kwargs["port"] == 8000
    assert kwargs["log_level"] == "info"
