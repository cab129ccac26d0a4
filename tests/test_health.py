"""Basic app health endpoint tests."""

from __future__ import annotations

from fastapi.testclient import TestClient


def test_health_endpoint(client: TestClient) -> None:
    """Health endpoint should report status, version and timing."""
    response = client.get("/health")
    assert response.status_code == 200
    assert "X-Process-Time-Ms" in response.headers

    payload = response.json()
    assert payload == {"status": "ok", "version": "1.0.0"}


def test_unknown_route_is_not_found(client: TestClient) -> None:
    assert client.get("/communities").status_code == 404
