"""Tests for the health endpoint."""

from unittest.mock import MagicMock

from fastapi.testclient import TestClient


def test_health_returns_200(client: TestClient):
    """GET /health returns 200 status code."""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_response_body(client: TestClient):
    """GET /health returns expected JSON body when the expander is not running."""
    response = client.get("/health")
    assert response.json() == {
        "status": "ok",
        "service": "thread-expander",
        "version": "0.1.0",
    }


def test_health_includes_expander_stats(client: TestClient):
    """Once the service is attached to app state, its stats are reported."""
    service = MagicMock()
    service.stats.return_value = {"running": True, "expanded": 3}
    client.app.state.service = service
    try:
        response = client.get("/health")
    finally:
        del client.app.state.service

    assert response.json()["expander"] == {"running": True, "expanded": 3}
