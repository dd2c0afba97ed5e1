"""Tests for the FastAPI lifespan that owns the expander service."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from thread_expander.app import app
from thread_expander.exceptions import StartupError


@pytest.fixture()
def mock_service():
    """Patch ExpanderService, settings and logging setup inside the app module."""
    service = MagicMock()
    service.start = AsyncMock()
    service.stop = AsyncMock()
    service.stats.return_value = {"running": True}
    with (
        patch("thread_expander.app.get_settings") as mock_settings,
        patch("thread_expander.app.configure_logging"),
        patch("thread_expander.app.ExpanderService", return_value=service),
    ):
        mock_settings.return_value.log_level = "INFO"
        yield service


def test_lifespan_starts_and_stops_service(mock_service: MagicMock):
    with TestClient(app) as client:
        mock_service.start.assert_awaited_once()
        response = client.get("/health")
        assert response.json()["expander"] == {"running": True}

    mock_service.stop.assert_awaited_once()
    del app.state.service


def test_lifespan_startup_failure_propagates(mock_service: MagicMock):
    """A rejected token stops startup; the partially started service is cleaned up."""
    mock_service.start.side_effect = StartupError("auth.test failed: invalid_auth")

    with pytest.raises(StartupError):
        with TestClient(app):
            pass

    mock_service.stop.assert_awaited_once()
