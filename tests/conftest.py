"""Shared test fixtures."""

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from thread_expander.app import app
from thread_expander.config import Settings

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session")
def client() -> TestClient:
    """Create a TestClient for the FastAPI app (lifespan not started)."""
    return TestClient(app)


@pytest.fixture()
def load_envelope():
    """Return a loader for Socket Mode envelope fixtures in tests/fixtures."""

    def _load(name: str) -> dict:
        return json.loads((FIXTURES / name).read_text())

    return _load


@pytest.fixture()
def settings() -> Settings:
    """Settings with valid tokens and no backoff delays."""
    return Settings(
        _env_file=None,
        slack_app_token="xapp-1-test",
        slack_bot_token="xoxb-test",
        worker_count=2,
        publish_max_attempts=3,
        publish_initial_wait_seconds=0,
        publish_max_wait_seconds=0,
        shutdown_timeout_seconds=2,
    )
