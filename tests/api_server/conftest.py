# tests/api_server/conftest.py
"""
Pytest configuration and fixtures for API server tests.

The application is built with an explicit configuration and the fake
backend from the top-level conftest; entering the TestClient context runs
the lifespan so ``app.state.relay`` and ``app.state.hub`` exist.
"""

import pytest
from fastapi.testclient import TestClient

from roomrelay.api_server import create_app


@pytest.fixture
def app(relay_config, provider_factory):
    return create_app(relay_config, provider_factory=provider_factory, configure_logs=False)


@pytest.fixture
def api_client(app):
    """A TestClient with the lifespan running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def started_client(api_client):
    """A TestClient whose backend service has been started."""
    response = api_client.post("/service/start", json={"host": "http://ollama.test:11434", "model": "llama3.2"})
    assert response.status_code == 200
    assert response.json()["started"] is True
    return api_client
