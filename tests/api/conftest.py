"""Shared fixtures for API tests."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from agentcheckout.container import Container, build_container
from agentcheckout.infrastructure.catalog import Catalog
from agentcheckout.infrastructure.config import Settings
from agentcheckout.infrastructure.payment_gateway import SimulatedPaymentGateway
from agentcheckout.main import create_app

TEST_API_KEY = "test-api-key"


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, webhook_secret="test-webhook-secret", gateway_timeout_seconds=1.0)


@pytest.fixture
def container(settings: Settings, gateway: SimulatedPaymentGateway) -> Container:
    return build_container(settings, catalog=Catalog.demo(), gateway=gateway)


@pytest.fixture
def client(container: Container) -> Iterator[TestClient]:
    """Test client without authentication."""
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def auth_client(gateway: SimulatedPaymentGateway) -> Iterator[TestClient]:
    """Test client for an app that requires an API key."""
    settings = Settings(_env_file=None, api_key=TEST_API_KEY, webhook_secret="test-webhook-secret")
    container = build_container(settings, catalog=Catalog.demo(), gateway=gateway)
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def ready_session(client: TestClient) -> str:
    """A session with one ebook and a buyer email."""
    session_id = client.post("/sessions").json()["session_id"]
    client.post(f"/sessions/{session_id}/items", json={"product_id": "ebook-mcp-basics"})
    client.put(f"/sessions/{session_id}/buyer", json={"email": "buyer@example.com"})
    return session_id
