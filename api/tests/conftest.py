"""
Pytest configuration for API tests

Fixtures and configuration for FastAPI endpoint testing.
The wallet core is built with mock adapters and an in-memory session store.
"""

import os

import pytest
from fastapi.testclient import TestClient

# Must be set before api.config is imported
os.environ.setdefault("API_KEY_DEV", "test_api_key")

from api.config import Settings
from api.dependencies.services import build_services
from api.main import create_app
from api.tests.mocks import MockAdapterFactory, MockHashClient
from qchain_offchain.config import CoreSettings
from qchain_offchain.storage import MemoryStore


@pytest.fixture
def adapter_factory():
    """Mock adapter factory (inspect adapters per chain key)"""
    return MockAdapterFactory()


@pytest.fixture
def hash_client():
    return MockHashClient()


@pytest.fixture
def session_store():
    return MemoryStore()


@pytest.fixture
def services(adapter_factory, hash_client, session_store):
    """Wallet core wired with mocks"""
    return build_services(
        Settings(evm_private_key=None),
        core_settings=CoreSettings(default_chain_key="11155111", networks_file=None),
        store=session_store,
        factory=adapter_factory,
        hash_client=hash_client,
    )


@pytest.fixture
def client(services):
    """Create FastAPI test client"""
    with TestClient(create_app(services)) as test_client:
        yield test_client


# Auth fixtures
@pytest.fixture
def api_key():
    """Get API key from environment"""
    return os.getenv("API_KEY_DEV", "test_api_key")


@pytest.fixture
def auth_headers(api_key):
    """Get authentication headers"""
    return {"X-API-Key": api_key}


@pytest.fixture
def connected_client(client, auth_headers):
    """Client with a wallet connected on Sepolia"""
    response = client.post("/api/v1/session/connect", json={"chain_key": "11155111"}, headers=auth_headers)
    assert response.status_code == 200, response.text
    return client
