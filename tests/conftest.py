"""
Pytest configuration for wallet core tests

Shared networks, stores and scripted collaborators.
"""

from datetime import datetime, timezone

import pytest

from qchain_offchain.networks import NetworkRegistry
from qchain_offchain.session import WalletSessionManager
from qchain_offchain.storage import MemoryStore

from tests.mocks import ScriptedAdapterFactory


FIXED_NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def registry():
    """Built-in network table"""
    return NetworkRegistry()


@pytest.fixture
def sepolia(registry):
    return registry.resolve("11155111")


@pytest.fixture
def localhost(registry):
    """Local EVM network with the QuantumNFT contract configured"""
    return registry.resolve("31337")


@pytest.fixture
def algorand_testnet(registry):
    return registry.resolve("algorand-testnet")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def adapter_factory():
    return ScriptedAdapterFactory()


@pytest.fixture
def sessions(registry, adapter_factory, store):
    """Session manager over scripted adapters"""
    return WalletSessionManager(registry, adapter_factory, store, clock=lambda: FIXED_NOW)
