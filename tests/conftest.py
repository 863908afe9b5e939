"""
pytest configuration and fixtures.

Author: TrustGraph Team
Version: 1.0.0
"""

import pytest

from trustgraph.config import Settings
from trustgraph.service import TrustGraphService
from trustgraph.store.memory import InMemoryTrustGraphStore

from tests.fixtures import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    return Settings(store_backend="memory", health_cache_enabled=False)


@pytest.fixture
def store():
    return InMemoryTrustGraphStore()


@pytest.fixture
def service(store, test_settings, clock):
    return TrustGraphService(store, settings=test_settings, clock=clock)
