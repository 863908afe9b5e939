"""
Tests for the Redis Health Snapshot Cache
=========================================

Tests HealthSnapshotCache operations: get, set, invalidate, fallback.
All tests mock Redis to avoid needing a running instance.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest

from trustgraph.health.snapshot_cache import HealthSnapshotCache
from trustgraph.models import HealthSnapshot, HealthStatus

from tests.fixtures import FIXED_NOW


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def cache():
    """Create a HealthSnapshotCache instance with no connection."""
    return HealthSnapshotCache(redis_url="redis://localhost:6379/0", default_ttl=300)


@pytest.fixture
def mock_redis():
    """Create a mock async Redis client."""
    redis = AsyncMock()
    redis.ping = AsyncMock(return_value=True)
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.close = AsyncMock()
    return redis


@pytest.fixture
def snapshot():
    return HealthSnapshot(
        organisation_id="org-1",
        status=HealthStatus.OK,
        health_score=72.5,
        base_health=80.0,
        p_rel=2.5,
        p_exp=5.0,
        computed_at=FIXED_NOW,
    )


@pytest.fixture
def live_cache(cache, mock_redis):
    cache._redis = mock_redis
    cache._available = True
    return cache


# =============================================================================
# Tests
# =============================================================================

class TestHealthSnapshotCache:
    """Test suite for HealthSnapshotCache."""

    def test_cache_init(self, cache):
        """Cache starts disconnected with the configured TTL."""
        assert cache.default_ttl == 300
        assert cache.is_available is False

    def test_cache_prefix(self):
        assert HealthSnapshotCache.PREFIX == "trustgraph:health:"

    async def test_unavailable_cache_misses(self, cache, snapshot):
        assert await cache.get("org-1") is None
        assert await cache.set(snapshot) is False
        assert await cache.invalidate("org-1") is False

    async def test_connect_success(self, cache, mock_redis):
        with patch("trustgraph.health.snapshot_cache.aioredis.from_url", return_value=mock_redis):
            assert await cache.connect() is True
        assert cache.is_available is True

    async def test_connect_failure_degrades(self, cache, mock_redis):
        mock_redis.ping = AsyncMock(side_effect=ConnectionError("Redis down"))
        with patch("trustgraph.health.snapshot_cache.aioredis.from_url", return_value=mock_redis):
            assert await cache.connect() is False
        assert cache.is_available is False

    async def test_cache_hit(self, live_cache, mock_redis, snapshot):
        mock_redis.get = AsyncMock(return_value=json.dumps(snapshot.model_dump(mode="json")))
        result = await live_cache.get("org-1")
        assert result == snapshot

    async def test_cache_set(self, live_cache, mock_redis, snapshot):
        assert await live_cache.set(snapshot, ttl=600) is True
        key, ttl, payload = mock_redis.setex.call_args[0]
        assert key == "trustgraph:health:org-1"
        assert ttl == 600
        assert json.loads(payload)["health_score"] == 72.5

    async def test_cache_default_ttl(self, live_cache, mock_redis, snapshot):
        await live_cache.set(snapshot)
        assert mock_redis.setex.call_args[0][1] == 300

    async def test_cache_invalidate(self, live_cache, mock_redis):
        assert await live_cache.invalidate("org-1") is True
        mock_redis.delete.assert_called_once_with("trustgraph:health:org-1")

    async def test_get_error_handling(self, live_cache, mock_redis):
        mock_redis.get = AsyncMock(side_effect=ConnectionError("Redis down"))
        assert await live_cache.get("org-1") is None

    async def test_set_error_handling(self, live_cache, mock_redis, snapshot):
        mock_redis.setex = AsyncMock(side_effect=ConnectionError("Redis down"))
        assert await live_cache.set(snapshot) is False
