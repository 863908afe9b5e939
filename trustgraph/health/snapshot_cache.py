"""
Redis Health Snapshot Cache
===========================

Read-through mirror of the organisation health snapshots held in the
store.

Features:
    - Async Redis via redis.asyncio
    - Whole-snapshot SET, so readers see the old or the new snapshot,
      never a mix of both
    - Graceful fallback when Redis is unavailable (reads miss, writes
      report False, the store stays authoritative)

Author: TrustGraph Team
Version: 1.0.0
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis

from trustgraph.models import HealthSnapshot


logger = logging.getLogger(__name__)


class HealthSnapshotCache:
    """
    Redis-backed health snapshot cache with graceful fallback.

    Usage:
        cache = HealthSnapshotCache(redis_url="redis://localhost:6379/0")
        await cache.connect()

        snapshot = await cache.get("org-1")
        if snapshot is None:
            snapshot = await store.get_health_snapshot("org-1")
    """

    PREFIX = "trustgraph:health:"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        default_ttl: int = 900,
    ):
        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self._redis: Optional[Any] = None
        self._available = False

    async def connect(self) -> bool:
        """
        Connect to Redis.

        Returns:
            True if connected successfully
        """
        try:
            self._redis = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            await self._redis.ping()
            self._available = True
            logger.info("Health snapshot cache connected to Redis")
            return True
        except Exception as e:
            logger.warning(f"Redis unavailable, health snapshot cache disabled: {e}")
            self._available = False
            return False

    async def close(self):
        if self._redis:
            await self._redis.close()
            self._available = False

    @property
    def is_available(self) -> bool:
        return self._available

    def _key(self, organisation_id: str) -> str:
        return f"{self.PREFIX}{organisation_id}"

    async def get(self, organisation_id: str) -> Optional[HealthSnapshot]:
        """Cached snapshot for an organisation, or None on miss/error."""
        if not self._available:
            return None

        try:
            data = await self._redis.get(self._key(organisation_id))
            if not data:
                logger.debug(f"Cache MISS: {organisation_id}")
                return None
            logger.debug(f"Cache HIT: {organisation_id}")
            return HealthSnapshot.model_validate(json.loads(data))
        except Exception as e:
            logger.warning(f"Cache get error for {organisation_id}: {e}")
            return None

    async def set(self, snapshot: HealthSnapshot, ttl: Optional[int] = None) -> bool:
        """Publish a fully computed snapshot."""
        if not self._available:
            return False

        try:
            payload = json.dumps(snapshot.model_dump(mode="json"))
            await self._redis.setex(
                self._key(snapshot.organisation_id),
                ttl or self.default_ttl,
                payload,
            )
            logger.debug(f"Cache SET: {snapshot.organisation_id}")
            return True
        except Exception as e:
            logger.warning(f"Cache set error for {snapshot.organisation_id}: {e}")
            return False

    async def invalidate(self, organisation_id: str) -> bool:
        if not self._available:
            return False

        try:
            await self._redis.delete(self._key(organisation_id))
            logger.debug(f"Cache INVALIDATED: {organisation_id}")
            return True
        except Exception as e:
            logger.warning(f"Cache invalidate error: {e}")
            return False
