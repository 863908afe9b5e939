"""
TrustGraph API Dependencies
===========================

FastAPI dependency injection for shared resources.

Provides lazy-initialized singletons for:
    - TrustGraphStore (PostgreSQL, or in-memory)
    - HealthSnapshotCache (Redis mirror, optional)
    - TrustGraphService

The container starts in **degraded mode** when PostgreSQL is
unavailable. With ``store_memory_fallback`` enabled it serves from the
in-memory store; otherwise engine endpoints return 503 until restart.

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from typing import Optional

from fastapi import HTTPException

from trustgraph.config import Settings, settings as default_settings
from trustgraph.health.snapshot_cache import HealthSnapshotCache
from trustgraph.service import TrustGraphService
from trustgraph.store.base import TrustGraphStore
from trustgraph.store.memory import InMemoryTrustGraphStore


logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Singleton container for shared services.

    Manages lifecycle of the store, the snapshot cache and the service.
    """

    _instance: Optional["ServiceContainer"] = None

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self._store: Optional[TrustGraphStore] = None
        self._cache: Optional[HealthSnapshotCache] = None
        self._service: Optional[TrustGraphService] = None
        self._initialized = False
        self.store_backend: Optional[str] = None
        self.degraded = False

    @classmethod
    def get_instance(cls) -> "ServiceContainer":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = ServiceContainer()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    async def initialize(self) -> None:
        """Initialize all services (graceful degradation on failure)."""
        if self._initialized:
            return

        logger.info("Initializing service container...")

        backend = self.settings.store_backend.lower()
        if backend == "memory":
            self._store = InMemoryTrustGraphStore()
            self.store_backend = "memory"
            logger.info("Using in-memory store")
        elif backend == "sql":
            await self._init_sql_store()
        else:
            raise ValueError(f"Unknown store_backend: {self.settings.store_backend}")

        # ── Redis (optional) ─────────────────────────────────
        if self.settings.health_cache_enabled and self.store_backend == "sql":
            cache = HealthSnapshotCache(
                redis_url=self.settings.redis_url,
                default_ttl=self.settings.health_cache_ttl_seconds,
            )
            if await cache.connect():
                self._cache = cache

        if self._store is not None:
            self._service = TrustGraphService(self._store, settings=self.settings, cache=self._cache)

        self._initialized = True

        if self.degraded:
            logger.warning(
                "Service container initialized in DEGRADED mode "
                f"(store backend: {self.store_backend or 'none'})"
            )
        else:
            logger.info(f"Service container fully initialized (store backend: {self.store_backend})")

    async def _init_sql_store(self) -> None:
        from trustgraph.db.session import create_engine
        from trustgraph.store.sql import SQLTrustGraphStore

        try:
            store = SQLTrustGraphStore(create_engine(self.settings))
            await store.initialize()
            await store.ping()
            self._store = store
            self.store_backend = "sql"
            logger.info("PostgreSQL store connected")
        except Exception as e:
            self.degraded = True
            if self.settings.store_memory_fallback:
                logger.warning(f"PostgreSQL unavailable, falling back to in-memory store: {e}")
                self._store = InMemoryTrustGraphStore()
                self.store_backend = "memory"
            else:
                logger.warning(f"PostgreSQL unavailable, engine endpoints will return 503: {e}")
                self._store = None

    async def shutdown(self) -> None:
        """Shutdown all services."""
        logger.info("Shutting down service container...")

        if self._cache:
            await self._cache.close()
            self._cache = None

        if self._store:
            try:
                await self._store.close()
            except Exception as e:
                logger.warning(f"Error closing store: {e}")
            self._store = None

        self._service = None
        self._initialized = False
        self.degraded = False
        self.store_backend = None

        logger.info("Service container shutdown complete")

    @property
    def store(self) -> Optional[TrustGraphStore]:
        return self._store

    @property
    def cache(self) -> Optional[HealthSnapshotCache]:
        return self._cache

    @property
    def service(self) -> Optional[TrustGraphService]:
        """Get the service instance (None if no store is available)."""
        return self._service


# Dependency functions for FastAPI
async def get_service() -> Optional[TrustGraphService]:
    """
    FastAPI dependency for the service.

    Returns None if no store is available (degraded mode).
    """
    return ServiceContainer.get_instance().service


async def require_service() -> TrustGraphService:
    """
    FastAPI dependency that **requires** a live service.

    Raises HTTP 503 in degraded mode so route handlers don't need
    to check for None themselves.
    """
    service = await get_service()
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="TrustGraph store unavailable (PostgreSQL not connected)",
            headers={"Retry-After": "30"},
        )
    return service
