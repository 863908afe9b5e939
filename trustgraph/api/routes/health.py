"""
TrustGraph Service Health Routes
================================

Health check endpoints for monitoring and orchestration.
Supports degraded mode when PostgreSQL is unavailable.

Endpoints:
    GET /health          - Basic health (always returns)
    GET /health/ready    - Readiness with dependency checks
    GET /health/live     - Liveness probe

Author: TrustGraph Team
Version: 1.0.0
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from trustgraph.api.dependencies import ServiceContainer
from trustgraph.config import settings


router = APIRouter(tags=["Health"])

# Track startup time for uptime calculation
_start_time = time.time()


class DependencyHealth(BaseModel):
    name: str
    status: str
    latency_ms: Optional[float] = None
    message: Optional[str] = None


class ServiceHealth(BaseModel):
    service: str
    status: str
    version: str
    store_backend: Optional[str]
    uptime_seconds: float
    dependencies: List[DependencyHealth]
    timestamp: datetime


@router.get(
    "/health",
    response_model=ServiceHealth,
    summary="Health Check",
    description="Returns service health status with dependency info.",
)
async def health_check() -> ServiceHealth:
    """
    Health check endpoint for monitoring.

    Returns:
        - Overall status: healthy, degraded, unhealthy
        - Dependency health: store, Redis cache
    """
    container = ServiceContainer.get_instance()
    dependencies = []

    # Store
    if container.store is not None:
        try:
            start = time.time()
            await container.store.ping()
            latency = (time.time() - start) * 1000
            dependencies.append(DependencyHealth(
                name=container.store_backend or "store",
                status="degraded" if container.degraded else "healthy",
                latency_ms=round(latency, 2),
            ))
        except Exception as e:
            dependencies.append(DependencyHealth(
                name=container.store_backend or "store",
                status="unhealthy",
                message=str(e),
            ))
    else:
        dependencies.append(DependencyHealth(
            name="postgresql",
            status="unavailable",
            message="Not connected",
        ))

    # Redis is optional; a missing cache only degrades read latency
    if container.cache is not None and container.cache.is_available:
        dependencies.append(DependencyHealth(name="redis", status="healthy"))

    statuses = [d.status for d in dependencies]
    if all(s == "healthy" for s in statuses):
        overall = "healthy"
    elif any(s == "unhealthy" for s in statuses):
        overall = "unhealthy"
    else:
        overall = "degraded"

    return ServiceHealth(
        service="trustgraph",
        status=overall,
        version=settings.app_version,
        store_backend=container.store_backend,
        uptime_seconds=time.time() - _start_time,
        dependencies=dependencies,
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Checks if the engine is ready to handle requests.",
)
async def readiness_check() -> Any:
    """
    Readiness probe.

    Returns 200 if a store is available, 503 otherwise.
    """
    container = ServiceContainer.get_instance()
    is_ready = container.service is not None
    body: Dict[str, Any] = {
        "ready": is_ready,
        "mode": "degraded" if container.degraded else "full",
        "store_backend": container.store_backend,
        "redis": bool(container.cache and container.cache.is_available),
    }
    if not is_ready:
        return JSONResponse(status_code=503, content=body)
    return body


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Liveness probe.",
)
async def liveness_check() -> Dict[str, str]:
    return {"status": "alive"}
