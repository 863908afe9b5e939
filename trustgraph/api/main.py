"""
TrustGraph API Main Application
===============================

FastAPI application entry point for the TrustGraph REST API.

Features:
    - OpenAPI documentation at /docs
    - Run, organisation health and governance endpoints
    - CORS middleware for cross-origin requests
    - Engine errors mapped to structured JSON responses
    - Async lifespan management

Usage:
    # Development:
    uvicorn trustgraph.api.main:app --reload

    # Production:
    uvicorn trustgraph.api.main:app --host 0.0.0.0 --port 8000

Author: TrustGraph Team
Version: 1.0.0
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trustgraph.api.dependencies import ServiceContainer
from trustgraph.api.routes import (
    governance_router,
    health_router,
    organisations_router,
    runs_router,
)
from trustgraph.config import settings
from trustgraph.errors import TrustGraphError
from trustgraph.health.recompute_worker import HealthRecomputeWorker
from trustgraph.logging import RequestLoggingMiddleware, get_logger, setup_logging
from trustgraph.metrics import MetricsMiddleware, metrics_endpoint


setup_logging(level=settings.log_level, json_output=not settings.debug)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Handles startup and shutdown of services.
    """
    logger.info("Starting TrustGraph API...")

    container = ServiceContainer.get_instance()
    await container.initialize()

    worker = None
    interval = container.settings.health_queue_interval_seconds
    if container.service is not None and interval > 0:
        worker = HealthRecomputeWorker(container.service, interval)
        worker.start()

    logger.info("TrustGraph API started successfully")

    yield

    logger.info("Shutting down TrustGraph API...")
    if worker is not None:
        await worker.stop()
    await container.shutdown()
    logger.info("TrustGraph API shutdown complete")


async def trustgraph_error_handler(request: Request, exc: TrustGraphError) -> JSONResponse:
    """Map engine errors to their HTTP status and a structured body."""
    headers = {"Retry-After": "5"} if exc.retryable else None
    if exc.http_status >= 500:
        logger.warning("request_failed", path=request.url.path, error=exc.code, reason=exc.reason)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title="TrustGraph API",
        description=(
            "Trust Scoring & Organisational Health Engine\n\n"
            "- Score organisation and AI-system assessment runs\n"
            "- Track drift and stability across run versions\n"
            "- Schedule reassessments and escalate overdue work\n"
            "- Publish per-organisation health snapshots"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(MetricsMiddleware)
    app.add_route("/metrics", metrics_endpoint, methods=["GET"])

    app.add_exception_handler(TrustGraphError, trustgraph_error_handler)

    app.include_router(health_router)
    app.include_router(runs_router)
    app.include_router(organisations_router)
    app.include_router(governance_router)

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint returning API info."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "description": "Trust Scoring & Organisational Health Engine",
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "trustgraph.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
