"""
Prometheus Metrics Module
=========================

Exposes application and engine metrics for Prometheus scraping.

Metrics:
    - trustgraph_requests_total: Total HTTP requests (counter)
    - trustgraph_request_duration_seconds: Request latency (histogram)
    - trustgraph_runs_completed_total: Completed runs by type (counter)
    - trustgraph_completion_conflicts_total: Losing concurrent completions (counter)
    - trustgraph_drift_events_total: Recorded drift events (counter)
    - trustgraph_escalations_created_total: Escalations by source/severity (counter)
    - trustgraph_health_score: Latest published health score (gauge)
    - trustgraph_store_errors_total: Store timeouts/failures by operation (counter)

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
import time
from typing import Callable

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


# =============================================================================
# Metric Definitions
# =============================================================================

REQUEST_COUNT = Counter(
    "trustgraph_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "trustgraph_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

RUNS_COMPLETED = Counter(
    "trustgraph_runs_completed_total",
    "Runs completed",
    ["run_type"],
)

COMPLETION_CONFLICTS = Counter(
    "trustgraph_completion_conflicts_total",
    "Run completions that lost to a concurrent writer",
    ["reason"],
)

DRIFT_EVENTS = Counter(
    "trustgraph_drift_events_total",
    "Drift events recorded",
    ["run_type", "flagged"],
)

ESCALATIONS_CREATED = Counter(
    "trustgraph_escalations_created_total",
    "Escalations created by the engine",
    ["source", "severity"],
)

HEALTH_SCORE = Gauge(
    "trustgraph_health_score",
    "Latest published organisation health score",
    ["organisation_id"],
)

STORE_ERRORS = Counter(
    "trustgraph_store_errors_total",
    "Store calls that timed out or failed",
    ["operation", "kind"],
)


# =============================================================================
# Middleware
# =============================================================================

class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware to track request counts and durations."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = request.url.path

        if path == "/metrics":
            return await call_next(request)

        endpoint = self._normalize_path(path)

        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start

        REQUEST_COUNT.labels(
            method=method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()

        REQUEST_DURATION.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

        return response

    @staticmethod
    def _normalize_path(path: str) -> str:
        """Normalize path to prevent high-cardinality labels."""
        parts = path.strip("/").split("/")
        if len(parts) >= 2:
            normalized = "/" + "/".join(parts[:2])
            if len(parts) > 2:
                normalized += "/{id}"
            return normalized
        return path or "/"


# =============================================================================
# Helper Functions
# =============================================================================

def record_run_completed(run_type: str) -> None:
    RUNS_COMPLETED.labels(run_type=run_type).inc()


def record_completion_conflict(reason: str = "already_completed") -> None:
    COMPLETION_CONFLICTS.labels(reason=reason).inc()


def record_drift_event(run_type: str, flagged: bool) -> None:
    DRIFT_EVENTS.labels(run_type=run_type, flagged=str(flagged).lower()).inc()


def record_escalation(source: str, severity: str) -> None:
    ESCALATIONS_CREATED.labels(source=source, severity=severity).inc()


def update_health_score(organisation_id: str, value: float) -> None:
    HEALTH_SCORE.labels(organisation_id=organisation_id).set(value)


def record_store_error(operation: str, kind: str) -> None:
    STORE_ERRORS.labels(operation=operation, kind=kind).inc()


# =============================================================================
# Endpoint Handler
# =============================================================================

async def metrics_endpoint(request: Request) -> Response:
    """Expose Prometheus metrics at /metrics."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
