"""
TrustGraph API Routes Package
=============================

FastAPI route modules.

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.api.routes.governance import router as governance_router
from trustgraph.api.routes.health import router as health_router
from trustgraph.api.routes.organisations import router as organisations_router
from trustgraph.api.routes.runs import router as runs_router

__all__ = [
    "governance_router",
    "health_router",
    "organisations_router",
    "runs_router",
]
