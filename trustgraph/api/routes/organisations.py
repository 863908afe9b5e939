"""
TrustGraph Organisation Routes
==============================

Read endpoints scoped to one organisation: health snapshot,
reassessment policies, escalations and drift history.

Author: TrustGraph Team
Version: 1.0.0
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from trustgraph.api.dependencies import require_service
from trustgraph.models import RunType
from trustgraph.service import TrustGraphService


router = APIRouter(prefix="/organisations", tags=["Organisations"])


@router.get(
    "/{org_id}/health",
    summary="Organisation Health",
    description=(
        "Serve the last published health snapshot. Never recomputes; "
        "the response carries a freshness marker (fresh, stale, not_computed)."
    ),
)
async def get_health(
    org_id: str,
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    reading = await service.get_health(org_id)
    return reading.to_dict()


@router.post(
    "/{org_id}/health/recompute",
    summary="Recompute Organisation Health",
    description="Recompute and publish the organisation's health snapshot.",
)
async def recompute_health(
    org_id: str,
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    snapshot = await service.recompute_health(org_id)
    return snapshot.model_dump(mode="json")


@router.get(
    "/{org_id}/policies",
    summary="Reassessment Policies",
    description="List reassessment policies with their overdue state.",
)
async def list_policies(
    org_id: str,
    run_type: Optional[RunType] = Query(None, description="Filter by run type"),
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    views = await service.list_policies(org_id, run_type)
    return {
        "organisation_id": org_id,
        "count": len(views),
        "policies": [v.to_dict() for v in views],
    }


@router.get(
    "/{org_id}/escalations",
    summary="Escalations",
    description="List escalations, open only unless include_resolved is set.",
)
async def list_escalations(
    org_id: str,
    include_resolved: bool = Query(False),
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    escalations = await service.list_escalations(org_id, include_resolved)
    items: List[Dict[str, Any]] = [e.model_dump(mode="json") for e in escalations]
    return {"organisation_id": org_id, "count": len(items), "escalations": items}


@router.get(
    "/{org_id}/drift",
    summary="Drift Events",
    description="List recorded drift events, newest first.",
)
async def list_drift_events(
    org_id: str,
    run_type: Optional[RunType] = Query(None),
    days: Optional[int] = Query(None, ge=1, le=3650, description="Look-back window"),
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    events = await service.list_drift_events(org_id, run_type, days)
    return {
        "organisation_id": org_id,
        "count": len(events),
        "events": [e.model_dump(mode="json") for e in events],
    }
