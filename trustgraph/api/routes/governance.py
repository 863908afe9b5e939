"""
TrustGraph Governance Routes
============================

Audited write endpoints: policy overrides, sweeps and escalation
resolution, which require an actor and a reason, plus the health
recompute pass that follows them.

Endpoints:
    POST /policies                       - Create or override a policy
    POST /sweeps/expiry                  - Run expiry and overdue-action sweeps
    POST /sweeps/health                  - Recompute queued (or all) organisation health
    POST /escalations/{id}/resolve       - Resolve an open escalation

Author: TrustGraph Team
Version: 1.0.0
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from trustgraph.api.dependencies import require_service
from trustgraph.service import TrustGraphService


router = APIRouter(tags=["Governance"])


# =============================================================================
# Request Models
# =============================================================================

class AuditedRequest(BaseModel):
    actor: str = Field(..., description="Who is making the change")
    reason: str = Field(..., description="Why the change is being made")


class PolicyRequest(AuditedRequest):
    """Request model for a policy override."""
    organisation_id: str = Field(..., min_length=1)
    target_id: str
    run_type: str
    frequency_days: int
    last_completed: Optional[datetime] = None


class SweepRequest(AuditedRequest):
    organisation_id: Optional[str] = Field(None, description="Limit the sweep to one organisation")


class ResolveRequest(AuditedRequest):
    organisation_id: str = Field(..., min_length=1)


class HealthSweepRequest(BaseModel):
    full: bool = Field(False, description="Recompute every organisation, not only queued ones")
    limit: Optional[int] = Field(None, ge=1, description="Most queued organisations to process")


# =============================================================================
# Endpoints
# =============================================================================

@router.post(
    "/policies",
    summary="Upsert Reassessment Policy",
    description="Create or override a reassessment policy; next_due is recomputed.",
)
async def upsert_policy(
    request: PolicyRequest,
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    view = await service.upsert_policy(
        request.organisation_id,
        request.target_id,
        request.run_type,
        request.frequency_days,
        actor=request.actor,
        reason=request.reason,
        last_completed=request.last_completed,
    )
    return view.to_dict()


@router.post(
    "/sweeps/expiry",
    summary="Run Sweeps",
    description=(
        "Escalate overdue reassessment policies and overdue critical actions. "
        "Idempotent: a second run without new overdue items creates nothing."
    ),
)
async def run_sweeps(
    request: SweepRequest,
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    expiry = await service.sweep_expiry(request.actor, request.reason, request.organisation_id)
    actions = await service.sweep_overdue_actions(request.actor, request.reason, request.organisation_id)
    health = await service.process_health_queue()
    return {
        "expiry": expiry.to_dict(),
        "actions": actions.to_dict(),
        "expired_count": expiry.expired_count,
        "escalation_count": expiry.escalation_count + actions.escalation_count,
        "health_recomputed": health.recomputed,
    }


@router.post(
    "/sweeps/health",
    summary="Recompute Health",
    description=(
        "Recompute the snapshots of organisations whose inputs changed since "
        "their last recompute, or of every organisation with full=true."
    ),
)
async def run_health_sweep(
    request: HealthSweepRequest,
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    if request.full:
        recomputed = await service.recompute_all_health()
        return {"recomputed_count": len(recomputed), "failed_count": 0, "recomputed": recomputed, "failed": []}
    result = await service.process_health_queue(request.limit)
    return result.to_dict()


@router.post(
    "/escalations/{escalation_id}/resolve",
    summary="Resolve Escalation",
    description="Resolve an open escalation. Resolving twice returns 409.",
)
async def resolve_escalation(
    escalation_id: str,
    request: ResolveRequest,
    service: TrustGraphService = Depends(require_service),
) -> Dict[str, Any]:
    escalation = await service.resolve_escalation(
        request.organisation_id,
        escalation_id,
        actor=request.actor,
        reason=request.reason,
    )
    return escalation.model_dump(mode="json")
