"""
TrustGraph Run Routes
=====================

REST API endpoints for creating and completing assessment runs.

Author: TrustGraph Team
Version: 1.0.0
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from trustgraph.api.dependencies import require_service
from trustgraph.models import RunType
from trustgraph.scoring.models import Answer
from trustgraph.scoring.question_bank import DEFAULT_QUESTION_SET_VERSION
from trustgraph.service import TrustGraphService


router = APIRouter(prefix="/runs", tags=["Runs"])


# =============================================================================
# Request / Response Models
# =============================================================================

class CreateRunRequest(BaseModel):
    """Request model for creating a draft run."""
    organisation_id: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1, description="System id, or the organisation id for org runs")
    run_type: RunType
    question_set_version: str = Field(default=DEFAULT_QUESTION_SET_VERSION)
    answers: Dict[str, Answer] = Field(default_factory=dict)
    autonomy_level: Optional[int] = Field(None, ge=1, le=5, description="System runs: how independently the system acts")
    criticality_level: Optional[int] = Field(None, ge=1, le=5, description="System runs: business impact of the system")


class RunResponse(BaseModel):
    """Response model for a draft run."""
    id: str
    organisation_id: str
    target_id: str
    run_type: str
    version: int
    status: str
    question_set_version: str
    autonomy_level: Optional[int] = None
    criticality_level: Optional[int] = None
    answered_count: int
    created_at: str


class CompleteRunRequest(BaseModel):
    """Request model for completing a run."""
    organisation_id: str = Field(..., min_length=1)
    answers: Dict[str, Answer] = Field(default_factory=dict)


class StabilityResponse(BaseModel):
    variance_last_3: Optional[float]
    status: str


class CompleteRunResponse(BaseModel):
    """Response model for a completed run."""
    run_id: str
    organisation_id: str
    target_id: str
    run_type: str
    version: int
    status: str
    dimension_scores: Dict[str, int]
    overall_score: int = Field(..., ge=0, le=100)
    tier: str
    risk_flags: List[Dict[str, str]]
    drift_from_previous: Optional[float]
    drift_flag: bool
    drift_direction: str
    drift_severity: str
    previous_run_id: Optional[str]
    stability: StabilityResponse
    recommendations: List[Dict[str, Any]]
    escalations: List[Dict[str, Any]]
    policy_created: bool
    next_due: Optional[str]
    completed_at: Optional[str]


# =============================================================================
# Endpoints
# =============================================================================

@router.post(
    "",
    response_model=RunResponse,
    status_code=201,
    summary="Create Run",
    description="Create a draft run. The version is the next one for the target.",
)
async def create_run(
    request: CreateRunRequest,
    service: TrustGraphService = Depends(require_service),
) -> RunResponse:
    run = await service.create_run(
        request.organisation_id,
        request.target_id,
        request.run_type,
        request.question_set_version,
        request.answers,
        autonomy_level=request.autonomy_level,
        criticality_level=request.criticality_level,
    )
    return RunResponse(
        id=run.id,
        organisation_id=run.organisation_id,
        target_id=run.target_id,
        run_type=run.run_type.value,
        version=run.version,
        status=run.status.value,
        question_set_version=run.question_set_version,
        autonomy_level=run.autonomy_level,
        criticality_level=run.criticality_level,
        answered_count=len(run.answers),
        created_at=run.created_at.isoformat(),
    )


@router.post(
    "/{run_id}/complete",
    response_model=CompleteRunResponse,
    summary="Complete Run",
    description=(
        "Score the run, record drift against the previous completed run, "
        "and update the reassessment policy in one step. "
        "Completing an already completed run returns 409."
    ),
)
async def complete_run(
    run_id: str,
    request: CompleteRunRequest,
    service: TrustGraphService = Depends(require_service),
) -> CompleteRunResponse:
    result = await service.complete_run(request.organisation_id, run_id, request.answers)
    data = result.to_dict()
    data["stability"] = StabilityResponse(
        variance_last_3=data.pop("variance_last_3"),
        status=data.pop("stability_status"),
    )
    return CompleteRunResponse(**data)
