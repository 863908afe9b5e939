"""
TrustGraph Domain Models
========================

Runs, reassessment policies, drift events, escalations, actions and
health snapshots exchanged between the engine, the store and the API.

Key Components:
    - Run: one versioned pass through a question set for one target
    - ReassessmentPolicy: due-date rule per (target, run type)
    - DriftEvent: append-only record of a score change between runs
    - Escalation: open/resolved issue raised by the engine or operators
    - Action: remediation work item (read-only for the engine)
    - HealthSnapshot: derived, rebuildable organisation health cache

All timestamps are timezone-aware UTC.

Author: TrustGraph Team
Version: 1.0.0
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from trustgraph.scoring.models import Answer, RiskFlag


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Enumerations
# =============================================================================

class RunType(str, Enum):
    """Assessment type of a run."""
    ORG = "org"
    """Organisational survey"""

    SYS = "sys"
    """AI-system assessment"""


class RunStatus(str, Enum):
    """Run lifecycle. ``completed`` is terminal."""
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class StabilityStatus(str, Enum):
    PROVISIONAL = "provisional"
    STABLE = "stable"


class Severity(str, Enum):
    """Severity shared by escalations and actions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK: Dict[Severity, int] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ActionStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"


ACTIVE_ACTION_STATUSES = frozenset({
    ActionStatus.OPEN,
    ActionStatus.IN_PROGRESS,
    ActionStatus.BLOCKED,
})


class PolicyState(str, Enum):
    """Reassessment state per (target, run type)."""
    NO_POLICY = "no_policy"
    SCHEDULED = "scheduled"
    ON_TIME = "on_time"
    OVERDUE = "overdue"
    ESCALATED = "escalated"


class HealthStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"


class SnapshotFreshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    NOT_COMPUTED = "not_computed"


# =============================================================================
# Records
# =============================================================================

class Run(BaseModel):
    """
    One full pass through a question set for one target.

    Scores, flags and drift fields are only meaningful once ``status`` is
    ``completed``; a completed run is never mutated again.
    """
    id: str = Field(default_factory=new_id)
    organisation_id: str
    target_id: str
    run_type: RunType
    version: int = Field(..., ge=1)
    status: RunStatus = RunStatus.DRAFT
    question_set_version: str = "v1"
    answers: Dict[str, Answer] = Field(default_factory=dict)
    autonomy_level: Optional[int] = Field(default=None, ge=1, le=5)
    """How independently the assessed system acts (system runs, 1-5)"""

    criticality_level: Optional[int] = Field(default=None, ge=1, le=5)
    """Business impact of the assessed system (system runs, 1-5)"""

    dimension_scores: Optional[Dict[str, int]] = None
    overall_score: Optional[int] = None
    risk_flags: List[RiskFlag] = Field(default_factory=list)
    drift_from_previous: Optional[float] = None
    drift_flag: bool = False
    variance_last_3: Optional[float] = None
    stability_status: StabilityStatus = StabilityStatus.PROVISIONAL

    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED


class ReassessmentPolicy(BaseModel):
    """Due-date rule for one (target, run type) pair."""
    id: str = Field(default_factory=new_id)
    organisation_id: str
    target_id: str
    run_type: RunType
    frequency_days: int = Field(..., ge=1)
    last_completed: Optional[datetime] = None
    next_due: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    escalated_for_due: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DriftEvent(BaseModel):
    """Append-only score change between consecutive completed runs."""
    id: str = Field(default_factory=new_id)
    run_id: str
    previous_run_id: Optional[str] = None
    organisation_id: str
    target_id: str
    run_type: RunType
    delta_score: float
    dimension: Optional[str] = None
    """None for overall-score drift"""
    drift_flag: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Escalation(BaseModel):
    id: str = Field(default_factory=new_id)
    organisation_id: str
    linked_run_id: Optional[str] = None
    linked_run_type: Optional[RunType] = None
    linked_action_id: Optional[str] = None
    linked_policy_id: Optional[str] = None
    target_id: Optional[str] = None
    reason: str
    severity: Severity
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Action(BaseModel):
    """Remediation work item, owned by the action tracker."""
    id: str = Field(default_factory=new_id)
    organisation_id: str
    title: str
    severity: Severity = Severity.MEDIUM
    status: ActionStatus = ActionStatus.OPEN
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ACTION_STATUSES


class ActionCounts(BaseModel):
    open_actions: int = 0
    overdue_actions: int = 0
    critical_overdue_actions: int = 0


class HealthSnapshot(BaseModel):
    """
    Derived organisation health.

    ``status == "unavailable"`` with ``health_score=None`` means there is
    no scored data yet, which is distinct from a score of 0.
    """
    organisation_id: str
    status: HealthStatus = HealthStatus.OK
    health_score: Optional[float] = None
    base_health: Optional[float] = None
    org_base: Optional[float] = None
    sys_base: Optional[float] = None
    p_rel: float = 0.0
    p_act: float = 0.0
    p_drift: float = 0.0
    p_exp: float = 0.0
    open_actions: int = 0
    overdue_actions: int = 0
    critical_overdue_actions: int = 0
    open_escalations: int = 0
    computed_at: datetime = Field(default_factory=utcnow)
