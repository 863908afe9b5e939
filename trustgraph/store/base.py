"""
Store Contract
==============

Narrow persistence interface consumed by the TrustGraph service.

Every method takes an explicit organisation id where the data is
organisation-scoped; there is no ambient "current organisation".

Atomicity:
    - commit_run_completion: conditional status transition, drift events,
      escalations and policy roll-forward in one transaction, serialised
      per target. The losing writer of a concurrent completion gets
      StateConflictError; a writer whose target history changed since it
      was read gets ConcurrentUpdateError.
    - apply_expiry / insert_action_escalation: conditional writes that
      re-check the "already escalated" condition inside the transaction.
    - Operator writes (save_policy, resolve_escalation, sweeps) take their
      AuditRecord and persist it in the same transaction as the change.
    - Every write that moves an organisation's health inputs also queues
      the organisation for a health recompute, in the same transaction.
    - put_health_snapshot: the whole row is replaced in one write.

Author: TrustGraph Team
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from trustgraph.audit import AuditRecord
from trustgraph.drift import completed_history
from trustgraph.models import (
    Action,
    ActionCounts,
    DriftEvent,
    Escalation,
    HealthSnapshot,
    ReassessmentPolicy,
    Run,
    RunStatus,
    RunType,
    Severity,
)
from trustgraph.scoring.models import Answer


COMPLETABLE_STATUSES = frozenset({RunStatus.DRAFT, RunStatus.IN_PROGRESS})


def history_fingerprint(completed: Sequence[Run], current: Run) -> List[str]:
    """
    Ids of the completed runs preceding ``current`` for its target, oldest
    first. Drift and stability are functions of exactly this list.
    """
    return [r.id for r in completed_history(completed, current)]


@dataclass
class RunCompletion:
    """Everything written when a run completes."""
    run: Run
    """The run with status completed and all computed fields set"""

    history_ids: List[str] = field(default_factory=list)
    """Preceding completed runs the drift and stability were computed from"""

    drift_events: List[DriftEvent] = field(default_factory=list)
    escalations: List[Escalation] = field(default_factory=list)
    default_frequency_days: int = 90

    @property
    def previous_run_id(self) -> Optional[str]:
        return self.history_ids[-1] if self.history_ids else None


@dataclass
class CompletionOutcome:
    run: Run
    policy: ReassessmentPolicy
    policy_created: bool
    drift_events: List[DriftEvent]
    escalations: List[Escalation]


class TrustGraphStore(ABC):
    """Abstract persistence backend."""

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Prepare the backend. Default: nothing to do."""

    async def close(self) -> None:
        """Release backend resources. Default: nothing to do."""

    @abstractmethod
    async def ping(self) -> bool:
        """Whether the backend answers."""

    # =========================================================================
    # Runs
    # =========================================================================

    @abstractmethod
    async def create_run(
        self,
        organisation_id: str,
        target_id: str,
        run_type: RunType,
        question_set_version: str,
        answers: Optional[Dict[str, Answer]] = None,
        autonomy_level: Optional[int] = None,
        criticality_level: Optional[int] = None,
    ) -> Run:
        """Create a draft run with the next version for its target."""

    @abstractmethod
    async def get_run(self, organisation_id: str, run_id: str) -> Optional[Run]:
        ...

    @abstractmethod
    async def save_answers(self, organisation_id: str, run_id: str, answers: Dict[str, Answer]) -> Run:
        """
        Merge answers into a run that is not completed yet.

        Moves a draft run to in_progress.

        Raises:
            NotFoundError: unknown run
            StateConflictError: run already completed
        """

    @abstractmethod
    async def list_completed_runs(
        self,
        organisation_id: str,
        target_id: str,
        run_type: RunType,
    ) -> List[Run]:
        """Completed runs of one target, oldest first by version."""

    @abstractmethod
    async def latest_completed_runs_by_target(self, organisation_id: str, run_type: RunType) -> List[Run]:
        """The latest completed run of every target of this type."""

    @abstractmethod
    async def recent_completed_runs(self, organisation_id: str, run_type: RunType, limit: int) -> List[Run]:
        """Most recently completed runs of this type, newest first."""

    @abstractmethod
    async def commit_run_completion(self, completion: RunCompletion) -> CompletionOutcome:
        """
        Atomically complete a run and queue its organisation for a
        health recompute.

        Completions of one target are serialised. Under that lock the
        preceding completed runs are re-read and compared with
        ``completion.history_ids``.

        Raises:
            NotFoundError: unknown run
            StateConflictError: run already completed (losing writer)
            ConcurrentUpdateError: the target history changed since it was read
        """

    # =========================================================================
    # Reassessment policies
    # =========================================================================

    @abstractmethod
    async def get_policy(
        self,
        organisation_id: str,
        target_id: str,
        run_type: RunType,
    ) -> Optional[ReassessmentPolicy]:
        ...

    @abstractmethod
    async def list_policies(
        self,
        organisation_id: str,
        run_type: Optional[RunType] = None,
    ) -> List[ReassessmentPolicy]:
        ...

    @abstractmethod
    async def save_policy(
        self,
        policy: ReassessmentPolicy,
        audit: Optional[AuditRecord] = None,
    ) -> ReassessmentPolicy:
        """Insert or replace the policy for (organisation, target, run type), with its audit record."""

    @abstractmethod
    async def list_overdue_policies(
        self,
        now: datetime,
        organisation_id: Optional[str] = None,
    ) -> List[ReassessmentPolicy]:
        """Policies with next_due < now not yet escalated for that next_due."""

    @abstractmethod
    async def apply_expiry(
        self,
        policy: ReassessmentPolicy,
        expired: ReassessmentPolicy,
        escalation: Escalation,
        audit: Optional[AuditRecord] = None,
    ) -> bool:
        """
        Mark a policy expired and insert its escalation, conditionally.

        Applies only if the stored policy still has the same next_due and
        has not been escalated for it. Returns False when another sweep
        got there first; nothing, including the audit record, is written.
        """

    # =========================================================================
    # Actions
    # =========================================================================

    @abstractmethod
    async def save_action(self, action: Action) -> Action:
        """Insert or replace an action (fed by the action tracker)."""

    @abstractmethod
    async def list_overdue_actions(
        self,
        now: datetime,
        min_severity: Severity,
        organisation_id: Optional[str] = None,
    ) -> List[Action]:
        ...

    @abstractmethod
    async def action_counts(self, organisation_id: str, now: datetime) -> ActionCounts:
        ...

    # =========================================================================
    # Escalations
    # =========================================================================

    @abstractmethod
    async def insert_action_escalation(
        self,
        escalation: Escalation,
        audit: Optional[AuditRecord] = None,
    ) -> bool:
        """
        Insert an action escalation unless an unresolved one is already
        linked to the same action. Returns whether it was inserted; the
        audit record is written only with the escalation.
        """

    @abstractmethod
    async def list_escalations(
        self,
        organisation_id: str,
        include_resolved: bool = False,
    ) -> List[Escalation]:
        """Escalations, newest first."""

    @abstractmethod
    async def get_escalation(self, organisation_id: str, escalation_id: str) -> Optional[Escalation]:
        ...

    @abstractmethod
    async def resolve_escalation(
        self,
        organisation_id: str,
        escalation_id: str,
        resolved_by: str,
        resolution_note: Optional[str],
        now: datetime,
        audit: Optional[AuditRecord] = None,
    ) -> Escalation:
        """
        Conditionally mark an escalation resolved, with its audit record.

        Raises:
            NotFoundError: unknown escalation
            StateConflictError: already resolved
        """

    # =========================================================================
    # Drift
    # =========================================================================

    @abstractmethod
    async def list_drift_events(
        self,
        organisation_id: str,
        run_type: Optional[RunType] = None,
        since: Optional[datetime] = None,
        flagged_only: bool = False,
        overall_only: bool = False,
    ) -> List[DriftEvent]:
        """Drift events, newest first."""

    # =========================================================================
    # Health snapshots
    # =========================================================================

    @abstractmethod
    async def get_health_snapshot(self, organisation_id: str) -> Optional[HealthSnapshot]:
        ...

    @abstractmethod
    async def put_health_snapshot(self, snapshot: HealthSnapshot) -> HealthSnapshot:
        ...

    @abstractmethod
    async def queue_health_recompute(self, organisation_id: str, now: datetime) -> None:
        """Mark an organisation's snapshot out of date."""

    @abstractmethod
    async def claim_health_recomputes(self, limit: Optional[int] = None) -> List[str]:
        """
        Remove and return queued organisations, oldest request first.

        A change queued after the claim queues the organisation again.
        """

    # =========================================================================
    # Organisations
    # =========================================================================

    @abstractmethod
    async def list_organisation_ids(self) -> List[str]:
        """Organisations with at least one run, policy, action or escalation."""
