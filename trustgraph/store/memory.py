"""
In-Memory Store
===============

Process-local TrustGraphStore used by tests and local runs.

A single asyncio.Lock serialises every write, which gives the same
conditional-update semantics as the SQL backend: of two concurrent
completions of one run, exactly one wins, and completions of one target
see each other's results. Inside the lock every check and the audit
write happen before any state is touched, so a failed write leaves
nothing behind.

Author: TrustGraph Team
Version: 1.0.0
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from trustgraph.audit import AuditRecord
from trustgraph.errors import ConcurrentUpdateError, NotFoundError, StateConflictError
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
    utcnow,
)
from trustgraph.scheduling.reassessment import policy_after_completion
from trustgraph.scheduling.sweeps import needs_expiry
from trustgraph.scoring.models import Answer
from trustgraph.store.base import (
    COMPLETABLE_STATUSES,
    CompletionOutcome,
    RunCompletion,
    TrustGraphStore,
    history_fingerprint,
)


logger = logging.getLogger(__name__)

PolicyKey = Tuple[str, str, RunType]


class InMemoryTrustGraphStore(TrustGraphStore):
    """
    Dict-backed store.

    Records are copied on the way in and out so callers never hold a
    reference into the store.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self.runs: Dict[str, Run] = {}
        self.policies: Dict[PolicyKey, ReassessmentPolicy] = {}
        self.actions: Dict[str, Action] = {}
        self.escalations: Dict[str, Escalation] = {}
        self.drift_events: List[DriftEvent] = []
        self.snapshots: Dict[str, HealthSnapshot] = {}
        self.audit_log: List[AuditRecord] = []
        self.recompute_queue: Dict[str, datetime] = {}

    async def ping(self) -> bool:
        return True

    def _write_audit(self, audit: Optional[AuditRecord]) -> None:
        if audit is not None:
            self.audit_log.append(audit)

    def _queue(self, organisation_id: str, now: Optional[datetime] = None) -> None:
        self.recompute_queue[organisation_id] = now or utcnow()

    # =========================================================================
    # Runs
    # =========================================================================

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
        async with self._lock:
            versions = [
                r.version for r in self.runs.values()
                if r.organisation_id == organisation_id
                and r.target_id == target_id
                and r.run_type == run_type
            ]
            run = Run(
                organisation_id=organisation_id,
                target_id=target_id,
                run_type=run_type,
                version=max(versions, default=0) + 1,
                question_set_version=question_set_version,
                answers=dict(answers or {}),
                autonomy_level=autonomy_level,
                criticality_level=criticality_level,
                status=RunStatus.IN_PROGRESS if answers else RunStatus.DRAFT,
            )
            self.runs[run.id] = run
            return run.model_copy(deep=True)

    async def get_run(self, organisation_id: str, run_id: str) -> Optional[Run]:
        run = self.runs.get(run_id)
        if run is None or run.organisation_id != organisation_id:
            return None
        return run.model_copy(deep=True)

    async def save_answers(self, organisation_id: str, run_id: str, answers: Dict[str, Answer]) -> Run:
        async with self._lock:
            run = self.runs.get(run_id)
            if run is None or run.organisation_id != organisation_id:
                raise NotFoundError(f"Run not found: {run_id}")
            if run.status == RunStatus.COMPLETED:
                raise StateConflictError(f"Run {run_id} is already completed")
            merged = dict(run.answers)
            merged.update(answers)
            updated = run.model_copy(update={"answers": merged, "status": RunStatus.IN_PROGRESS})
            self.runs[run_id] = updated
            return updated.model_copy(deep=True)

    def _completed(self, organisation_id: str, run_type: RunType) -> List[Run]:
        return [
            r for r in self.runs.values()
            if r.organisation_id == organisation_id
            and r.run_type == run_type
            and r.status == RunStatus.COMPLETED
        ]

    async def list_completed_runs(self, organisation_id: str, target_id: str, run_type: RunType) -> List[Run]:
        runs = [r for r in self._completed(organisation_id, run_type) if r.target_id == target_id]
        runs.sort(key=lambda r: (r.version, r.completed_at or r.created_at, r.id))
        return [r.model_copy(deep=True) for r in runs]

    async def latest_completed_runs_by_target(self, organisation_id: str, run_type: RunType) -> List[Run]:
        latest: Dict[str, Run] = {}
        for r in self._completed(organisation_id, run_type):
            current = latest.get(r.target_id)
            if current is None or (r.version, r.id) > (current.version, current.id):
                latest[r.target_id] = r
        return [latest[k].model_copy(deep=True) for k in sorted(latest)]

    async def recent_completed_runs(self, organisation_id: str, run_type: RunType, limit: int) -> List[Run]:
        runs = self._completed(organisation_id, run_type)
        runs.sort(key=lambda r: (r.completed_at or r.created_at, r.id), reverse=True)
        return [r.model_copy(deep=True) for r in runs[:limit]]

    async def commit_run_completion(self, completion: RunCompletion) -> CompletionOutcome:
        async with self._lock:
            completed = completion.run
            stored = self.runs.get(completed.id)
            if stored is None or stored.organisation_id != completed.organisation_id:
                raise NotFoundError(f"Run not found: {completed.id}")
            if stored.status not in COMPLETABLE_STATUSES:
                raise StateConflictError(
                    f"Run {completed.id} is already completed",
                    {"run_id": completed.id},
                )

            history = history_fingerprint(self._completed(completed.organisation_id, completed.run_type), completed)
            if history != completion.history_ids:
                raise ConcurrentUpdateError(
                    f"History of target {completed.target_id} changed while run {completed.id} was completing",
                    {"run_id": completed.id, "expected": completion.history_ids, "actual": history},
                )

            key = (completed.organisation_id, completed.target_id, completed.run_type)
            completed_at = completed.completed_at or utcnow()
            policy, created = policy_after_completion(
                self.policies.get(key),
                completed.organisation_id,
                completed.target_id,
                completed.run_type,
                completed_at,
                completion.default_frequency_days,
            )

            self.runs[completed.id] = completed.model_copy(deep=True)
            self.drift_events.extend(e.model_copy() for e in completion.drift_events)
            for esc in completion.escalations:
                self.escalations[esc.id] = esc.model_copy()
            self.policies[key] = policy
            self._queue(completed.organisation_id, completed_at)

            return CompletionOutcome(
                run=completed.model_copy(deep=True),
                policy=policy.model_copy(),
                policy_created=created,
                drift_events=list(completion.drift_events),
                escalations=list(completion.escalations),
            )

    # =========================================================================
    # Reassessment policies
    # =========================================================================

    async def get_policy(self, organisation_id: str, target_id: str, run_type: RunType) -> Optional[ReassessmentPolicy]:
        policy = self.policies.get((organisation_id, target_id, run_type))
        return policy.model_copy() if policy else None

    async def list_policies(self, organisation_id: str, run_type: Optional[RunType] = None) -> List[ReassessmentPolicy]:
        policies = [
            p for (org, _, rt), p in self.policies.items()
            if org == organisation_id and (run_type is None or rt == run_type)
        ]
        policies.sort(key=lambda p: (p.next_due is None, p.next_due or p.created_at, p.target_id))
        return [p.model_copy() for p in policies]

    async def save_policy(
        self,
        policy: ReassessmentPolicy,
        audit: Optional[AuditRecord] = None,
    ) -> ReassessmentPolicy:
        async with self._lock:
            key = (policy.organisation_id, policy.target_id, policy.run_type)
            existing = self.policies.get(key)
            if existing is not None and existing.id != policy.id:
                policy = policy.model_copy(update={"id": existing.id, "created_at": existing.created_at})
            self._write_audit(audit)
            self.policies[key] = policy.model_copy()
            return policy.model_copy()

    async def list_overdue_policies(self, now: datetime, organisation_id: Optional[str] = None) -> List[ReassessmentPolicy]:
        return [
            p.model_copy() for p in self.policies.values()
            if (organisation_id is None or p.organisation_id == organisation_id)
            and needs_expiry(p, now)
        ]

    async def apply_expiry(
        self,
        policy: ReassessmentPolicy,
        expired: ReassessmentPolicy,
        escalation: Escalation,
        audit: Optional[AuditRecord] = None,
    ) -> bool:
        async with self._lock:
            key = (policy.organisation_id, policy.target_id, policy.run_type)
            current = self.policies.get(key)
            if current is None or current.next_due != policy.next_due:
                return False
            if current.escalated_for_due == current.next_due:
                return False
            self._write_audit(audit)
            self.policies[key] = expired.model_copy()
            self.escalations[escalation.id] = escalation.model_copy()
            self._queue(policy.organisation_id, escalation.created_at)
            return True

    # =========================================================================
    # Actions
    # =========================================================================

    async def save_action(self, action: Action) -> Action:
        async with self._lock:
            self.actions[action.id] = action.model_copy()
            self._queue(action.organisation_id)
            return action.model_copy()

    async def list_overdue_actions(
        self,
        now: datetime,
        min_severity: Severity,
        organisation_id: Optional[str] = None,
    ) -> List[Action]:
        return [
            a.model_copy() for a in self.actions.values()
            if (organisation_id is None or a.organisation_id == organisation_id)
            and a.is_active
            and a.due_date is not None
            and a.due_date < now
            and a.severity.rank >= min_severity.rank
        ]

    async def action_counts(self, organisation_id: str, now: datetime) -> ActionCounts:
        active = [a for a in self.actions.values() if a.organisation_id == organisation_id and a.is_active]
        overdue = [a for a in active if a.due_date is not None and a.due_date < now]
        return ActionCounts(
            open_actions=len(active),
            overdue_actions=len(overdue),
            critical_overdue_actions=len([a for a in overdue if a.severity == Severity.CRITICAL]),
        )

    # =========================================================================
    # Escalations
    # =========================================================================

    async def insert_action_escalation(
        self,
        escalation: Escalation,
        audit: Optional[AuditRecord] = None,
    ) -> bool:
        async with self._lock:
            for existing in self.escalations.values():
                if existing.linked_action_id == escalation.linked_action_id and not existing.resolved:
                    return False
            self._write_audit(audit)
            self.escalations[escalation.id] = escalation.model_copy()
            self._queue(escalation.organisation_id, escalation.created_at)
            return True

    async def list_escalations(self, organisation_id: str, include_resolved: bool = False) -> List[Escalation]:
        items = [
            e for e in self.escalations.values()
            if e.organisation_id == organisation_id and (include_resolved or not e.resolved)
        ]
        items.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return [e.model_copy() for e in items]

    async def get_escalation(self, organisation_id: str, escalation_id: str) -> Optional[Escalation]:
        esc = self.escalations.get(escalation_id)
        if esc is None or esc.organisation_id != organisation_id:
            return None
        return esc.model_copy()

    async def resolve_escalation(
        self,
        organisation_id: str,
        escalation_id: str,
        resolved_by: str,
        resolution_note: Optional[str],
        now: datetime,
        audit: Optional[AuditRecord] = None,
    ) -> Escalation:
        async with self._lock:
            esc = self.escalations.get(escalation_id)
            if esc is None or esc.organisation_id != organisation_id:
                raise NotFoundError(f"Escalation not found: {escalation_id}")
            if esc.resolved:
                raise StateConflictError(
                    f"Escalation {escalation_id} is already resolved",
                    {"escalation_id": escalation_id},
                )
            resolved = esc.model_copy(update={
                "resolved": True,
                "resolved_at": now,
                "resolved_by": resolved_by,
                "resolution_note": resolution_note,
            })
            self._write_audit(audit)
            self.escalations[escalation_id] = resolved
            self._queue(organisation_id, now)
            return resolved.model_copy()

    # =========================================================================
    # Drift
    # =========================================================================

    async def list_drift_events(
        self,
        organisation_id: str,
        run_type: Optional[RunType] = None,
        since: Optional[datetime] = None,
        flagged_only: bool = False,
        overall_only: bool = False,
    ) -> List[DriftEvent]:
        events = [
            e for e in self.drift_events
            if e.organisation_id == organisation_id
            and (run_type is None or e.run_type == run_type)
            and (since is None or e.created_at >= since)
            and (not flagged_only or e.drift_flag)
            and (not overall_only or e.dimension is None)
        ]
        events.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return [e.model_copy() for e in events]

    # =========================================================================
    # Health snapshots
    # =========================================================================

    async def get_health_snapshot(self, organisation_id: str) -> Optional[HealthSnapshot]:
        snapshot = self.snapshots.get(organisation_id)
        return snapshot.model_copy() if snapshot else None

    async def put_health_snapshot(self, snapshot: HealthSnapshot) -> HealthSnapshot:
        # Single dict assignment: readers see the old object or the new one
        self.snapshots[snapshot.organisation_id] = snapshot.model_copy()
        return snapshot

    async def queue_health_recompute(self, organisation_id: str, now: datetime) -> None:
        async with self._lock:
            self._queue(organisation_id, now)

    async def claim_health_recomputes(self, limit: Optional[int] = None) -> List[str]:
        async with self._lock:
            queued = sorted(self.recompute_queue, key=lambda org: (self.recompute_queue[org], org))
            claimed = queued[:limit] if limit is not None else queued
            for org in claimed:
                del self.recompute_queue[org]
            return claimed

    # =========================================================================
    # Organisations
    # =========================================================================

    async def list_organisation_ids(self) -> List[str]:
        orgs = set()
        orgs.update(r.organisation_id for r in self.runs.values())
        orgs.update(org for (org, _, _) in self.policies)
        orgs.update(a.organisation_id for a in self.actions.values())
        orgs.update(e.organisation_id for e in self.escalations.values())
        return sorted(orgs)
