"""
TrustGraph Service
==================

Stateless orchestration of the scoring, drift, scheduling and health
components over a TrustGraphStore.

Every call carries an explicit organisation id. Every store call is
bounded by ``store_timeout_seconds``; timeouts and backend failures
surface as retryable DependencyError and nothing is half-written,
because each multi-row change is a single store transaction.

Usage:
    service = TrustGraphService(InMemoryTrustGraphStore())
    run = await service.create_run("org-1", "sys-42", "sys")
    result = await service.complete_run("org-1", run.id, answers)

Author: TrustGraph Team
Version: 1.0.0
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from trustgraph import metrics
from trustgraph.audit import AuditAction, build_audit_record, require_actor, require_reason
from trustgraph.config import Settings, settings as default_settings
from trustgraph.drift import (
    DriftResult,
    DriftThresholds,
    check_stability,
    completed_history,
    detect_dimension_drift,
    detect_drift,
    select_previous_run,
)
from trustgraph.errors import (
    ConcurrentUpdateError,
    DependencyError,
    NotFoundError,
    StateConflictError,
    TrustGraphError,
    ValidationError,
)
from trustgraph.health.aggregator import HealthInputs, HealthWeights, compute_health
from trustgraph.health.snapshot_cache import HealthSnapshotCache
from trustgraph.logging import get_logger, operation_scope
from trustgraph.models import (
    DriftEvent,
    Escalation,
    HealthSnapshot,
    ReassessmentPolicy,
    Run,
    RunStatus,
    RunType,
    Severity,
    SnapshotFreshness,
    utcnow,
)
from trustgraph.scheduling.reassessment import (
    PolicyView,
    compute_next_due,
    describe_policy,
    is_overdue,
    validate_policy_input,
)
from trustgraph.scheduling.sweeps import (
    SweepResult,
    build_action_escalation,
    build_expiry_escalation,
    mark_expired,
    select_expirable,
)
from trustgraph.scoring.engine import ScoringEngine, ScoringResult
from trustgraph.scoring.models import Answer
from trustgraph.scoring.question_bank import DEFAULT_QUESTION_SET_VERSION
from trustgraph.store.base import RunCompletion, TrustGraphStore, history_fingerprint


logger = get_logger(__name__)

T = TypeVar("T")

SYSTEM_ACTOR = "system"


@dataclass
class CompletionResult:
    """What a caller gets back from complete_run."""
    run: Run
    scoring: ScoringResult
    drift_direction: str
    drift_severity: str
    previous_run_id: Optional[str]
    drift_events: List[DriftEvent] = field(default_factory=list)
    escalations: List[Escalation] = field(default_factory=list)
    policy: Optional[ReassessmentPolicy] = None
    policy_created: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run.id,
            "organisation_id": self.run.organisation_id,
            "target_id": self.run.target_id,
            "run_type": self.run.run_type.value,
            "version": self.run.version,
            "status": self.run.status.value,
            "dimension_scores": self.run.dimension_scores,
            "overall_score": self.run.overall_score,
            "risk_flags": [f.model_dump() for f in self.run.risk_flags],
            "drift_from_previous": self.run.drift_from_previous,
            "drift_flag": self.run.drift_flag,
            "drift_direction": self.drift_direction,
            "drift_severity": self.drift_severity,
            "previous_run_id": self.previous_run_id,
            "variance_last_3": self.run.variance_last_3,
            "stability_status": self.run.stability_status.value,
            "tier": self.scoring.tier,
            "recommendations": [r.model_dump(mode="json") for r in self.scoring.recommendations],
            "escalations": [e.model_dump(mode="json") for e in self.escalations],
            "policy_created": self.policy_created,
            "next_due": self.policy.next_due.isoformat() if self.policy and self.policy.next_due else None,
            "completed_at": self.run.completed_at.isoformat() if self.run.completed_at else None,
        }


@dataclass
class HealthReading:
    """A health snapshot with its freshness marker."""
    organisation_id: str
    freshness: SnapshotFreshness
    snapshot: Optional[HealthSnapshot] = None
    age_seconds: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "organisation_id": self.organisation_id,
            "freshness": self.freshness.value,
            "age_seconds": self.age_seconds,
            "snapshot": self.snapshot.model_dump(mode="json") if self.snapshot else None,
        }


@dataclass
class HealthQueueResult:
    """Outcome of one pass over the health recompute queue."""
    recomputed: Dict[str, Optional[float]] = field(default_factory=dict)
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recomputed_count": len(self.recomputed),
            "failed_count": len(self.failed),
            "recomputed": self.recomputed,
            "failed": self.failed,
        }


def low_score_severity(score: float, threshold: float) -> Optional[Severity]:
    """Severity of the escalation raised for a low overall score."""
    if score >= threshold:
        return None
    if score < 30:
        return Severity.CRITICAL
    if score < 40:
        return Severity.HIGH
    return Severity.MEDIUM


def drift_severity(delta: float, threshold: float) -> Optional[Severity]:
    """Severity of the escalation raised for significant drift."""
    magnitude = abs(delta)
    if magnitude <= threshold:
        return None
    if magnitude > 25:
        return Severity.CRITICAL
    if magnitude > 20:
        return Severity.HIGH
    return Severity.MEDIUM


class TrustGraphService:
    """
    Orchestrates the engine over a store.

    Attributes:
        store: Persistence backend
        cache: Optional Redis snapshot mirror
        settings: Thresholds, weights and timeouts
    """

    def __init__(
        self,
        store: TrustGraphStore,
        settings: Optional[Settings] = None,
        cache: Optional[HealthSnapshotCache] = None,
        scoring_engine: Optional[ScoringEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.cache = cache
        self.scoring = scoring_engine or ScoringEngine()
        self.thresholds = DriftThresholds.from_settings(self.settings)
        self.weights = HealthWeights.from_settings(self.settings)
        self._clock = clock or utcnow

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # Bounded store access
    # =========================================================================

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store call with the configured timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.store_timeout_seconds)
        except TrustGraphError:
            raise
        except asyncio.TimeoutError:
            metrics.record_store_error(operation, "timeout")
            logger.warning("store_timeout", operation=operation)
            raise DependencyError(
                f"Store operation '{operation}' timed out",
                {"operation": operation, "timeout_seconds": self.settings.store_timeout_seconds},
            )
        except (SQLAlchemyError, OSError) as e:
            metrics.record_store_error(operation, "unavailable")
            logger.warning("store_unavailable", operation=operation, error=str(e))
            raise DependencyError(
                f"Store operation '{operation}' failed: {e.__class__.__name__}",
                {"operation": operation},
            )

    # =========================================================================
    # Runs
    # =========================================================================

    @staticmethod
    def _run_type(value: Any) -> RunType:
        try:
            return RunType(value)
        except ValueError:
            raise ValidationError(
                f"run_type must be one of: {', '.join(t.value for t in RunType)}",
                {"field": "run_type", "value": str(value)},
            )

    async def create_run(
        self,
        organisation_id: str,
        target_id: str,
        run_type: Any,
        question_set_version: str = DEFAULT_QUESTION_SET_VERSION,
        answers: Optional[Dict[str, Answer]] = None,
        autonomy_level: Optional[int] = None,
        criticality_level: Optional[int] = None,
    ) -> Run:
        """
        Create a draft run; the store assigns the next version.

        autonomy_level and criticality_level (1-5) weight a system run in
        the organisation health; they are ignored for organisational runs.
        """
        if not organisation_id or not target_id:
            raise ValidationError("organisation_id and target_id are required")
        rt = self._run_type(run_type)
        for name, level in (("autonomy_level", autonomy_level), ("criticality_level", criticality_level)):
            if level is not None and not 1 <= level <= 5:
                raise ValidationError(f"{name} must be between 1 and 5", {"field": name, "value": level})
        questions = self.scoring.questions_for(rt.value, question_set_version)
        if answers:
            self.scoring.validate_answers(questions, answers)

        run = await self._call(
            "create_run",
            self.store.create_run(
                organisation_id,
                target_id,
                rt,
                question_set_version,
                answers,
                autonomy_level=autonomy_level if rt == RunType.SYS else None,
                criticality_level=criticality_level if rt == RunType.SYS else None,
            ),
        )
        logger.info(
            "run_created",
            organisation_id=organisation_id,
            run_id=run.id,
            target_id=target_id,
            run_type=rt.value,
            version=run.version,
        )
        return run

    async def get_run(self, organisation_id: str, run_id: str) -> Run:
        run = await self._call("get_run", self.store.get_run(organisation_id, run_id))
        if run is None:
            raise NotFoundError(f"Run not found: {run_id}", {"run_id": run_id})
        return run

    async def save_answers(self, organisation_id: str, run_id: str, answers: Dict[str, Answer]) -> Run:
        run = await self.get_run(organisation_id, run_id)
        if run.is_completed:
            raise StateConflictError(f"Run {run_id} is already completed", {"run_id": run_id})
        questions = self.scoring.questions_for(run.run_type.value, run.question_set_version)
        self.scoring.validate_answers(questions, answers)
        return await self._call("save_answers", self.store.save_answers(organisation_id, run_id, answers))

    async def complete_run(
        self,
        organisation_id: str,
        run_id: str,
        answers: Optional[Dict[str, Answer]] = None,
    ) -> CompletionResult:
        """
        Score a run and complete it atomically.

        Answers passed here are merged over any answers already saved on
        the run. Drift is measured against the preceding completed run of
        the same target. If another version of the target completes
        between reading the history and committing, drift is recomputed
        against the new history, up to ``completion_attempts`` times.

        Raises:
            NotFoundError: unknown run
            StateConflictError: run already completed
            ConcurrentUpdateError: target history kept changing
            ValidationError: answers do not fit the question set
            DependencyError: store unavailable or timed out
        """
        with operation_scope(organisation_id=organisation_id, run_id=run_id):
            return await self._complete_run(organisation_id, run_id, answers)

    async def _complete_run(
        self,
        organisation_id: str,
        run_id: str,
        answers: Optional[Dict[str, Answer]],
    ) -> CompletionResult:
        run = await self.get_run(organisation_id, run_id)
        if run.is_completed:
            raise StateConflictError(f"Run {run_id} is already completed", {"run_id": run_id})

        merged: Dict[str, Answer] = dict(run.answers)
        merged.update(answers or {})
        scoring = self.scoring.score(merged, run.run_type.value, run.question_set_version)

        attempts = self.settings.completion_attempts
        for attempt in range(1, attempts + 1):
            history = await self._call(
                "list_completed_runs",
                self.store.list_completed_runs(organisation_id, run.target_id, run.run_type),
            )
            completion, previous, drift = self._prepare_completion(run, merged, scoring, history)
            try:
                outcome = await self._call("commit_run_completion", self.store.commit_run_completion(completion))
                break
            except StateConflictError:
                metrics.record_completion_conflict()
                logger.info("run_completion_conflict")
                raise
            except ConcurrentUpdateError:
                metrics.record_completion_conflict("history_changed")
                logger.info("run_history_changed", attempt=attempt, attempts=attempts)
                if attempt == attempts:
                    raise

        completed = outcome.run
        metrics.record_run_completed(completed.run_type.value)
        for event in outcome.drift_events:
            metrics.record_drift_event(event.run_type.value, event.drift_flag)
        for esc in outcome.escalations:
            metrics.record_escalation("completion", esc.severity.value)

        logger.info(
            "run_completed",
            run_type=completed.run_type.value,
            version=completed.version,
            overall_score=completed.overall_score,
            risk_flags=scoring.risk_flag_codes,
            previous_run_id=completion.previous_run_id,
            drift_from_previous=completed.drift_from_previous,
            drift_flag=completed.drift_flag,
            stability_status=completed.stability_status.value,
            escalations=len(outcome.escalations),
            policy_created=outcome.policy_created,
        )

        return CompletionResult(
            run=completed,
            scoring=scoring,
            drift_direction=drift.direction,
            drift_severity=drift.severity,
            previous_run_id=previous.id if previous else None,
            drift_events=outcome.drift_events,
            escalations=outcome.escalations,
            policy=outcome.policy,
            policy_created=outcome.policy_created,
        )

    def _prepare_completion(
        self,
        run: Run,
        answers: Dict[str, Answer],
        scoring: ScoringResult,
        history: List[Run],
    ) -> Tuple[RunCompletion, Optional[Run], DriftResult]:
        """Everything the store writes for a completion, measured against ``history``."""
        previous = select_previous_run(history, run)
        prior_scores = [r.overall_score for r in completed_history(history, run) if r.overall_score is not None]

        drift = detect_drift(
            scoring.overall_score,
            previous.overall_score if previous else None,
            self.thresholds,
        )
        dim_drift = detect_dimension_drift(
            scoring.dimension_scores,
            previous.dimension_scores if previous else None,
            self.thresholds,
        )
        stability = check_stability(prior_scores + [scoring.overall_score], self.thresholds)

        now = self.now()
        completed = run.model_copy(update={
            "status": RunStatus.COMPLETED,
            "answers": answers,
            "dimension_scores": scoring.dimension_scores,
            "overall_score": scoring.overall_score,
            "risk_flags": scoring.risk_flags,
            "drift_from_previous": drift.delta,
            "drift_flag": drift.drift_flag,
            "variance_last_3": stability.variance,
            "stability_status": stability.status,
            "completed_at": now,
        })

        completion = RunCompletion(
            run=completed,
            history_ids=history_fingerprint(history, run),
            drift_events=self._drift_events(completed, previous, drift, dim_drift, now),
            escalations=self._completion_escalations(completed, previous, now),
            default_frequency_days=self.settings.default_reassessment_frequency_days,
        )
        return completion, previous, drift

    def _drift_events(self, run: Run, previous: Optional[Run], drift, dim_drift, now: datetime) -> List[DriftEvent]:
        if previous is None:
            return []
        events: List[DriftEvent] = []
        if drift.record:
            events.append(DriftEvent(
                run_id=run.id,
                previous_run_id=previous.id,
                organisation_id=run.organisation_id,
                target_id=run.target_id,
                run_type=run.run_type,
                delta_score=drift.delta,
                drift_flag=drift.drift_flag,
                created_at=now,
            ))
        for dim, result in sorted(dim_drift.items()):
            if not result.drift_flag:
                continue
            events.append(DriftEvent(
                run_id=run.id,
                previous_run_id=previous.id,
                organisation_id=run.organisation_id,
                target_id=run.target_id,
                run_type=run.run_type,
                delta_score=result.delta,
                dimension=dim,
                drift_flag=True,
                created_at=now,
            ))
        return events

    def _completion_escalations(self, run: Run, previous: Optional[Run], now: datetime) -> List[Escalation]:
        escalations: List[Escalation] = []
        threshold = self.settings.escalation_score_threshold
        severity = low_score_severity(run.overall_score, threshold)
        if severity is not None:
            escalations.append(Escalation(
                organisation_id=run.organisation_id,
                linked_run_id=run.id,
                linked_run_type=run.run_type,
                target_id=run.target_id,
                reason=(
                    f"Overall score {run.overall_score} is below the escalation "
                    f"threshold of {threshold:g} (version {run.version})"
                ),
                severity=severity,
                created_at=now,
            ))

        if previous is not None and run.drift_from_previous is not None:
            severity = drift_severity(run.drift_from_previous, self.settings.significant_drift_threshold)
            if severity is not None:
                escalations.append(Escalation(
                    organisation_id=run.organisation_id,
                    linked_run_id=run.id,
                    linked_run_type=run.run_type,
                    target_id=run.target_id,
                    reason=(
                        f"Significant drift of {run.drift_from_previous:+g} points from "
                        f"version {previous.version} to version {run.version}"
                    ),
                    severity=severity,
                    created_at=now,
                ))
        return escalations

    # =========================================================================
    # Health
    # =========================================================================

    async def get_health(self, organisation_id: str) -> HealthReading:
        """
        Serve the last published snapshot without recomputing.

        A snapshot older than ``health_snapshot_max_age_seconds`` is
        returned marked stale; a missing one is reported as not computed.
        """
        snapshot = None
        if self.cache is not None:
            snapshot = await self.cache.get(organisation_id)
        if snapshot is None:
            snapshot = await self._call("get_health_snapshot", self.store.get_health_snapshot(organisation_id))
        if snapshot is None:
            return HealthReading(organisation_id=organisation_id, freshness=SnapshotFreshness.NOT_COMPUTED)

        age = (self.now() - snapshot.computed_at).total_seconds()
        freshness = (
            SnapshotFreshness.STALE
            if age > self.settings.health_snapshot_max_age_seconds
            else SnapshotFreshness.FRESH
        )
        return HealthReading(
            organisation_id=organisation_id,
            freshness=freshness,
            snapshot=snapshot,
            age_seconds=round(age, 1),
        )

    async def gather_health_inputs(self, organisation_id: str, now: datetime) -> HealthInputs:
        since = now - timedelta(days=self.settings.health_drift_window_days)
        org_runs, sys_runs, counts, escalations, drift = await asyncio.gather(
            self._call(
                "recent_completed_runs",
                self.store.recent_completed_runs(organisation_id, RunType.ORG, self.settings.health_recent_org_runs),
            ),
            self._call(
                "latest_completed_runs_by_target",
                self.store.latest_completed_runs_by_target(organisation_id, RunType.SYS),
            ),
            self._call("action_counts", self.store.action_counts(organisation_id, now)),
            self._call("list_escalations", self.store.list_escalations(organisation_id)),
            self._call(
                "list_drift_events",
                self.store.list_drift_events(organisation_id, since=since, flagged_only=True, overall_only=True),
            ),
        )
        return HealthInputs(
            org_runs=org_runs,
            sys_runs=sys_runs,
            actions=counts,
            open_escalations=escalations,
            drift_events=drift,
        )

    async def recompute_health(self, organisation_id: str) -> HealthSnapshot:
        """
        Recompute and publish an organisation's snapshot.

        The store write completes before the cache is updated, so a
        reader never sees a snapshot that is not durable.
        """
        if not organisation_id:
            raise ValidationError("organisation_id is required")
        now = self.now()
        inputs = await self.gather_health_inputs(organisation_id, now)
        snapshot = compute_health(organisation_id, inputs, self.weights, now)

        await self._call("put_health_snapshot", self.store.put_health_snapshot(snapshot))
        if self.cache is not None:
            await self.cache.set(snapshot, ttl=self.settings.health_cache_ttl_seconds)

        if snapshot.health_score is not None:
            metrics.update_health_score(organisation_id, snapshot.health_score)
        logger.info(
            "health_snapshot_published",
            organisation_id=organisation_id,
            status=snapshot.status.value,
            health_score=snapshot.health_score,
            base_health=snapshot.base_health,
            p_rel=snapshot.p_rel,
            p_act=snapshot.p_act,
            p_drift=snapshot.p_drift,
            p_exp=snapshot.p_exp,
        )
        return snapshot

    async def recompute_all_health(self) -> Dict[str, Optional[float]]:
        """Full rebuild: recompute every known organisation."""
        org_ids = await self._call("list_organisation_ids", self.store.list_organisation_ids())
        results: Dict[str, Optional[float]] = {}
        for org_id in org_ids:
            snapshot = await self.recompute_health(org_id)
            results[org_id] = snapshot.health_score
        logger.info("health_recompute_all", organisations=len(results))
        return results

    async def process_health_queue(self, limit: Optional[int] = None) -> HealthQueueResult:
        """
        Recompute the organisations queued by completions, sweeps,
        resolutions and action changes.

        An organisation whose recompute fails on a dependency is queued
        again for the next pass.
        """
        org_ids = await self._call("claim_health_recomputes", self.store.claim_health_recomputes(limit))
        result = HealthQueueResult()
        for org_id in org_ids:
            try:
                snapshot = await self.recompute_health(org_id)
            except DependencyError as e:
                logger.warning("health_recompute_failed", organisation_id=org_id, error=e.code)
                result.failed.append(org_id)
                continue
            result.recomputed[org_id] = snapshot.health_score

        now = self.now()
        for org_id in result.failed:
            await self._call("queue_health_recompute", self.store.queue_health_recompute(org_id, now))
        if org_ids:
            logger.info("health_queue_processed", **result.to_dict())
        return result

    # =========================================================================
    # Reassessment policies
    # =========================================================================

    async def list_policies(self, organisation_id: str, run_type: Optional[Any] = None) -> List[PolicyView]:
        rt = self._run_type(run_type) if run_type is not None else None
        policies = await self._call("list_policies", self.store.list_policies(organisation_id, rt))
        now = self.now()
        return [describe_policy(p, now) for p in policies]

    async def upsert_policy(
        self,
        organisation_id: str,
        target_id: str,
        run_type: Any,
        frequency_days: int,
        actor: str,
        reason: str,
        last_completed: Optional[datetime] = None,
    ) -> PolicyView:
        """
        Create or override a reassessment policy.

        next_due is recomputed from last_completed (given, or the stored
        value) and the new frequency.

        Raises:
            ValidationError: bad input or missing reason; nothing written
        """
        rt = validate_policy_input(target_id, run_type, frequency_days)
        actor = require_actor(actor)
        reason = require_reason(reason)
        if not organisation_id:
            raise ValidationError("organisation_id is required")

        now = self.now()
        existing = await self._call("get_policy", self.store.get_policy(organisation_id, target_id, rt))
        last = last_completed if last_completed is not None else (existing.last_completed if existing else None)
        next_due = compute_next_due(last, frequency_days)

        base = existing or ReassessmentPolicy(
            organisation_id=organisation_id,
            target_id=target_id,
            run_type=rt,
            frequency_days=frequency_days,
            created_at=now,
        )
        policy = base.model_copy(update={
            "frequency_days": frequency_days,
            "last_completed": last,
            "next_due": next_due,
            "expired_at": base.expired_at if is_overdue(next_due, now) else None,
            "updated_at": now,
        })

        audit = build_audit_record(
            actor=actor,
            action=AuditAction.POLICY_UPDATED if existing else AuditAction.POLICY_CREATED,
            target_type="reassessment_policy",
            target_id=policy.id,
            reason=reason,
            before=existing.model_dump(mode="json") if existing else None,
            after=policy.model_dump(mode="json"),
            organisation_id=organisation_id,
            timestamp=now,
        )
        saved = await self._call("save_policy", self.store.save_policy(policy, audit))
        logger.info(
            "policy_upserted",
            organisation_id=organisation_id,
            target_id=target_id,
            run_type=rt.value,
            frequency_days=frequency_days,
            created=existing is None,
        )
        return describe_policy(saved, now)

    # =========================================================================
    # Sweeps
    # =========================================================================

    async def sweep_expiry(
        self,
        actor: str = SYSTEM_ACTOR,
        reason: str = "Scheduled reassessment expiry sweep",
        organisation_id: Optional[str] = None,
    ) -> SweepResult:
        """
        Escalate every overdue policy once per due date.

        Safe to run concurrently or repeatedly: a policy already escalated
        for its current next_due is skipped and counted as zero. Each
        expiry is written together with its audit record.
        """
        actor = require_actor(actor)
        reason = require_reason(reason)
        now = self.now()
        candidates = select_expirable(
            await self._call("list_overdue_policies", self.store.list_overdue_policies(now, organisation_id)),
            now,
        )

        result = SweepResult()
        for policy in candidates:
            escalation = build_expiry_escalation(policy, now)
            expired = mark_expired(policy, now)
            audit = build_audit_record(
                actor=actor,
                action=AuditAction.EXPIRY_SWEEP,
                target_type="reassessment_policy",
                target_id=policy.id,
                reason=reason,
                before=policy.model_dump(mode="json"),
                after=expired.model_dump(mode="json"),
                organisation_id=policy.organisation_id,
                metadata={"escalation_id": escalation.id},
                timestamp=now,
            )
            done = await self._call("apply_expiry", self.store.apply_expiry(policy, expired, escalation, audit))
            if not done:
                result.skipped_count += 1
                continue
            result.expired_count += 1
            result.escalation_count += 1
            metrics.record_escalation("expiry", escalation.severity.value)

        logger.info("expiry_sweep_completed", actor=actor, **result.to_dict())
        return result

    async def sweep_overdue_actions(
        self,
        actor: str = SYSTEM_ACTOR,
        reason: str = "Scheduled overdue action sweep",
        organisation_id: Optional[str] = None,
    ) -> SweepResult:
        """Escalate overdue actions at or above the configured severity, once each."""
        actor = require_actor(actor)
        reason = require_reason(reason)
        try:
            min_severity = Severity(self.settings.action_escalation_min_severity)
        except ValueError:
            raise ValidationError(
                f"Invalid action_escalation_min_severity: {self.settings.action_escalation_min_severity}"
            )
        now = self.now()
        actions = await self._call(
            "list_overdue_actions",
            self.store.list_overdue_actions(now, min_severity, organisation_id),
        )

        result = SweepResult()
        for action in actions:
            escalation = build_action_escalation(action, now)
            audit = build_audit_record(
                actor=actor,
                action=AuditAction.ACTION_SWEEP,
                target_type="action",
                target_id=action.id,
                reason=reason,
                before=None,
                after=escalation.model_dump(mode="json"),
                organisation_id=action.organisation_id,
                timestamp=now,
            )
            inserted = await self._call(
                "insert_action_escalation",
                self.store.insert_action_escalation(escalation, audit),
            )
            if not inserted:
                result.skipped_count += 1
                continue
            result.escalation_count += 1
            metrics.record_escalation("action", escalation.severity.value)

        logger.info("action_sweep_completed", actor=actor, **result.to_dict())
        return result

    # =========================================================================
    # Escalations & drift
    # =========================================================================

    async def list_escalations(self, organisation_id: str, include_resolved: bool = False) -> List[Escalation]:
        return await self._call(
            "list_escalations",
            self.store.list_escalations(organisation_id, include_resolved),
        )

    async def resolve_escalation(
        self,
        organisation_id: str,
        escalation_id: str,
        actor: str,
        reason: str,
    ) -> Escalation:
        """
        Resolve an open escalation.

        Raises:
            NotFoundError: unknown escalation
            StateConflictError: already resolved
        """
        actor = require_actor(actor)
        reason = require_reason(reason)
        before = await self._call("get_escalation", self.store.get_escalation(organisation_id, escalation_id))
        if before is None:
            raise NotFoundError(f"Escalation not found: {escalation_id}", {"escalation_id": escalation_id})
        if before.resolved:
            raise StateConflictError(
                f"Escalation {escalation_id} is already resolved",
                {"escalation_id": escalation_id},
            )

        now = self.now()
        expected = before.model_copy(update={
            "resolved": True,
            "resolved_at": now,
            "resolved_by": actor,
            "resolution_note": reason,
        })
        audit = build_audit_record(
            actor=actor,
            action=AuditAction.ESCALATION_RESOLVED,
            target_type="escalation",
            target_id=escalation_id,
            reason=reason,
            before=before.model_dump(mode="json"),
            after=expected.model_dump(mode="json"),
            organisation_id=organisation_id,
            timestamp=now,
        )
        resolved = await self._call(
            "resolve_escalation",
            self.store.resolve_escalation(organisation_id, escalation_id, actor, reason, now, audit),
        )
        logger.info("escalation_resolved", organisation_id=organisation_id, escalation_id=escalation_id)
        return resolved

    async def list_drift_events(
        self,
        organisation_id: str,
        run_type: Optional[Any] = None,
        days: Optional[int] = None,
    ) -> List[DriftEvent]:
        rt = self._run_type(run_type) if run_type is not None else None
        if days is not None and days < 1:
            raise ValidationError("days must be at least 1", {"field": "days"})
        since = self.now() - timedelta(days=days) if days else None
        return await self._call(
            "list_drift_events",
            self.store.list_drift_events(organisation_id, run_type=rt, since=since),
        )
