"""
PostgreSQL Store
================

SQLAlchemy 2.0 async implementation of TrustGraphStore.

Conditional writes:
    - run completion updates tg_runs only WHERE status IN (draft,
      in_progress); zero affected rows means another writer won
    - expiry updates the policy only while next_due is unchanged and
      not yet escalated for it
    - action escalations rely on a partial unique index (one unresolved
      escalation per action) with ON CONFLICT DO NOTHING
    - completions of one target serialise on a transaction-scoped
      advisory lock and re-read the target history under it
    - operator audit rows and health recompute queue rows are added in
      the same session as the change they describe
    - snapshots are upserted with a single INSERT .. ON CONFLICT

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import and_, delete, func, or_, select, text, union, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from trustgraph.audit import AuditRecord
from trustgraph.db.models import (
    ActionRow,
    AuditLogRow,
    DriftEventRow,
    EscalationRow,
    HealthRecomputeRow,
    HealthSnapshotRow,
    PolicyRow,
    RunRow,
)
from trustgraph.db.session import close_db, create_session_factory, init_db, session_scope
from trustgraph.errors import ConcurrentUpdateError, NotFoundError, StateConflictError
from trustgraph.models import (
    Action,
    ActionCounts,
    ActionStatus,
    DriftEvent,
    Escalation,
    HealthSnapshot,
    ReassessmentPolicy,
    Run,
    RunStatus,
    RunType,
    Severity,
    new_id,
    utcnow,
)
from trustgraph.scheduling.reassessment import policy_after_completion
from trustgraph.scoring.models import Answer
from trustgraph.store.base import (
    COMPLETABLE_STATUSES,
    CompletionOutcome,
    RunCompletion,
    TrustGraphStore,
    history_fingerprint,
)


logger = logging.getLogger(__name__)

CREATE_RUN_ATTEMPTS = 3
ACTIVE_ACTION_VALUES = [
    ActionStatus.OPEN.value,
    ActionStatus.IN_PROGRESS.value,
    ActionStatus.BLOCKED.value,
]


# =============================================================================
# Row <-> model conversion
# =============================================================================

def _run_from_row(row: RunRow) -> Run:
    return Run(
        id=row.id,
        organisation_id=row.organisation_id,
        target_id=row.target_id,
        run_type=RunType(row.run_type),
        version=row.version,
        status=RunStatus(row.status),
        question_set_version=row.question_set_version,
        answers={k: Answer.model_validate(v) for k, v in (row.answers or {}).items()},
        autonomy_level=row.autonomy_level,
        criticality_level=row.criticality_level,
        dimension_scores=row.dimension_scores,
        overall_score=row.overall_score,
        risk_flags=row.risk_flags or [],
        drift_from_previous=row.drift_from_previous,
        drift_flag=row.drift_flag,
        variance_last_3=row.variance_last_3,
        stability_status=row.stability_status,
        created_at=row.created_at,
        completed_at=row.completed_at,
    )


def _answers_json(answers: Dict[str, Answer]) -> Dict[str, dict]:
    return {k: v.model_dump(mode="json", exclude_none=True) for k, v in answers.items()}


def _policy_from_row(row: PolicyRow) -> ReassessmentPolicy:
    return ReassessmentPolicy(
        id=row.id,
        organisation_id=row.organisation_id,
        target_id=row.target_id,
        run_type=RunType(row.run_type),
        frequency_days=row.frequency_days,
        last_completed=row.last_completed,
        next_due=row.next_due,
        expired_at=row.expired_at,
        escalated_for_due=row.escalated_for_due,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _policy_values(policy: ReassessmentPolicy) -> dict:
    return {
        "id": policy.id,
        "organisation_id": policy.organisation_id,
        "target_id": policy.target_id,
        "run_type": policy.run_type.value,
        "frequency_days": policy.frequency_days,
        "last_completed": policy.last_completed,
        "next_due": policy.next_due,
        "expired_at": policy.expired_at,
        "escalated_for_due": policy.escalated_for_due,
        "created_at": policy.created_at,
        "updated_at": policy.updated_at,
    }


def _escalation_from_row(row: EscalationRow) -> Escalation:
    return Escalation(
        id=row.id,
        organisation_id=row.organisation_id,
        linked_run_id=row.linked_run_id,
        linked_run_type=RunType(row.linked_run_type) if row.linked_run_type else None,
        linked_action_id=row.linked_action_id,
        linked_policy_id=row.linked_policy_id,
        target_id=row.target_id,
        reason=row.reason,
        severity=Severity(row.severity),
        resolved=row.resolved,
        resolved_at=row.resolved_at,
        resolved_by=row.resolved_by,
        resolution_note=row.resolution_note,
        created_at=row.created_at,
    )


def _escalation_values(esc: Escalation) -> dict:
    return {
        "id": esc.id,
        "organisation_id": esc.organisation_id,
        "linked_run_id": esc.linked_run_id,
        "linked_run_type": esc.linked_run_type.value if esc.linked_run_type else None,
        "linked_action_id": esc.linked_action_id,
        "linked_policy_id": esc.linked_policy_id,
        "target_id": esc.target_id,
        "reason": esc.reason,
        "severity": esc.severity.value,
        "resolved": esc.resolved,
        "resolved_at": esc.resolved_at,
        "resolved_by": esc.resolved_by,
        "resolution_note": esc.resolution_note,
        "created_at": esc.created_at,
    }


def _drift_from_row(row: DriftEventRow) -> DriftEvent:
    return DriftEvent(
        id=row.id,
        run_id=row.run_id,
        previous_run_id=row.previous_run_id,
        organisation_id=row.organisation_id,
        target_id=row.target_id,
        run_type=RunType(row.run_type),
        delta_score=row.delta_score,
        dimension=row.dimension,
        drift_flag=row.drift_flag,
        created_at=row.created_at,
    )


def _action_from_row(row: ActionRow) -> Action:
    return Action(
        id=row.id,
        organisation_id=row.organisation_id,
        title=row.title,
        severity=Severity(row.severity),
        status=ActionStatus(row.status),
        due_date=row.due_date,
        created_at=row.created_at,
    )


def _snapshot_from_row(row: HealthSnapshotRow) -> HealthSnapshot:
    return HealthSnapshot.model_validate(row.to_dict())


def _audit_row(record: AuditRecord) -> AuditLogRow:
    return AuditLogRow(
        id=record.id,
        organisation_id=record.organisation_id,
        actor=record.actor,
        action=record.action.value,
        target_type=record.target_type,
        target_id=record.target_id,
        reason=record.reason,
        before=record.before,
        after=record.after,
        metadata_=record.metadata,
        correlation_id=record.correlation_id,
        hash=record.hash,
        timestamp=record.timestamp,
    )


def _queue_recompute(organisation_id: str, now: Optional[datetime] = None):
    stmt = pg_insert(HealthRecomputeRow).values(organisation_id=organisation_id, requested_at=now or utcnow())
    return stmt.on_conflict_do_update(
        index_elements=[HealthRecomputeRow.organisation_id],
        set_={"requested_at": stmt.excluded.requested_at},
    )


def _target_lock_key(run: Run) -> str:
    return f"tg_runs:{run.organisation_id}:{run.target_id}:{run.run_type.value}"


class SQLTrustGraphStore(TrustGraphStore):
    """
    PostgreSQL-backed store.

    Usage:
        engine = create_engine(settings)
        store = SQLTrustGraphStore(engine)
        await store.initialize()
    """

    def __init__(self, engine: AsyncEngine, session_factory: Optional[async_sessionmaker] = None):
        self._engine = engine
        self._factory = session_factory or create_session_factory(engine)

    async def initialize(self) -> None:
        await init_db(self._engine)

    async def close(self) -> None:
        await close_db(self._engine)

    async def ping(self) -> bool:
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

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
        last_error: Optional[IntegrityError] = None
        for _ in range(CREATE_RUN_ATTEMPTS):
            try:
                async with session_scope(self._factory) as session:
                    current = await session.scalar(
                        select(func.coalesce(func.max(RunRow.version), 0)).where(
                            RunRow.organisation_id == organisation_id,
                            RunRow.target_id == target_id,
                            RunRow.run_type == run_type.value,
                        )
                    )
                    now = utcnow()
                    row = RunRow(
                        id=new_id(),
                        organisation_id=organisation_id,
                        target_id=target_id,
                        run_type=run_type.value,
                        version=int(current or 0) + 1,
                        status=(RunStatus.IN_PROGRESS if answers else RunStatus.DRAFT).value,
                        question_set_version=question_set_version,
                        answers=_answers_json(answers or {}),
                        autonomy_level=autonomy_level,
                        criticality_level=criticality_level,
                        risk_flags=[],
                        drift_flag=False,
                        stability_status="provisional",
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(row)
                    await session.flush()
                    return _run_from_row(row)
            except IntegrityError as e:
                # Concurrent create took the same version number
                last_error = e
                logger.debug(f"Run version collision for {target_id}, retrying")
        raise last_error

    async def get_run(self, organisation_id: str, run_id: str) -> Optional[Run]:
        async with session_scope(self._factory) as session:
            row = await session.scalar(
                select(RunRow).where(RunRow.id == run_id, RunRow.organisation_id == organisation_id)
            )
            return _run_from_row(row) if row else None

    async def save_answers(self, organisation_id: str, run_id: str, answers: Dict[str, Answer]) -> Run:
        async with session_scope(self._factory) as session:
            row = await session.scalar(
                select(RunRow)
                .where(RunRow.id == run_id, RunRow.organisation_id == organisation_id)
                .with_for_update()
            )
            if row is None:
                raise NotFoundError(f"Run not found: {run_id}")
            if row.status == RunStatus.COMPLETED.value:
                raise StateConflictError(f"Run {run_id} is already completed")
            merged = dict(row.answers or {})
            merged.update(_answers_json(answers))
            row.answers = merged
            row.status = RunStatus.IN_PROGRESS.value
            await session.flush()
            return _run_from_row(row)

    async def list_completed_runs(self, organisation_id: str, target_id: str, run_type: RunType) -> List[Run]:
        async with session_scope(self._factory) as session:
            rows = await session.scalars(
                select(RunRow)
                .where(
                    RunRow.organisation_id == organisation_id,
                    RunRow.target_id == target_id,
                    RunRow.run_type == run_type.value,
                    RunRow.status == RunStatus.COMPLETED.value,
                )
                .order_by(RunRow.version, RunRow.completed_at, RunRow.id)
            )
            return [_run_from_row(r) for r in rows]

    async def latest_completed_runs_by_target(self, organisation_id: str, run_type: RunType) -> List[Run]:
        async with session_scope(self._factory) as session:
            rows = await session.scalars(
                select(RunRow)
                .where(
                    RunRow.organisation_id == organisation_id,
                    RunRow.run_type == run_type.value,
                    RunRow.status == RunStatus.COMPLETED.value,
                )
                .distinct(RunRow.target_id)
                .order_by(RunRow.target_id, RunRow.version.desc(), RunRow.id.desc())
            )
            return [_run_from_row(r) for r in rows]

    async def recent_completed_runs(self, organisation_id: str, run_type: RunType, limit: int) -> List[Run]:
        async with session_scope(self._factory) as session:
            rows = await session.scalars(
                select(RunRow)
                .where(
                    RunRow.organisation_id == organisation_id,
                    RunRow.run_type == run_type.value,
                    RunRow.status == RunStatus.COMPLETED.value,
                )
                .order_by(RunRow.completed_at.desc(), RunRow.id.desc())
                .limit(limit)
            )
            return [_run_from_row(r) for r in rows]

    async def commit_run_completion(self, completion: RunCompletion) -> CompletionOutcome:
        run = completion.run
        async with session_scope(self._factory) as session:
            # Completions of one target run one at a time until commit
            await session.execute(select(func.pg_advisory_xact_lock(func.hashtext(_target_lock_key(run)))))
            prior_rows = await session.scalars(
                select(RunRow).where(
                    RunRow.organisation_id == run.organisation_id,
                    RunRow.target_id == run.target_id,
                    RunRow.run_type == run.run_type.value,
                    RunRow.status == RunStatus.COMPLETED.value,
                    RunRow.version < run.version,
                )
            )
            history = history_fingerprint([_run_from_row(r) for r in prior_rows], run)
            if history != completion.history_ids:
                raise ConcurrentUpdateError(
                    f"History of target {run.target_id} changed while run {run.id} was completing",
                    {"run_id": run.id, "expected": completion.history_ids, "actual": history},
                )

            result = await session.execute(
                update(RunRow)
                .where(
                    RunRow.id == run.id,
                    RunRow.organisation_id == run.organisation_id,
                    RunRow.status.in_([s.value for s in COMPLETABLE_STATUSES]),
                )
                .values(
                    status=RunStatus.COMPLETED.value,
                    answers=_answers_json(run.answers),
                    dimension_scores=run.dimension_scores,
                    overall_score=run.overall_score,
                    risk_flags=[f.model_dump() for f in run.risk_flags],
                    drift_from_previous=run.drift_from_previous,
                    drift_flag=run.drift_flag,
                    variance_last_3=run.variance_last_3,
                    stability_status=run.stability_status.value,
                    completed_at=run.completed_at,
                    updated_at=utcnow(),
                )
            )
            if result.rowcount == 0:
                exists = await session.scalar(
                    select(RunRow.id).where(RunRow.id == run.id, RunRow.organisation_id == run.organisation_id)
                )
                if exists is None:
                    raise NotFoundError(f"Run not found: {run.id}")
                raise StateConflictError(f"Run {run.id} is already completed", {"run_id": run.id})

            for event in completion.drift_events:
                session.add(DriftEventRow(**event.model_dump(exclude={"run_type"}), run_type=event.run_type.value))
            for esc in completion.escalations:
                session.add(EscalationRow(**_escalation_values(esc)))

            existing_row = await session.scalar(
                select(PolicyRow)
                .where(
                    PolicyRow.organisation_id == run.organisation_id,
                    PolicyRow.target_id == run.target_id,
                    PolicyRow.run_type == run.run_type.value,
                )
                .with_for_update()
            )
            policy, created = policy_after_completion(
                _policy_from_row(existing_row) if existing_row else None,
                run.organisation_id,
                run.target_id,
                run.run_type,
                run.completed_at or utcnow(),
                completion.default_frequency_days,
            )
            values = _policy_values(policy)
            stmt = pg_insert(PolicyRow).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[PolicyRow.organisation_id, PolicyRow.target_id, PolicyRow.run_type],
                set_={
                    "last_completed": stmt.excluded.last_completed,
                    "next_due": stmt.excluded.next_due,
                    "expired_at": None,
                    "escalated_for_due": None,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)
            await session.execute(_queue_recompute(run.organisation_id, run.completed_at))

        return CompletionOutcome(
            run=run,
            policy=policy,
            policy_created=created,
            drift_events=list(completion.drift_events),
            escalations=list(completion.escalations),
        )

    # =========================================================================
    # Reassessment policies
    # =========================================================================

    async def get_policy(self, organisation_id: str, target_id: str, run_type: RunType) -> Optional[ReassessmentPolicy]:
        async with session_scope(self._factory) as session:
            row = await session.scalar(
                select(PolicyRow).where(
                    PolicyRow.organisation_id == organisation_id,
                    PolicyRow.target_id == target_id,
                    PolicyRow.run_type == run_type.value,
                )
            )
            return _policy_from_row(row) if row else None

    async def list_policies(self, organisation_id: str, run_type: Optional[RunType] = None) -> List[ReassessmentPolicy]:
        stmt = select(PolicyRow).where(PolicyRow.organisation_id == organisation_id)
        if run_type is not None:
            stmt = stmt.where(PolicyRow.run_type == run_type.value)
        stmt = stmt.order_by(PolicyRow.next_due.asc().nulls_last(), PolicyRow.target_id)
        async with session_scope(self._factory) as session:
            return [_policy_from_row(r) for r in await session.scalars(stmt)]

    async def save_policy(
        self,
        policy: ReassessmentPolicy,
        audit: Optional[AuditRecord] = None,
    ) -> ReassessmentPolicy:
        values = _policy_values(policy)
        stmt = pg_insert(PolicyRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[PolicyRow.organisation_id, PolicyRow.target_id, PolicyRow.run_type],
            set_={
                k: stmt.excluded[k]
                for k in ("frequency_days", "last_completed", "next_due", "expired_at",
                          "escalated_for_due", "updated_at")
            },
        ).returning(PolicyRow)
        async with session_scope(self._factory) as session:
            row = await session.scalar(stmt)
            if audit is not None:
                session.add(_audit_row(audit))
            return _policy_from_row(row)

    async def list_overdue_policies(self, now: datetime, organisation_id: Optional[str] = None) -> List[ReassessmentPolicy]:
        stmt = select(PolicyRow).where(
            PolicyRow.next_due.is_not(None),
            PolicyRow.next_due < now,
            or_(
                PolicyRow.escalated_for_due.is_(None),
                PolicyRow.escalated_for_due != PolicyRow.next_due,
            ),
        )
        if organisation_id is not None:
            stmt = stmt.where(PolicyRow.organisation_id == organisation_id)
        async with session_scope(self._factory) as session:
            return [_policy_from_row(r) for r in await session.scalars(stmt.order_by(PolicyRow.next_due))]

    async def apply_expiry(
        self,
        policy: ReassessmentPolicy,
        expired: ReassessmentPolicy,
        escalation: Escalation,
        audit: Optional[AuditRecord] = None,
    ) -> bool:
        async with session_scope(self._factory) as session:
            result = await session.execute(
                update(PolicyRow)
                .where(
                    PolicyRow.id == policy.id,
                    PolicyRow.next_due == policy.next_due,
                    or_(
                        PolicyRow.escalated_for_due.is_(None),
                        PolicyRow.escalated_for_due != PolicyRow.next_due,
                    ),
                )
                .values(
                    expired_at=expired.expired_at,
                    escalated_for_due=expired.escalated_for_due,
                    updated_at=expired.updated_at,
                )
            )
            if result.rowcount == 0:
                return False
            session.add(EscalationRow(**_escalation_values(escalation)))
            if audit is not None:
                session.add(_audit_row(audit))
            await session.execute(_queue_recompute(policy.organisation_id, escalation.created_at))
            return True

    # =========================================================================
    # Actions
    # =========================================================================

    async def save_action(self, action: Action) -> Action:
        values = {
            "id": action.id,
            "organisation_id": action.organisation_id,
            "title": action.title,
            "severity": action.severity.value,
            "status": action.status.value,
            "due_date": action.due_date,
            "created_at": action.created_at,
        }
        stmt = pg_insert(ActionRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ActionRow.id],
            set_={k: stmt.excluded[k] for k in ("title", "severity", "status", "due_date")},
        )
        async with session_scope(self._factory) as session:
            await session.execute(stmt)
            await session.execute(_queue_recompute(action.organisation_id))
        return action

    async def list_overdue_actions(
        self,
        now: datetime,
        min_severity: Severity,
        organisation_id: Optional[str] = None,
    ) -> List[Action]:
        severities = [s.value for s in Severity if s.rank >= min_severity.rank]
        stmt = select(ActionRow).where(
            ActionRow.status.in_(ACTIVE_ACTION_VALUES),
            ActionRow.due_date.is_not(None),
            ActionRow.due_date < now,
            ActionRow.severity.in_(severities),
        )
        if organisation_id is not None:
            stmt = stmt.where(ActionRow.organisation_id == organisation_id)
        async with session_scope(self._factory) as session:
            return [_action_from_row(r) for r in await session.scalars(stmt.order_by(ActionRow.due_date))]

    async def action_counts(self, organisation_id: str, now: datetime) -> ActionCounts:
        overdue = and_(ActionRow.due_date.is_not(None), ActionRow.due_date < now)
        stmt = select(
            func.count(),
            func.count().filter(overdue),
            func.count().filter(and_(overdue, ActionRow.severity == Severity.CRITICAL.value)),
        ).where(
            ActionRow.organisation_id == organisation_id,
            ActionRow.status.in_(ACTIVE_ACTION_VALUES),
        )
        async with session_scope(self._factory) as session:
            open_count, overdue_count, critical_count = (await session.execute(stmt)).one()
        return ActionCounts(
            open_actions=open_count or 0,
            overdue_actions=overdue_count or 0,
            critical_overdue_actions=critical_count or 0,
        )

    # =========================================================================
    # Escalations
    # =========================================================================

    async def insert_action_escalation(
        self,
        escalation: Escalation,
        audit: Optional[AuditRecord] = None,
    ) -> bool:
        stmt = pg_insert(EscalationRow).values(**_escalation_values(escalation))
        stmt = stmt.on_conflict_do_nothing(
            index_elements=[EscalationRow.linked_action_id],
            index_where=text("resolved = false AND linked_action_id IS NOT NULL"),
        )
        async with session_scope(self._factory) as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                return False
            if audit is not None:
                session.add(_audit_row(audit))
            await session.execute(_queue_recompute(escalation.organisation_id, escalation.created_at))
            return True

    async def list_escalations(self, organisation_id: str, include_resolved: bool = False) -> List[Escalation]:
        stmt = select(EscalationRow).where(EscalationRow.organisation_id == organisation_id)
        if not include_resolved:
            stmt = stmt.where(EscalationRow.resolved.is_(False))
        stmt = stmt.order_by(EscalationRow.created_at.desc(), EscalationRow.id.desc())
        async with session_scope(self._factory) as session:
            return [_escalation_from_row(r) for r in await session.scalars(stmt)]

    async def get_escalation(self, organisation_id: str, escalation_id: str) -> Optional[Escalation]:
        async with session_scope(self._factory) as session:
            row = await session.scalar(
                select(EscalationRow).where(
                    EscalationRow.id == escalation_id,
                    EscalationRow.organisation_id == organisation_id,
                )
            )
            return _escalation_from_row(row) if row else None

    async def resolve_escalation(
        self,
        organisation_id: str,
        escalation_id: str,
        resolved_by: str,
        resolution_note: Optional[str],
        now: datetime,
        audit: Optional[AuditRecord] = None,
    ) -> Escalation:
        async with session_scope(self._factory) as session:
            row = await session.scalar(
                update(EscalationRow)
                .where(
                    EscalationRow.id == escalation_id,
                    EscalationRow.organisation_id == organisation_id,
                    EscalationRow.resolved.is_(False),
                )
                .values(resolved=True, resolved_at=now, resolved_by=resolved_by, resolution_note=resolution_note)
                .returning(EscalationRow)
            )
            if row is not None:
                if audit is not None:
                    session.add(_audit_row(audit))
                await session.execute(_queue_recompute(organisation_id, now))
                return _escalation_from_row(row)
            exists = await session.scalar(
                select(EscalationRow.id).where(
                    EscalationRow.id == escalation_id,
                    EscalationRow.organisation_id == organisation_id,
                )
            )
            if exists is None:
                raise NotFoundError(f"Escalation not found: {escalation_id}")
            raise StateConflictError(
                f"Escalation {escalation_id} is already resolved",
                {"escalation_id": escalation_id},
            )

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
        stmt = select(DriftEventRow).where(DriftEventRow.organisation_id == organisation_id)
        if run_type is not None:
            stmt = stmt.where(DriftEventRow.run_type == run_type.value)
        if since is not None:
            stmt = stmt.where(DriftEventRow.created_at >= since)
        if flagged_only:
            stmt = stmt.where(DriftEventRow.drift_flag.is_(True))
        if overall_only:
            stmt = stmt.where(DriftEventRow.dimension.is_(None))
        stmt = stmt.order_by(DriftEventRow.created_at.desc(), DriftEventRow.id.desc())
        async with session_scope(self._factory) as session:
            return [_drift_from_row(r) for r in await session.scalars(stmt)]

    # =========================================================================
    # Health snapshots
    # =========================================================================

    async def get_health_snapshot(self, organisation_id: str) -> Optional[HealthSnapshot]:
        async with session_scope(self._factory) as session:
            row = await session.get(HealthSnapshotRow, organisation_id)
            return _snapshot_from_row(row) if row else None

    async def put_health_snapshot(self, snapshot: HealthSnapshot) -> HealthSnapshot:
        values = snapshot.model_dump()
        values["status"] = snapshot.status.value
        stmt = pg_insert(HealthSnapshotRow).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[HealthSnapshotRow.organisation_id],
            set_={k: stmt.excluded[k] for k in values if k != "organisation_id"},
        )
        async with session_scope(self._factory) as session:
            await session.execute(stmt)
        return snapshot

    async def queue_health_recompute(self, organisation_id: str, now: datetime) -> None:
        async with session_scope(self._factory) as session:
            await session.execute(_queue_recompute(organisation_id, now))

    async def claim_health_recomputes(self, limit: Optional[int] = None) -> List[str]:
        oldest = (
            select(HealthRecomputeRow.organisation_id)
            .order_by(HealthRecomputeRow.requested_at, HealthRecomputeRow.organisation_id)
            .with_for_update(skip_locked=True)
        )
        if limit is not None:
            oldest = oldest.limit(limit)
        stmt = (
            delete(HealthRecomputeRow)
            .where(HealthRecomputeRow.organisation_id.in_(oldest))
            .returning(HealthRecomputeRow.organisation_id, HealthRecomputeRow.requested_at)
        )
        async with session_scope(self._factory) as session:
            rows = (await session.execute(stmt)).all()
        return [org for org, _ in sorted(rows, key=lambda r: (r[1], r[0]))]

    # =========================================================================
    # Organisations
    # =========================================================================

    async def list_organisation_ids(self) -> List[str]:
        stmt = union(
            select(RunRow.organisation_id),
            select(PolicyRow.organisation_id),
            select(ActionRow.organisation_id),
            select(EscalationRow.organisation_id),
        )
        async with session_scope(self._factory) as session:
            return sorted(r[0] for r in (await session.execute(stmt)).all())
