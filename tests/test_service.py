"""
Tests for TrustGraphService orchestration.

Author: TrustGraph Team
Version: 1.0.0
"""

import asyncio
from datetime import timedelta

import pytest

from trustgraph.audit import AuditAction
from trustgraph.config import Settings
from trustgraph.errors import (
    ConcurrentUpdateError,
    DependencyError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from trustgraph.models import RunStatus, RunType, Severity, StabilityStatus
from trustgraph.scoring.models import Answer, MaturityLevel
from trustgraph.service import TrustGraphService, drift_severity, low_score_severity
from trustgraph.store.memory import InMemoryTrustGraphStore

from tests.fixtures import FIXED_NOW, STRONG, org_answers, sys_answers


async def _complete(service, answers, target="sys-1", run_type="sys", org="org-1"):
    run = await service.create_run(org, target, run_type)
    return await service.complete_run(org, run.id, answers)


class SlowStore(InMemoryTrustGraphStore):
    async def get_run(self, organisation_id, run_id):
        await asyncio.sleep(1)
        return await super().get_run(organisation_id, run_id)


class InterleavingStore(InMemoryTrustGraphStore):
    """Runs ``on_history_read`` once, after the first history read of a completion."""

    def __init__(self):
        super().__init__()
        self.on_history_read = None
        self.history_reads = 0

    async def list_completed_runs(self, organisation_id, target_id, run_type):
        self.history_reads += 1
        history = await super().list_completed_runs(organisation_id, target_id, run_type)
        hook, self.on_history_read = self.on_history_read, None
        if hook is not None:
            await hook()
        return history


class StaleHistoryStore(InMemoryTrustGraphStore):
    """Always reports an empty target history."""

    async def list_completed_runs(self, organisation_id, target_id, run_type):
        return []


class FailingAuditStore(InMemoryTrustGraphStore):
    def _write_audit(self, audit):
        if audit is not None:
            raise OSError("audit table unavailable")


class TestEscalationThresholds:

    def test_low_score_bands(self):
        assert low_score_severity(50, 50) is None
        assert low_score_severity(45, 50) == Severity.MEDIUM
        assert low_score_severity(35, 50) == Severity.HIGH
        assert low_score_severity(10, 50) == Severity.CRITICAL

    def test_drift_bands(self):
        assert drift_severity(-15, 15) is None
        assert drift_severity(-18, 15) == Severity.MEDIUM
        assert drift_severity(22, 15) == Severity.HIGH
        assert drift_severity(-40, 15) == Severity.CRITICAL


class TestRuns:
    """Run creation and completion."""

    async def test_versions_increment_per_target(self, service):
        first = await service.create_run("org-1", "sys-1", "sys")
        second = await service.create_run("org-1", "sys-1", "sys")
        other = await service.create_run("org-1", "sys-2", "sys")
        assert (first.version, second.version, other.version) == (1, 2, 1)
        assert first.status == RunStatus.DRAFT

    async def test_invalid_run_type(self, service):
        with pytest.raises(ValidationError):
            await service.create_run("org-1", "sys-1", "weekly")

    async def test_first_completion(self, service, store):
        result = await _complete(service, sys_answers())
        assert result.run.status == RunStatus.COMPLETED
        assert result.run.overall_score == 100
        assert result.run.drift_from_previous is None
        assert result.run.drift_flag is False
        assert result.previous_run_id is None
        assert result.drift_events == []
        assert result.escalations == []
        assert result.policy_created is True
        assert result.policy.next_due == FIXED_NOW + timedelta(days=90)
        assert store.drift_events == []

    async def test_saved_answers_are_merged(self, service):
        run = await service.create_run("org-1", "sys-1", "sys")
        await service.save_answers("org-1", run.id, {"TXS_HO_03": Answer(boolean=True, evidence=STRONG)})
        result = await service.complete_run("org-1", run.id, {
            "TXS_RISK_01": Answer(maturity=MaturityLevel.DEFINED, evidence=STRONG),
        })
        assert set(result.run.answers) == {"TXS_HO_03", "TXS_RISK_01"}
        assert "NO_KILL_SWITCH" not in result.scoring.risk_flag_codes

    async def test_drift_between_versions(self, service, store):
        await _complete(service, sys_answers())
        result = await _complete(service, sys_answers(MaturityLevel.DEFINED))
        assert result.run.version == 2
        assert result.run.overall_score == 55
        assert result.run.drift_from_previous == -45
        assert result.run.drift_flag is True
        assert result.drift_severity == "significant"
        overall = [e for e in result.drift_events if e.dimension is None]
        assert len(overall) == 1
        assert overall[0].delta_score == -45
        assert len(result.drift_events) == 6
        assert [e.severity for e in result.escalations] == [Severity.CRITICAL]

    async def test_unchanged_score_records_no_drift(self, service, store):
        await _complete(service, sys_answers())
        result = await _complete(service, sys_answers())
        assert result.run.drift_from_previous == 0
        assert result.drift_events == []
        assert store.drift_events == []

    async def test_low_score_escalation(self, service):
        result = await _complete(service, {})
        assert result.run.overall_score == 0
        assert [e.severity for e in result.escalations] == [Severity.CRITICAL]
        assert result.escalations[0].linked_run_id == result.run.id

    async def test_stability_after_three_runs(self, service):
        for _ in range(3):
            result = await _complete(service, sys_answers())
        assert result.run.variance_last_3 == 0
        assert result.run.stability_status == StabilityStatus.STABLE

    async def test_org_runs_target_the_organisation(self, service):
        result = await _complete(service, org_answers(), target="org-1", run_type="org")
        assert result.run.run_type == RunType.ORG
        assert result.run.risk_flags == []

    async def test_completing_twice_conflicts(self, service):
        result = await _complete(service, sys_answers())
        with pytest.raises(StateConflictError):
            await service.complete_run("org-1", result.run.id, sys_answers())

    async def test_unknown_run(self, service):
        with pytest.raises(NotFoundError):
            await service.complete_run("org-1", "missing", {})

    async def test_other_organisation_cannot_see_run(self, service):
        run = await service.create_run("org-1", "sys-1", "sys")
        with pytest.raises(NotFoundError):
            await service.complete_run("org-2", run.id, {})

    async def test_concurrent_completion_has_one_winner(self, service, store):
        await _complete(service, sys_answers())
        run = await service.create_run("org-1", "sys-1", "sys")
        answers = sys_answers(MaturityLevel.NONE, boolean=False)

        results = await asyncio.gather(
            service.complete_run("org-1", run.id, answers),
            service.complete_run("org-1", run.id, answers),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, StateConflictError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert len([e for e in store.drift_events if e.run_id == run.id]) == 6
        escalations = [e for e in store.escalations.values() if e.linked_run_id == run.id]
        assert len(escalations) == 2

    async def test_slow_store_is_a_dependency_error(self, clock):
        cfg = Settings(store_backend="memory", health_cache_enabled=False, store_timeout_seconds=0.05)
        service = TrustGraphService(SlowStore(), settings=cfg, clock=clock)
        with pytest.raises(DependencyError) as exc:
            await service.get_run("org-1", "any")
        assert exc.value.retryable is True
        assert exc.value.to_dict()["error"] == "dependency_unavailable"


class TestPolicies:
    """Policy overrides with audit."""

    async def test_override_recomputes_next_due(self, service, store):
        await _complete(service, sys_answers())
        view = await service.upsert_policy("org-1", "sys-1", "sys", 30, actor="ops@example.com",
                                           reason="Quarterly cadence too slow")
        assert view.policy.frequency_days == 30
        assert view.policy.next_due == FIXED_NOW + timedelta(days=30)
        assert len(store.policies) == 1
        assert store.audit_log[-1].action == AuditAction.POLICY_UPDATED
        assert store.audit_log[-1].before["frequency_days"] == 90

    async def test_policy_without_completion_is_scheduled(self, service, store):
        view = await service.upsert_policy("org-1", "sys-9", "sys", 60, actor="ops", reason="New system")
        assert view.policy.next_due is None
        assert view.state.value == "scheduled"
        assert store.audit_log[-1].action == AuditAction.POLICY_CREATED

    @pytest.mark.parametrize("kwargs", [
        {"frequency_days": 0},
        {"reason": ""},
        {"actor": " "},
        {"run_type": "monthly"},
    ])
    async def test_rejected_override_writes_nothing(self, service, store, kwargs):
        args = dict(
            organisation_id="org-1", target_id="sys-1", run_type="sys",
            frequency_days=30, actor="ops", reason="tighten",
        )
        args.update(kwargs)
        with pytest.raises(ValidationError):
            await service.upsert_policy(**args)
        assert store.policies == {}
        assert store.audit_log == []

    async def test_list_policies(self, service):
        await _complete(service, sys_answers())
        await _complete(service, org_answers(), target="org-1", run_type="org")
        assert len(await service.list_policies("org-1")) == 2
        views = await service.list_policies("org-1", "org")
        assert [v.policy.run_type for v in views] == [RunType.ORG]


class TestEscalations:
    """Resolution with audit."""

    async def test_resolve(self, service, store):
        result = await _complete(service, {})
        esc_id = result.escalations[0].id
        resolved = await service.resolve_escalation("org-1", esc_id, actor="lead", reason="Remediation planned")
        assert resolved.resolved is True
        assert resolved.resolved_by == "lead"
        assert resolved.resolved_at == FIXED_NOW
        record = store.audit_log[-1]
        assert record.action == AuditAction.ESCALATION_RESOLVED
        assert record.before["resolved"] is False
        assert record.after["resolved"] is True
        assert record.verify()
        assert await service.list_escalations("org-1") == []
        assert len(await service.list_escalations("org-1", include_resolved=True)) == 1

    async def test_resolve_twice_conflicts(self, service):
        result = await _complete(service, {})
        esc_id = result.escalations[0].id
        await service.resolve_escalation("org-1", esc_id, actor="lead", reason="done")
        with pytest.raises(StateConflictError):
            await service.resolve_escalation("org-1", esc_id, actor="lead", reason="again")

    async def test_resolve_requires_reason(self, service, store):
        result = await _complete(service, {})
        with pytest.raises(ValidationError):
            await service.resolve_escalation("org-1", result.escalations[0].id, actor="lead", reason="")
        assert store.audit_log == []

    async def test_resolve_unknown(self, service):
        with pytest.raises(NotFoundError):
            await service.resolve_escalation("org-1", "nope", actor="lead", reason="x")


class TestDriftHistory:

    async def test_list_drift_window(self, service, clock):
        await _complete(service, sys_answers())
        await _complete(service, sys_answers(MaturityLevel.DEFINED))
        assert len(await service.list_drift_events("org-1", "sys", days=30)) == 6
        clock.advance(days=31)
        assert await service.list_drift_events("org-1", days=30) == []
        assert len(await service.list_drift_events("org-1")) == 6

    async def test_invalid_window(self, service):
        with pytest.raises(ValidationError):
            await service.list_drift_events("org-1", days=0)


class TestConcurrentVersions:
    """Completions of different versions of one target."""

    async def test_later_version_measured_against_version_committed_meanwhile(self, test_settings, clock):
        store = InterleavingStore()
        service = TrustGraphService(store, settings=test_settings, clock=clock)
        v1 = await _complete(service, sys_answers())
        v2 = await service.create_run("org-1", "sys-1", "sys")
        v3 = await service.create_run("org-1", "sys-1", "sys")
        completed = {}

        async def complete_v2():
            completed["v2"] = await service.complete_run("org-1", v2.id, sys_answers(MaturityLevel.DEFINED))

        store.on_history_read = complete_v2
        result = await service.complete_run("org-1", v3.id, sys_answers(MaturityLevel.DEFINED))

        assert completed["v2"].previous_run_id == v1.run.id
        assert completed["v2"].run.drift_from_previous == -45
        assert result.previous_run_id == v2.id
        assert result.run.drift_from_previous == 0
        assert result.drift_events == []
        assert result.escalations == []
        overall = [e for e in store.drift_events if e.dimension is None]
        assert [(e.run_id, e.delta_score) for e in overall] == [(v2.id, -45)]

    async def test_history_that_keeps_changing_gives_up(self, test_settings, clock):
        store = StaleHistoryStore()
        service = TrustGraphService(store, settings=test_settings, clock=clock)
        await _complete(service, sys_answers())
        run = await service.create_run("org-1", "sys-1", "sys")
        with pytest.raises(ConcurrentUpdateError) as exc:
            await service.complete_run("org-1", run.id, sys_answers())
        assert exc.value.retryable is True
        assert exc.value.http_status == 409
        assert store.runs[run.id].status != RunStatus.COMPLETED
        assert len(store.drift_events) == 0

    async def test_retries_are_bounded_by_settings(self, clock):
        cfg = Settings(store_backend="memory", health_cache_enabled=False, completion_attempts=1)
        store = InterleavingStore()
        service = TrustGraphService(store, settings=cfg, clock=clock)
        await _complete(service, sys_answers())
        v2 = await service.create_run("org-1", "sys-1", "sys")
        v3 = await service.create_run("org-1", "sys-1", "sys")

        async def complete_v2():
            await service.complete_run("org-1", v2.id, sys_answers())

        store.on_history_read = complete_v2
        reads_before = store.history_reads
        with pytest.raises(ConcurrentUpdateError):
            await service.complete_run("org-1", v3.id, sys_answers())
        # one read for v3, one for the interleaved v2
        assert store.history_reads - reads_before == 2


class TestAuditAtomicity:
    """An audit write that fails leaves the audited change unwritten."""

    @pytest.fixture
    def failing_service(self, test_settings, clock):
        return TrustGraphService(FailingAuditStore(), settings=test_settings, clock=clock)

    async def test_policy_override(self, failing_service):
        with pytest.raises(DependencyError):
            await failing_service.upsert_policy("org-1", "sys-1", "sys", 30, actor="ops", reason="tighten")
        assert failing_service.store.policies == {}
        assert failing_service.store.audit_log == []

    async def test_escalation_resolution(self, failing_service):
        result = await _complete(failing_service, {})
        esc_id = result.escalations[0].id
        with pytest.raises(DependencyError):
            await failing_service.resolve_escalation("org-1", esc_id, actor="lead", reason="accepted")
        escalation = await failing_service.store.get_escalation("org-1", esc_id)
        assert escalation.resolved is False
        assert escalation.resolved_by is None

    async def test_expiry_sweep(self, failing_service, clock):
        await _complete(failing_service, sys_answers())
        clock.advance(days=91)
        with pytest.raises(DependencyError):
            await failing_service.sweep_expiry()
        policy = await failing_service.store.get_policy("org-1", "sys-1", RunType.SYS)
        assert policy.expired_at is None
        assert policy.escalated_for_due is None
        assert await failing_service.store.list_escalations("org-1") == []

    async def test_resolution_audit_matches_stored_escalation(self, service, store):
        result = await _complete(service, {})
        resolved = await service.resolve_escalation(
            "org-1", result.escalations[0].id, actor="lead", reason="accepted",
        )
        assert store.audit_log[-1].after == resolved.model_dump(mode="json")


class TestRiskLevels:

    async def test_system_run_keeps_levels(self, service):
        run = await service.create_run("org-1", "sys-1", "sys", autonomy_level=5, criticality_level=4)
        assert (run.autonomy_level, run.criticality_level) == (5, 4)
        result = await service.complete_run("org-1", run.id, sys_answers())
        assert (result.run.autonomy_level, result.run.criticality_level) == (5, 4)

    async def test_org_run_ignores_levels(self, service):
        run = await service.create_run("org-1", "org-1", "org", autonomy_level=5, criticality_level=5)
        assert run.autonomy_level is None
        assert run.criticality_level is None

    @pytest.mark.parametrize("level", [0, 6])
    async def test_out_of_range(self, service, store, level):
        with pytest.raises(ValidationError):
            await service.create_run("org-1", "sys-1", "sys", autonomy_level=level)
        assert store.runs == {}
