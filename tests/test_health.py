"""
Tests for organisation health aggregation.

Author: TrustGraph Team
Version: 1.0.0
"""

import math
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from trustgraph.health.aggregator import (
    HealthInputs,
    HealthWeights,
    action_penalty,
    blend_base,
    clamp,
    compute_health,
    drift_penalty,
    exposure_penalty,
    relationship_penalty,
    system_weights,
    weighted_sys_score,
)
from trustgraph.health.recompute_worker import HealthRecomputeWorker
from trustgraph.health.snapshot_cache import HealthSnapshotCache
from trustgraph.models import (
    Action,
    ActionCounts,
    DriftEvent,
    Escalation,
    HealthStatus,
    Run,
    RunStatus,
    RunType,
    Severity,
    SnapshotFreshness,
    StabilityStatus,
)
from trustgraph.scoring.models import RiskFlag
from trustgraph.service import TrustGraphService
from trustgraph.store.memory import InMemoryTrustGraphStore

from tests.fixtures import FIXED_NOW, sys_answers


def _run(score, run_type=RunType.SYS, flags=0, stability=StabilityStatus.STABLE, target="t-1",
         autonomy=None, criticality=None):
    return Run(
        organisation_id="org-1",
        target_id=target,
        run_type=run_type,
        version=1,
        status=RunStatus.COMPLETED,
        overall_score=score,
        risk_flags=[RiskFlag(code=f"F{i}", label="f", description="f") for i in range(flags)],
        stability_status=stability,
        autonomy_level=autonomy,
        criticality_level=criticality,
        completed_at=FIXED_NOW,
    )


def _escalation(severity):
    return Escalation(organisation_id="org-1", reason="r", severity=severity)


class TestHealthTerms:
    """Individual penalty terms."""

    def test_clamp(self):
        assert clamp(-5) == 0
        assert clamp(120) == 100
        assert clamp(42.5) == 42.5

    def test_blend(self):
        assert blend_base(80, 60, 0.5) == 70
        assert blend_base(80, None, 0.5) == 80
        assert blend_base(None, 60, 0.5) == 60
        assert blend_base(None, None, 0.5) is None

    def test_no_load_no_penalty(self):
        w = HealthWeights()
        assert relationship_penalty([], w) == 0
        assert action_penalty(ActionCounts(), w) == 0
        assert drift_penalty([], w) == 0
        assert exposure_penalty([], w) == 0

    def test_action_penalty_saturates(self):
        w = HealthWeights()
        counts = ActionCounts(open_actions=2, overdue_actions=1, critical_overdue_actions=1)
        assert action_penalty(counts, w) == pytest.approx(30 * (1 - math.exp(-0.6)))
        flood = ActionCounts(open_actions=500, overdue_actions=500, critical_overdue_actions=500)
        assert action_penalty(flood, w) <= w.act_max

    def test_relationship_penalty_weights_severity(self):
        w = HealthWeights()
        low = relationship_penalty([_escalation(Severity.LOW)], w)
        critical = relationship_penalty([_escalation(Severity.CRITICAL)], w)
        assert 0 < low < critical < w.rel_max

    def test_resolved_escalations_ignored(self):
        esc = _escalation(Severity.CRITICAL).model_copy(update={"resolved": True})
        assert relationship_penalty([esc], HealthWeights()) == 0

    def test_drift_penalty_uses_magnitude(self):
        w = HealthWeights()
        events = [
            DriftEvent(run_id="r", organisation_id="org-1", target_id="t", run_type=RunType.SYS,
                       delta_score=delta, drift_flag=True)
            for delta in (-15, 10)
        ]
        assert drift_penalty(events, w) == pytest.approx(20 * (1 - math.exp(-1)))

    def test_exposure_penalty_is_flag_density(self):
        w = HealthWeights()
        assert exposure_penalty([_run(60, flags=2)], w) == pytest.approx(12.5)
        assert exposure_penalty([_run(60, flags=4), _run(60, flags=0, target="t-2")], w) == pytest.approx(12.5)


class TestComputeHealth:
    """Composite snapshot."""

    def test_no_data_is_unavailable_not_zero(self):
        snapshot = compute_health("org-1", HealthInputs(), now=FIXED_NOW)
        assert snapshot.status == HealthStatus.UNAVAILABLE
        assert snapshot.health_score is None
        assert snapshot.base_health is None

    def test_blended_base_minus_exposure(self):
        inputs = HealthInputs(org_runs=[_run(80, RunType.ORG)], sys_runs=[_run(60, flags=2)])
        snapshot = compute_health("org-1", inputs, now=FIXED_NOW)
        assert snapshot.status == HealthStatus.OK
        assert snapshot.org_base == 80
        assert snapshot.sys_base == 60
        assert snapshot.base_health == 70
        assert snapshot.p_exp == 12.5
        assert snapshot.health_score == 57.5

    def test_sys_only_base(self):
        snapshot = compute_health("org-1", HealthInputs(sys_runs=[_run(90)]), now=FIXED_NOW)
        assert snapshot.org_base is None
        assert snapshot.health_score == 90.0

    def test_provisional_runs_discounted(self):
        w = HealthWeights(provisional_confidence=0.5)
        inputs = HealthInputs(sys_runs=[_run(80, stability=StabilityStatus.PROVISIONAL)])
        assert compute_health("org-1", inputs, w, FIXED_NOW).health_score == 40.0

    def test_score_is_clamped_at_zero(self):
        inputs = HealthInputs(
            sys_runs=[_run(10, flags=4)],
            open_escalations=[_escalation(Severity.CRITICAL) for _ in range(10)],
            actions=ActionCounts(open_actions=20, overdue_actions=20, critical_overdue_actions=20),
        )
        snapshot = compute_health("org-1", inputs, now=FIXED_NOW)
        assert snapshot.health_score == 0.0
        assert snapshot.status == HealthStatus.OK

    def test_penalty_context_reported_without_base(self):
        inputs = HealthInputs(open_escalations=[_escalation(Severity.HIGH)])
        snapshot = compute_health("org-1", inputs, now=FIXED_NOW)
        assert snapshot.health_score is None
        assert snapshot.p_rel > 0
        assert snapshot.open_escalations == 1


class TestHealthService:
    """Recompute, publish and read back."""

    async def test_not_computed_before_first_recompute(self, service):
        reading = await service.get_health("org-1")
        assert reading.freshness == SnapshotFreshness.NOT_COMPUTED
        assert reading.snapshot is None

    async def test_recompute_after_completion(self, service):
        run = await service.create_run("org-1", "sys-1", "sys")
        await service.complete_run("org-1", run.id, sys_answers())
        snapshot = await service.recompute_health("org-1")
        assert snapshot.health_score == 70.0
        reading = await service.get_health("org-1")
        assert reading.freshness == SnapshotFreshness.FRESH
        assert reading.snapshot.health_score == 70.0

    async def test_overdue_critical_action_lowers_health(self, service, store):
        run = await service.create_run("org-1", "sys-1", "sys")
        await service.complete_run("org-1", run.id, sys_answers())
        await store.save_action(Action(
            organisation_id="org-1",
            title="Fix logging",
            severity=Severity.CRITICAL,
            due_date=FIXED_NOW - timedelta(days=2),
        ))
        snapshot = await service.recompute_health("org-1")
        assert snapshot.p_act > 0
        assert snapshot.health_score < 70.0
        assert snapshot.critical_overdue_actions == 1

    async def test_old_snapshot_is_stale(self, service, clock):
        await service.recompute_health("org-1")
        clock.advance(seconds=3601)
        reading = await service.get_health("org-1")
        assert reading.freshness == SnapshotFreshness.STALE

    async def test_store_written_before_cache(self, store, test_settings, clock):
        cache = AsyncMock(spec=HealthSnapshotCache)
        cache.get.return_value = None
        seen = {}

        async def capture(snapshot, ttl=None):
            seen["in_store"] = snapshot.organisation_id in store.snapshots
            return True

        cache.set.side_effect = capture
        service = TrustGraphService(store, settings=test_settings, cache=cache, clock=clock)
        await service.recompute_health("org-1")
        assert seen["in_store"] is True
        cache.set.assert_awaited_once()

    async def test_recompute_all(self, service):
        for org in ("org-a", "org-b"):
            run = await service.create_run(org, "sys-1", "sys")
            await service.complete_run(org, run.id, sys_answers())
        results = await service.recompute_all_health()
        assert results == {"org-a": 70.0, "org-b": 70.0}


class TestSystemWeighting:
    """sys_base weights each system by autonomy and criticality."""

    def test_equal_levels_give_plain_mean(self):
        runs = [_run(80, autonomy=3, criticality=3), _run(60, autonomy=3, criticality=3, target="t-2")]
        assert weighted_sys_score(runs, HealthWeights()) == pytest.approx(70.0)

    def test_missing_levels_use_default(self):
        runs = [_run(80), _run(60, autonomy=3, criticality=3, target="t-2")]
        assert system_weights(runs, HealthWeights()) == pytest.approx([0.5, 0.5])

    def test_high_risk_system_dominates(self):
        runs = [_run(90, autonomy=5, criticality=5), _run(30, autonomy=1, criticality=1, target="t-2")]
        weights = system_weights(runs, HealthWeights())
        assert sum(weights) == pytest.approx(1.0)
        assert weights[0] == pytest.approx(1 / (1 + math.exp(-3.2)))
        snapshot = compute_health("org-1", HealthInputs(sys_runs=runs), now=FIXED_NOW)
        assert snapshot.sys_base == pytest.approx(87.65, abs=0.01)

    def test_zero_sharpness_ignores_levels(self):
        runs = [_run(90, autonomy=5, criticality=5), _run(30, autonomy=1, criticality=1, target="t-2")]
        assert weighted_sys_score(runs, HealthWeights(sys_softmax_lambda=0.0)) == pytest.approx(60.0)

    def test_unscored_runs_skipped(self):
        assert weighted_sys_score([_run(None)], HealthWeights()) is None

    def test_provisional_default(self):
        assert HealthWeights().provisional_confidence == 0.7
        inputs = HealthInputs(sys_runs=[_run(80, stability=StabilityStatus.PROVISIONAL)])
        assert compute_health("org-1", inputs, now=FIXED_NOW).health_score == 56.0


class FlakyHealthStore(InMemoryTrustGraphStore):
    """Fails the health reads of one organisation."""

    def __init__(self, failing_org):
        super().__init__()
        self.failing_org = failing_org

    async def recent_completed_runs(self, organisation_id, run_type, limit):
        if organisation_id == self.failing_org:
            raise OSError("replica down")
        return await super().recent_completed_runs(organisation_id, run_type, limit)


class TestHealthQueue:
    """Writes queue their organisation; the queue drives recomputes."""

    async def test_completion_queues_organisation(self, service, store):
        run = await service.create_run("org-1", "sys-1", "sys")
        assert store.recompute_queue == {}
        await service.complete_run("org-1", run.id, sys_answers())
        assert list(store.recompute_queue) == ["org-1"]

    async def test_process_queue_publishes_snapshots(self, service, store):
        for org in ("org-a", "org-b"):
            run = await service.create_run(org, "sys-1", "sys")
            await service.complete_run(org, run.id, sys_answers())
        result = await service.process_health_queue()
        assert result.recomputed == {"org-a": 70.0, "org-b": 70.0}
        assert result.failed == []
        assert store.recompute_queue == {}
        assert (await service.get_health("org-b")).freshness == SnapshotFreshness.FRESH
        assert (await service.process_health_queue()).recomputed == {}

    async def test_limit_takes_oldest_first(self, service, store, clock):
        for org in ("org-b", "org-a"):
            run = await service.create_run(org, "sys-1", "sys")
            await service.complete_run(org, run.id, sys_answers())
            clock.advance(minutes=1)
        result = await service.process_health_queue(limit=1)
        assert list(result.recomputed) == ["org-b"]
        assert list(store.recompute_queue) == ["org-a"]

    async def test_sweep_and_resolution_queue_organisation(self, service, store, clock):
        run = await service.create_run("org-1", "sys-1", "sys")
        result = await service.complete_run("org-1", run.id, {})
        await service.process_health_queue()

        await service.resolve_escalation("org-1", result.escalations[0].id, actor="lead", reason="accepted")
        assert list(store.recompute_queue) == ["org-1"]
        await service.process_health_queue()

        clock.advance(days=91)
        await service.sweep_expiry()
        assert list(store.recompute_queue) == ["org-1"]

    async def test_action_change_queues_organisation(self, store):
        await store.save_action(Action(organisation_id="org-1", title="Rotate keys"))
        assert list(store.recompute_queue) == ["org-1"]

    async def test_failed_recompute_is_queued_again(self, test_settings, clock):
        store = FlakyHealthStore("org-bad")
        service = TrustGraphService(store, settings=test_settings, clock=clock)
        for org in ("org-bad", "org-ok"):
            run = await service.create_run(org, "sys-1", "sys")
            await service.complete_run(org, run.id, sys_answers())
        result = await service.process_health_queue()
        assert result.failed == ["org-bad"]
        assert list(result.recomputed) == ["org-ok"]
        assert list(store.recompute_queue) == ["org-bad"]

    async def test_worker_drains_queue(self, service, store):
        run = await service.create_run("org-1", "sys-1", "sys")
        await service.complete_run("org-1", run.id, sys_answers())
        worker = HealthRecomputeWorker(service, interval_seconds=60)
        assert await worker.run_once() == 1
        assert store.recompute_queue == {}

    async def test_worker_start_stop(self, service):
        worker = HealthRecomputeWorker(service, interval_seconds=60)
        worker.start()
        assert worker.running is True
        await worker.stop()
        assert worker.running is False
