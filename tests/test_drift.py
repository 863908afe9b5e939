"""
Tests for drift detection and stability.

Author: TrustGraph Team
Version: 1.0.0
"""

from datetime import timedelta

from trustgraph.drift import (
    DriftThresholds,
    check_stability,
    completed_history,
    detect_dimension_drift,
    detect_drift,
    population_variance,
    select_previous_run,
)
from trustgraph.models import Run, RunStatus, RunType, StabilityStatus

from tests.fixtures import FIXED_NOW


def _run(version, score=None, target="sys-1", status=RunStatus.COMPLETED, offset_days=0):
    return Run(
        id=f"run-{target}-{version}",
        organisation_id="org-1",
        target_id=target,
        run_type=RunType.SYS,
        version=version,
        status=status,
        overall_score=score,
        created_at=FIXED_NOW + timedelta(days=offset_days),
        completed_at=FIXED_NOW + timedelta(days=offset_days) if status == RunStatus.COMPLETED else None,
    )


class TestDetectDrift:
    """Delta, flag and severity between consecutive scores."""

    def test_first_run_has_no_drift(self):
        result = detect_drift(70, None)
        assert result.delta is None
        assert result.drift_flag is False
        assert result.record is False

    def test_materiality_boundary_sets_flag(self):
        result = detect_drift(60, 50)
        assert result.delta == 10
        assert result.direction == "improved"
        assert result.drift_flag is True
        assert result.severity == "none"
        assert result.record is True

    def test_small_change_is_recorded_not_flagged(self):
        result = detect_drift(48, 50)
        assert result.delta == -2
        assert result.direction == "declined"
        assert result.drift_flag is False
        assert result.record is True

    def test_no_change_is_not_recorded(self):
        result = detect_drift(50, 50)
        assert result.delta == 0
        assert result.record is False
        assert result.direction == "none"

    def test_severity_bands(self):
        assert detect_drift(39, 50).severity == "moderate"
        assert detect_drift(34, 50).severity == "significant"
        assert detect_drift(35, 50).severity == "moderate"

    def test_thresholds_are_configurable(self):
        t = DriftThresholds(audit_threshold=5, materiality_threshold=20)
        result = detect_drift(47, 50, t)
        assert result.record is False
        assert detect_drift(70, 50, t).drift_flag is True

    def test_dimension_drift(self):
        results = detect_dimension_drift(
            {"Transparency": 80, "Risk": 40},
            {"Transparency": 60, "Risk": 40},
        )
        assert results["Transparency"].delta == 20
        assert results["Transparency"].drift_flag is True
        assert results["Risk"].record is False

    def test_dimension_drift_without_previous(self):
        assert detect_dimension_drift({"Risk": 40}, None) == {}


class TestStability:
    """Variance over the most recent completed scores."""

    def test_population_variance(self):
        assert population_variance([70, 75, 80]) == 50 / 3
        assert population_variance([]) == 0.0

    def test_too_few_runs_is_provisional(self):
        result = check_stability([80, 80])
        assert result.status == StabilityStatus.PROVISIONAL
        assert result.variance is None

    def test_consistent_scores_are_stable(self):
        result = check_stability([70, 75, 80])
        assert result.variance == 16.67
        assert result.status == StabilityStatus.STABLE

    def test_volatile_scores_stay_provisional(self):
        result = check_stability([60, 75, 90])
        assert result.variance == 150.0
        assert result.status == StabilityStatus.PROVISIONAL

    def test_only_last_three_count(self):
        result = check_stability([10, 90, 80, 80, 80])
        assert result.sample == [80.0, 80.0, 80.0]
        assert result.status == StabilityStatus.STABLE


class TestPreviousRun:
    """Selection of the preceding completed run."""

    def test_highest_lower_version(self):
        runs = [_run(1, 50), _run(2, 60, offset_days=1), _run(4, 70, offset_days=3)]
        current = _run(3, status=RunStatus.IN_PROGRESS, offset_days=2)
        assert select_previous_run(runs, current).version == 2

    def test_other_targets_ignored(self):
        runs = [_run(1, 50, target="sys-2")]
        current = _run(2, status=RunStatus.IN_PROGRESS)
        assert select_previous_run(runs, current) is None

    def test_drafts_ignored(self):
        runs = [_run(1, None, status=RunStatus.DRAFT)]
        assert select_previous_run(runs, _run(2, status=RunStatus.IN_PROGRESS)) is None

    def test_history_oldest_first(self):
        runs = [_run(2, 60, offset_days=1), _run(1, 50)]
        history = completed_history(runs, _run(3, status=RunStatus.IN_PROGRESS))
        assert [r.version for r in history] == [1, 2]
