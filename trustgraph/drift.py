"""
Drift Detection
===============

Compares a newly completed run against the immediately preceding
completed run of the same target, and classifies score stability.

Thresholds:
    - audit_threshold: any |delta| above it is recorded as a DriftEvent
      (default 0, so every non-zero change is kept for audit)
    - materiality_threshold: drift_flag is set when |delta| >= it (default 10)
    - severity: "moderate" above materiality, "significant" above 1.5x

Stability:
    Population variance of the last ``min_runs`` overall scores, rounded
    to 2 decimals. A target is "stable" only with at least ``min_runs``
    completed runs and variance strictly below ``tolerance``. The write
    path (run completion) and the read path use this same function.

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from trustgraph.config import Settings, settings as default_settings
from trustgraph.models import Run, StabilityStatus


logger = logging.getLogger(__name__)


SIGNIFICANT_MULTIPLIER = 1.5


@dataclass(frozen=True)
class DriftThresholds:
    audit_threshold: float = 0.0
    materiality_threshold: float = 10.0
    stability_min_runs: int = 3
    stability_tolerance: float = 25.0

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "DriftThresholds":
        cfg = cfg or default_settings
        return cls(
            audit_threshold=cfg.drift_audit_threshold,
            materiality_threshold=cfg.drift_materiality_threshold,
            stability_min_runs=cfg.stability_min_runs,
            stability_tolerance=cfg.stability_tolerance,
        )


@dataclass
class DriftResult:
    """Outcome of comparing one score against its predecessor."""
    current: float
    previous: Optional[float]
    delta: Optional[float]
    direction: str  # "improved" | "declined" | "none"
    severity: str  # "none" | "moderate" | "significant"
    drift_flag: bool
    record: bool
    """True when a DriftEvent should be persisted"""


@dataclass
class StabilityResult:
    variance: Optional[float]
    status: StabilityStatus
    sample: List[float] = field(default_factory=list)


def detect_drift(
    current: float,
    previous: Optional[float],
    thresholds: Optional[DriftThresholds] = None,
) -> DriftResult:
    """
    Compare a score with the preceding completed score.

    Args:
        current: New score
        previous: Score of the preceding completed run, or None
        thresholds: Audit and materiality thresholds

    Returns:
        DriftResult. With no previous run, delta is None and nothing
        is recorded.
    """
    t = thresholds or DriftThresholds()
    if previous is None:
        return DriftResult(
            current=current,
            previous=None,
            delta=None,
            direction="none",
            severity="none",
            drift_flag=False,
            record=False,
        )

    delta = round(float(current) - float(previous), 2)
    magnitude = abs(delta)

    if delta > 0:
        direction = "improved"
    elif delta < 0:
        direction = "declined"
    else:
        direction = "none"

    if magnitude > t.materiality_threshold * SIGNIFICANT_MULTIPLIER:
        severity = "significant"
    elif magnitude > t.materiality_threshold:
        severity = "moderate"
    else:
        severity = "none"

    return DriftResult(
        current=current,
        previous=previous,
        delta=delta,
        direction=direction,
        severity=severity,
        drift_flag=magnitude >= t.materiality_threshold,
        record=magnitude > t.audit_threshold,
    )


def detect_dimension_drift(
    current: Mapping[str, float],
    previous: Optional[Mapping[str, float]],
    thresholds: Optional[DriftThresholds] = None,
) -> Dict[str, DriftResult]:
    """Per-dimension drift; dimensions absent from ``previous`` are skipped."""
    if not previous:
        return {}
    results: Dict[str, DriftResult] = {}
    for dim, score in current.items():
        if dim not in previous or previous[dim] is None:
            continue
        results[dim] = detect_drift(score, previous[dim], thresholds)
    return results


def population_variance(values: Sequence[float]) -> float:
    n = len(values)
    if n == 0:
        return 0.0
    mean = sum(values) / n
    return sum((v - mean) ** 2 for v in values) / n


def check_stability(
    scores: Sequence[float],
    thresholds: Optional[DriftThresholds] = None,
) -> StabilityResult:
    """
    Classify stability from overall scores in chronological order.

    Only the most recent ``stability_min_runs`` scores are considered.
    """
    t = thresholds or DriftThresholds()
    sample = [float(s) for s in scores[-t.stability_min_runs:]]
    if len(sample) < t.stability_min_runs:
        return StabilityResult(variance=None, status=StabilityStatus.PROVISIONAL, sample=sample)

    variance = round(population_variance(sample), 2)
    status = StabilityStatus.STABLE if variance < t.stability_tolerance else StabilityStatus.PROVISIONAL
    return StabilityResult(variance=variance, status=status, sample=sample)


def _run_order_key(run: Run):
    return (run.version, run.completed_at or run.created_at, run.id)


def select_previous_run(completed: Sequence[Run], current: Run) -> Optional[Run]:
    """
    Pick the immediately preceding completed run of the same target.

    Highest version below the current one, ties broken by completion
    time and then id so concurrent readers agree.
    """
    candidates = [
        r for r in completed
        if r.id != current.id
        and r.target_id == current.target_id
        and r.run_type == current.run_type
        and r.is_completed
        and r.version < current.version
    ]
    if not candidates:
        return None
    return max(candidates, key=_run_order_key)


def completed_history(completed: Sequence[Run], current: Run) -> List[Run]:
    """Completed runs up to and excluding ``current``, oldest first."""
    history = [
        r for r in completed
        if r.id != current.id
        and r.target_id == current.target_id
        and r.run_type == current.run_type
        and r.is_completed
        and r.version < current.version
    ]
    return sorted(history, key=_run_order_key)
