"""
Organisation Health Aggregator
==============================

Combines recent assessment scores with four saturating penalty terms
into one 0-100 Health Score per organisation.

Formula:
    org_base    = mean of recent org runs, each times confidence
    sys_base    = sum(w_i * score_i * confidence_i) over the latest run per system,
                  w = softmax(lambda * (alpha * autonomy/5 + beta * criticality/5))
    confidence  = 1 for stable runs, provisional_confidence otherwise

    base_health = mu * org_base + (1 - mu) * sys_base   (both present)
                = whichever base exists                  (one present)
                -> status "unavailable"                  (neither)

    p_rel   = rel_max   * (1 - exp(-sum(severity weight of open escalations)))
    p_act   = act_max   * (1 - exp(-(w_open*open + w_over*overdue + w_crit*crit_overdue)))
    p_drift = drift_max * (1 - exp(-sum(|delta|) / drift_penalty_scale))
    p_exp   = exp_max   * (risk flags on latest system runs / (rules * runs))

    health_score = clamp(base_health - p_rel - p_act - p_drift - p_exp, 0, 100)

Every constant comes from Settings and is an overridable default.

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from trustgraph.config import Settings, settings as default_settings
from trustgraph.models import (
    ActionCounts,
    DriftEvent,
    Escalation,
    HealthSnapshot,
    HealthStatus,
    Run,
    StabilityStatus,
    utcnow,
)
from trustgraph.scoring.risk_flags import RISK_RULES


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HealthWeights:
    """Blend weight, penalty caps and penalty coefficients."""
    org_weight: float = 0.5
    provisional_confidence: float = 0.7
    sys_softmax_lambda: float = 2.0
    sys_autonomy_weight: float = 1.0
    sys_criticality_weight: float = 1.0
    default_risk_level: int = 3
    rel_max: float = 35.0
    act_max: float = 30.0
    drift_max: float = 20.0
    exp_max: float = 25.0
    action_open_weight: float = 0.05
    action_overdue_weight: float = 0.15
    action_critical_overdue_weight: float = 0.35
    drift_penalty_scale: float = 25.0
    severity_weights: Dict[str, float] = field(default_factory=lambda: {
        "low": 0.1,
        "medium": 0.25,
        "high": 0.5,
        "critical": 1.0,
    })
    flags_per_run: int = len(RISK_RULES)

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "HealthWeights":
        cfg = cfg or default_settings
        return cls(
            org_weight=cfg.health_org_weight,
            provisional_confidence=cfg.provisional_confidence,
            sys_softmax_lambda=cfg.health_sys_softmax_lambda,
            sys_autonomy_weight=cfg.health_sys_autonomy_weight,
            sys_criticality_weight=cfg.health_sys_criticality_weight,
            default_risk_level=cfg.health_default_risk_level,
            rel_max=cfg.penalty_rel_max,
            act_max=cfg.penalty_act_max,
            drift_max=cfg.penalty_drift_max,
            exp_max=cfg.penalty_exp_max,
            action_open_weight=cfg.action_open_weight,
            action_overdue_weight=cfg.action_overdue_weight,
            action_critical_overdue_weight=cfg.action_critical_overdue_weight,
            drift_penalty_scale=cfg.drift_penalty_scale,
            severity_weights=dict(cfg.escalation_severity_weights),
        )


@dataclass
class HealthInputs:
    """Everything the aggregator reads for one organisation."""
    org_runs: List[Run] = field(default_factory=list)
    """Recent completed organisational survey runs"""

    sys_runs: List[Run] = field(default_factory=list)
    """Latest completed run per system target"""

    actions: ActionCounts = field(default_factory=ActionCounts)
    open_escalations: List[Escalation] = field(default_factory=list)
    drift_events: List[DriftEvent] = field(default_factory=list)
    """Flagged overall-score drift events inside the window"""


def _saturate(cap: float, x: float) -> float:
    if x <= 0:
        return 0.0
    return cap * (1.0 - math.exp(-x))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _effective_score(run: Run, weights: HealthWeights) -> float:
    score = float(run.overall_score or 0)
    if run.stability_status == StabilityStatus.PROVISIONAL:
        score *= weights.provisional_confidence
    return score


def mean_score(runs: Sequence[Run], weights: HealthWeights) -> Optional[float]:
    scored = [r for r in runs if r.overall_score is not None]
    if not scored:
        return None
    return sum(_effective_score(r, weights) for r in scored) / len(scored)


def system_weights(runs: Sequence[Run], weights: HealthWeights) -> List[float]:
    """
    Softmax weights of system runs over autonomy and criticality.

    A run without a level uses ``default_risk_level``. Equal levels give
    equal weights, so sys_base falls back to the plain mean.
    """
    logits = []
    for r in runs:
        autonomy = r.autonomy_level or weights.default_risk_level
        criticality = r.criticality_level or weights.default_risk_level
        logits.append(weights.sys_softmax_lambda * (
            weights.sys_autonomy_weight * autonomy / 5.0
            + weights.sys_criticality_weight * criticality / 5.0
        ))
    if not logits:
        return []
    top = max(logits)
    exps = [math.exp(x - top) for x in logits]
    total = sum(exps)
    return [e / total for e in exps]


def weighted_sys_score(runs: Sequence[Run], weights: HealthWeights) -> Optional[float]:
    scored = [r for r in runs if r.overall_score is not None]
    if not scored:
        return None
    return sum(
        w * _effective_score(r, weights)
        for w, r in zip(system_weights(scored, weights), scored)
    )


def blend_base(org_base: Optional[float], sys_base: Optional[float], org_weight: float) -> Optional[float]:
    if org_base is not None and sys_base is not None:
        return org_weight * org_base + (1.0 - org_weight) * sys_base
    if org_base is not None:
        return org_base
    return sys_base


# =============================================================================
# Penalty terms
# =============================================================================

def relationship_penalty(open_escalations: Sequence[Escalation], weights: HealthWeights) -> float:
    load = sum(
        weights.severity_weights.get(e.severity.value, 0.0)
        for e in open_escalations
        if not e.resolved
    )
    return _saturate(weights.rel_max, load)


def action_penalty(counts: ActionCounts, weights: HealthWeights) -> float:
    load = (
        weights.action_open_weight * counts.open_actions
        + weights.action_overdue_weight * counts.overdue_actions
        + weights.action_critical_overdue_weight * counts.critical_overdue_actions
    )
    return _saturate(weights.act_max, load)


def drift_penalty(events: Sequence[DriftEvent], weights: HealthWeights) -> float:
    total = sum(abs(e.delta_score) for e in events)
    return _saturate(weights.drift_max, total / weights.drift_penalty_scale)


def exposure_penalty(sys_runs: Sequence[Run], weights: HealthWeights) -> float:
    if not sys_runs or weights.flags_per_run <= 0:
        return 0.0
    flags = sum(len(r.risk_flags) for r in sys_runs)
    density = flags / (weights.flags_per_run * len(sys_runs))
    return weights.exp_max * min(1.0, density)


# =============================================================================
# Composite
# =============================================================================

def compute_health(
    organisation_id: str,
    inputs: HealthInputs,
    weights: Optional[HealthWeights] = None,
    now: Optional[datetime] = None,
) -> HealthSnapshot:
    """
    Compute a full health snapshot from pre-fetched inputs.

    Returns:
        HealthSnapshot. With no scored runs at all the snapshot has
        status "unavailable" and health_score None; penalty context is
        still reported.
    """
    w = weights or HealthWeights()
    now = now or utcnow()

    org_base = mean_score(inputs.org_runs, w)
    sys_base = weighted_sys_score(inputs.sys_runs, w)
    base = blend_base(org_base, sys_base, w.org_weight)

    p_rel = relationship_penalty(inputs.open_escalations, w)
    p_act = action_penalty(inputs.actions, w)
    p_drift = drift_penalty(inputs.drift_events, w)
    p_exp = exposure_penalty(inputs.sys_runs, w)

    snapshot = HealthSnapshot(
        organisation_id=organisation_id,
        status=HealthStatus.OK if base is not None else HealthStatus.UNAVAILABLE,
        health_score=None,
        base_health=round(base, 2) if base is not None else None,
        org_base=round(org_base, 2) if org_base is not None else None,
        sys_base=round(sys_base, 2) if sys_base is not None else None,
        p_rel=round(p_rel, 2),
        p_act=round(p_act, 2),
        p_drift=round(p_drift, 2),
        p_exp=round(p_exp, 2),
        open_actions=inputs.actions.open_actions,
        overdue_actions=inputs.actions.overdue_actions,
        critical_overdue_actions=inputs.actions.critical_overdue_actions,
        open_escalations=len([e for e in inputs.open_escalations if not e.resolved]),
        computed_at=now,
    )

    if base is not None:
        snapshot.health_score = round(clamp(base - p_rel - p_act - p_drift - p_exp), 1)

    logger.debug(
        f"Health for {organisation_id}: status={snapshot.status.value} "
        f"score={snapshot.health_score} base={snapshot.base_health}"
    )
    return snapshot
