"""
TrustGraph Scoring Rules
========================

Deterministic rules that turn questionnaire answers into scores.

Scoring Philosophy:
    - Base value: what the answer claims on its face.
    - Evidence cap: how far the attached evidence lets that claim count.
    - Question score: min(base, cap), always in [0, 1].

Dimension scores are weighted sums scaled to 0-100; the overall score is
an equal-weighted blend of the five dimensions.

All rounding is round-half-up, so 54.5 becomes 55 regardless of parity.

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Mapping, Optional

from trustgraph.scoring.models import (
    DIMENSIONS,
    STRONG_EVIDENCE_TYPES,
    Answer,
    AnswerType,
    Dimension,
    Evidence,
    MaturityLevel,
    Question,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MATURITY_SCORES: Dict[MaturityLevel, float] = {
    MaturityLevel.NONE: 0.00,
    MaturityLevel.AD_HOC: 0.25,
    MaturityLevel.DEFINED: 0.50,
    MaturityLevel.ENFORCED: 0.75,
    MaturityLevel.AUTOMATED: 1.00,
}

CAP_NO_EVIDENCE = 0.4
CAP_STRONG_EVIDENCE = 1.0
CAP_WEAK_EVIDENCE = 0.6

DIMENSION_WEIGHT = 0.2

TIER_THRESHOLDS = (
    (80, "trusted"),
    (65, "stable"),
    (50, "elevated_risk"),
)
TIER_FLOOR = "critical"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    # float noise such as 54.49999999999999 must land on 54.5 first
    return int(Decimal(repr(round(value, 9))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Answer Scorer
# =============================================================================

def base_score(answer: Optional[Answer], answer_type: AnswerType) -> float:
    """Face value of an answer, ignoring evidence."""
    if answer is None:
        return 0.0
    if answer_type == AnswerType.BOOLEAN:
        return 1.0 if answer.boolean is True else 0.0
    if answer.maturity is None:
        return 0.0
    return MATURITY_SCORES[answer.maturity]


def evidence_cap(evidence: Optional[Evidence]) -> float:
    """
    Maximum score an answer can reach given its evidence.

    No evidence caps at 0.4. A strong evidence type carrying a non-empty
    pointer lifts the cap to 1.0. Anything else caps at 0.6.
    """
    if evidence is None:
        return CAP_NO_EVIDENCE
    if evidence.type in STRONG_EVIDENCE_TYPES and evidence.has_pointer:
        return CAP_STRONG_EVIDENCE
    return CAP_WEAK_EVIDENCE


def question_score(answer: Optional[Answer], answer_type: AnswerType) -> float:
    """
    Score one answer in [0, 1].

    A missing answer scores 0 and still counts toward its dimension.
    """
    if answer is None:
        return 0.0
    return min(base_score(answer, answer_type), evidence_cap(answer.evidence))


# =============================================================================
# Aggregation
# =============================================================================

def dimension_score(
    questions: Iterable[Question],
    answers: Mapping[str, Answer],
    dimension: Dimension,
) -> int:
    """
    Weighted 0-100 score for one dimension.

    Args:
        questions: Question bank (any dimensions; filtered here)
        answers: Answers keyed by question id
        dimension: Dimension to score

    Returns:
        round_half_up(100 * sum(question_score * weight))
    """
    total = 0.0
    for q in questions:
        if q.dimension != dimension:
            continue
        total += question_score(answers.get(q.id), q.answer_type) * q.weight
    return round_half_up(total * 100)


def dimension_scores(
    questions: Iterable[Question],
    answers: Mapping[str, Answer],
) -> Dict[str, int]:
    bank = list(questions)
    return {dim.value: dimension_score(bank, answers, dim) for dim in DIMENSIONS}


def overall_score(scores: Mapping[str, float]) -> int:
    """Equal 20% blend of the five dimensions; missing ones count as 0."""
    total = 0.0
    for dim in DIMENSIONS:
        total += float(scores.get(dim.value, 0) or 0) * DIMENSION_WEIGHT
    return round_half_up(total)


def classify_tier(score: float) -> str:
    """Map an overall score to a trust tier label."""
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return TIER_FLOOR
