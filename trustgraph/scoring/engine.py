"""
TrustGraph Scoring Engine
=========================

Turns the answers of one run into its complete scoring result.

This module coordinates:
    - Answer validation against the versioned question bank
    - Dimension and overall aggregation
    - Risk flag derivation
    - Remediation recommendations and tier classification

The engine is pure: it performs no I/O and keeps no state between calls,
so a run's scores can be replayed from its stored answers at any time.

Usage:
    from trustgraph.scoring.engine import ScoringEngine

    engine = ScoringEngine()
    result = engine.score(answers, run_type="sys")
    print(result.overall_score, result.tier)

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from trustgraph.errors import ValidationError
from trustgraph.scoring.models import Answer, AnswerType, Question, Recommendation, RiskFlag
from trustgraph.scoring.question_bank import DEFAULT_QUESTION_SET_VERSION, get_question_bank
from trustgraph.scoring.recommendations import generate_recommendations
from trustgraph.scoring.risk_flags import derive_risk_flags
from trustgraph.scoring.rules import classify_tier, dimension_scores, overall_score


logger = logging.getLogger(__name__)


@dataclass
class ScoringResult:
    """
    Complete scoring result for one run.

    Includes scores, flags, and remediation guidance.
    """
    run_type: str
    question_set_version: str
    dimension_scores: Dict[str, int]
    overall_score: int
    risk_flags: List[RiskFlag]
    tier: str
    recommendations: List[Recommendation] = field(default_factory=list)
    answered_count: int = 0
    question_count: int = 0

    @property
    def risk_flag_codes(self) -> List[str]:
        return [f.code for f in self.risk_flags]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_type": self.run_type,
            "question_set_version": self.question_set_version,
            "dimension_scores": dict(self.dimension_scores),
            "overall_score": self.overall_score,
            "risk_flags": [f.model_dump() for f in self.risk_flags],
            "tier": self.tier,
            "recommendations": [r.model_dump(mode="json") for r in self.recommendations],
            "answered_count": self.answered_count,
            "question_count": self.question_count,
        }


class ScoringEngine:
    """
    Scoring engine for TrustGraph runs.

    Example:
        engine = ScoringEngine()
        result = engine.score({"TXS_HO_03": Answer(boolean=True)}, "sys")
    """

    def score(
        self,
        answers: Mapping[str, Answer],
        run_type: str,
        version: str = DEFAULT_QUESTION_SET_VERSION,
    ) -> ScoringResult:
        """
        Score a full set of answers.

        Args:
            answers: Answers keyed by question id (missing ids score 0)
            run_type: "org" or "sys"
            version: Question set version

        Returns:
            ScoringResult

        Raises:
            ValidationError: unknown bank, unknown question id, or an
                answer whose shape does not match its question
        """
        questions = self.questions_for(run_type, version)
        self.validate_answers(questions, answers)

        dims = dimension_scores(questions, answers)
        overall = overall_score(dims)
        flags = derive_risk_flags(answers, [q.id for q in questions])
        recs = generate_recommendations(questions, answers)

        result = ScoringResult(
            run_type=str(run_type),
            question_set_version=version,
            dimension_scores=dims,
            overall_score=overall,
            risk_flags=flags,
            tier=classify_tier(overall),
            recommendations=recs,
            answered_count=sum(1 for q in questions if q.id in answers),
            question_count=len(questions),
        )

        logger.debug(
            f"Scored {run_type}/{version} run: overall={overall} "
            f"flags={result.risk_flag_codes}"
        )
        return result

    def questions_for(self, run_type: str, version: str = DEFAULT_QUESTION_SET_VERSION) -> List[Question]:
        try:
            return get_question_bank(run_type, version)
        except KeyError:
            raise ValidationError(
                f"Unknown question set {run_type}/{version}",
                {"run_type": str(run_type), "version": version},
            )

    @staticmethod
    def validate_answers(questions: List[Question], answers: Mapping[str, Answer]) -> None:
        """Reject answers that do not fit the bank."""
        by_id: Dict[str, Question] = {q.id: q for q in questions}
        unknown = sorted(qid for qid in answers if qid not in by_id)
        if unknown:
            raise ValidationError(
                f"Unknown question id(s): {', '.join(unknown)}",
                {"unknown_question_ids": unknown},
            )

        for qid, answer in answers.items():
            q = by_id[qid]
            mismatch: Optional[str] = None
            if q.answer_type == AnswerType.BOOLEAN and answer.boolean is None and answer.maturity is not None:
                mismatch = "expects a boolean answer"
            elif q.answer_type == AnswerType.MATURITY and answer.maturity is None and answer.boolean is not None:
                mismatch = "expects a maturity answer"
            if mismatch:
                raise ValidationError(
                    f"Question {qid} {mismatch}",
                    {"question_id": qid, "answer_type": q.answer_type.value},
                )
