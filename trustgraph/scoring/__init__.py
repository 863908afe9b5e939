"""
TrustGraph Scoring Package
==========================

Deterministic scoring of questionnaire answers.

This package provides:
    - models: Questions, answers, evidence and risk flags
    - question_bank: Versioned org/sys question sets
    - rules: Answer scorer and dimension/overall aggregation
    - risk_flags: Identity-bound qualitative risk flags
    - recommendations: Remediation guidance for weak answers
    - engine: Scoring orchestration

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.scoring.engine import ScoringEngine, ScoringResult
from trustgraph.scoring.risk_flags import derive_risk_flags
from trustgraph.scoring.rules import (
    dimension_score,
    evidence_cap,
    overall_score,
    question_score,
)

__all__ = [
    "ScoringEngine",
    "ScoringResult",
    "derive_risk_flags",
    "dimension_score",
    "evidence_cap",
    "overall_score",
    "question_score",
]
