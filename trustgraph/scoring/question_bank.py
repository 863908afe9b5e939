"""
Question Banks
==============

Static, versioned question sets for organisational surveys ("org") and
AI-system assessments ("sys").

Each bank is validated once at import time: ids must be unique and the
weights of each dimension must sum to 1.0. Requests never re-check this.

Author: TrustGraph Team
Version: 1.0.0
"""

import math
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from trustgraph.scoring.models import AnswerType, Dimension, Question


DEFAULT_QUESTION_SET_VERSION = "v1"

B = AnswerType.BOOLEAN
M = AnswerType.MATURITY


def _q(qid: str, dim: Dimension, control: str, prompt: str, answer_type: AnswerType, weight: float) -> Question:
    return Question(
        id=qid,
        dimension=dim,
        control=control,
        prompt=prompt,
        answer_type=answer_type,
        weight=weight,
    )


# =============================================================================
# System assessment bank v1 (25 questions, 5 per dimension)
# =============================================================================

SYSTEM_QUESTIONS_V1: List[Question] = [
    # Transparency
    _q("TXS_TRAN_01", Dimension.TRANSPARENCY, "System purpose documented",
       "System purpose documented?", M, 0.20),
    _q("TXS_TRAN_02", Dimension.TRANSPARENCY, "Data sources documented",
       "Data sources documented (inputs, datasets, RAG corpora)?", M, 0.20),
    _q("TXS_TRAN_03", Dimension.TRANSPARENCY, "Known limitations documented",
       "Known limitations documented (failure modes, edge cases)?", M, 0.20),
    _q("TXS_TRAN_04", Dimension.TRANSPARENCY, "User disclosures exist",
       "User disclosures exist (what it is, what it isn't, when to trust it)?", M, 0.20),
    _q("TXS_TRAN_05", Dimension.TRANSPARENCY, "Change log exists",
       "Change log exists for model/prompt/data updates?", M, 0.20),

    # Inclusion: stakeholder involvement in oversight
    _q("TXS_ACC_01", Dimension.INCLUSION, "System owner named",
       "System owner named (role/person/team) + responsibilities documented?", M, 0.25),
    _q("TXS_HO_02", Dimension.INCLUSION, "Escalation path exists",
       "Clear escalation path exists (when uncertain / policy violation / risk)?", M, 0.20),
    _q("TXS_HO_04", Dimension.INCLUSION, "Access control exists",
       "Access control exists (who can run/admin/change prompts/tools)?", M, 0.20),
    _q("TXS_ACC_04", Dimension.INCLUSION, "Third-party dependency inventory",
       "Third-party dependency inventory (models, APIs, plugins) maintained?", M, 0.15),
    _q("TXS_ACC_05", Dimension.INCLUSION, "Compliance mapping",
       "Compliance mapping done (AI Act / ISO / SOC2 / sector rules) where relevant?", M, 0.20),

    # Confidence: reliability and operator control
    _q("TXS_HO_01", Dimension.CONFIDENCE, "Human-in-the-loop for high-risk",
       "Human-in-the-loop required for high-risk actions?", M, 0.20),
    _q("TXS_HO_03", Dimension.CONFIDENCE, "Pause/kill-switch capability",
       "Ability to pause/kill-switch system quickly?", B, 0.25),
    _q("TXS_HO_05", Dimension.CONFIDENCE, "Monitoring supports intervention",
       "Monitoring supports operator intervention (alerts, dashboards)?", M, 0.15),
    _q("TXS_ACC_02", Dimension.CONFIDENCE, "Audit logging enabled",
       "Audit logging enabled for inputs/outputs/actions (where permissible)?", M, 0.25),
    _q("TXS_ACC_03", Dimension.CONFIDENCE, "Versioning with rollback",
       "Versioning of prompts/models/tools with rollback path?", M, 0.15),

    # Explainability
    _q("TXS_EXPL_01", Dimension.EXPLAINABILITY, "Traceable reasoning artifacts",
       "Produces traceable reasoning artifacts (citations, sources, rationale) where applicable?", M, 0.20),
    _q("TXS_EXPL_02", Dimension.EXPLAINABILITY, "RAG grounding implemented",
       "RAG grounding implemented (citations required, fallback when missing)?", B, 0.20),
    _q("TXS_EXPL_03", Dimension.EXPLAINABILITY, "Output confidence signal",
       "Output confidence/uncertainty signal present?", M, 0.20),
    _q("TXS_EXPL_04", Dimension.EXPLAINABILITY, "Evaluation suite exists",
       "Evaluation suite exists (golden set / regression tests) for accuracy/grounding?", M, 0.20),
    _q("TXS_EXPL_05", Dimension.EXPLAINABILITY, "Explainability accessible to users",
       "Explainability accessible to target users (not just engineers)?", M, 0.20),

    # Risk
    _q("TXS_RISK_01", Dimension.RISK, "Threat model / risk assessment",
       "Threat model or risk assessment exists (documented)?", M, 0.20),
    _q("TXS_RISK_02", Dimension.RISK, "Data protection controls",
       "Data protection controls (PII filtering, retention, encryption) implemented?", M, 0.20),
    _q("TXS_RISK_03", Dimension.RISK, "Tool/action sandboxing",
       "Tool/action sandboxing (least privilege, scoped credentials) implemented?", M, 0.20),
    _q("TXS_RISK_04", Dimension.RISK, "Abuse prevention",
       "Abuse prevention (prompt injection defense, jailbreak checks, policy filters)?", M, 0.20),
    _q("TXS_RISK_05", Dimension.RISK, "Incident response playbook",
       "Incident response playbook for model/system failures?", M, 0.20),
]


# =============================================================================
# Organisational survey bank v1 (15 questions, 3 per dimension)
# =============================================================================

ORG_QUESTIONS_V1: List[Question] = [
    _q("TORG_TRAN_01", Dimension.TRANSPARENCY, "Decision rationale published",
       "Are the reasons behind significant decisions published to affected teams?", M, 0.40),
    _q("TORG_TRAN_02", Dimension.TRANSPARENCY, "Decision owners visible",
       "Is it clear who owns each major decision?", M, 0.30),
    _q("TORG_TRAN_03", Dimension.TRANSPARENCY, "Trade-offs recorded",
       "Are trade-offs recorded when priorities change?", M, 0.30),

    _q("TORG_INCL_01", Dimension.INCLUSION, "Safe challenge channel",
       "Is there a safe channel to challenge decisions without repercussion?", B, 0.35),
    _q("TORG_INCL_02", Dimension.INCLUSION, "Participation in planning",
       "Are frontline staff involved in planning that affects them?", M, 0.35),
    _q("TORG_INCL_03", Dimension.INCLUSION, "Dissent captured",
       "Is dissent captured and responded to?", M, 0.30),

    _q("TORG_CONF_01", Dimension.CONFIDENCE, "Commitments tracked",
       "Are leadership commitments tracked to completion?", M, 0.40),
    _q("TORG_CONF_02", Dimension.CONFIDENCE, "Consistent follow-through",
       "Is follow-through consistent across business units?", M, 0.30),
    _q("TORG_CONF_03", Dimension.CONFIDENCE, "Progress reported",
       "Is progress against commitments reported regularly?", B, 0.30),

    _q("TORG_EXPL_01", Dimension.EXPLAINABILITY, "AI-supported decisions explained",
       "Are AI-supported decisions explained in plain language?", M, 0.40),
    _q("TORG_EXPL_02", Dimension.EXPLAINABILITY, "Model use disclosed",
       "Is the use of AI in decisions disclosed to those affected?", B, 0.30),
    _q("TORG_EXPL_03", Dimension.EXPLAINABILITY, "Appeal route exists",
       "Can people request an explanation or appeal an outcome?", M, 0.30),

    _q("TORG_RISK_01", Dimension.RISK, "Governance controls enforced",
       "Are governance controls enforced consistently?", M, 0.40),
    _q("TORG_RISK_02", Dimension.RISK, "Escalation path used",
       "Are escalation paths used and closed out?", M, 0.30),
    _q("TORG_RISK_03", Dimension.RISK, "Risk register maintained",
       "Is a risk register maintained and reviewed?", M, 0.30),
]


QUESTION_BANKS: Dict[Tuple[str, str], List[Question]] = {
    ("sys", "v1"): SYSTEM_QUESTIONS_V1,
    ("org", "v1"): ORG_QUESTIONS_V1,
}


def validate_question_bank(questions: Iterable[Question], tolerance: float = 1e-9) -> None:
    """
    Assert a bank's structural invariants.

    Raises:
        ValueError: duplicate ids, or a dimension whose weights
            do not sum to 1.0
    """
    seen = set()
    totals: Dict[Dimension, float] = defaultdict(float)
    for q in questions:
        if q.id in seen:
            raise ValueError(f"Duplicate question id: {q.id}")
        seen.add(q.id)
        totals[q.dimension] += q.weight

    for dim in Dimension:
        total = totals.get(dim, 0.0)
        if not math.isclose(total, 1.0, abs_tol=tolerance):
            raise ValueError(
                f"Weights for dimension {dim.value} sum to {total:.4f}, expected 1.0"
            )


def get_question_bank(run_type: str, version: str = DEFAULT_QUESTION_SET_VERSION) -> List[Question]:
    """
    Look up the question bank for a run type and version.

    Raises:
        KeyError: unknown (run_type, version)
    """
    key = (getattr(run_type, "value", run_type), version)
    if key not in QUESTION_BANKS:
        raise KeyError(f"No question bank for run_type={run_type!r} version={version!r}")
    return QUESTION_BANKS[key]


for _bank in QUESTION_BANKS.values():
    validate_question_bank(_bank)
