"""
Test Fixtures
=============

Shared answer sets, evidence and a controllable clock.

Author: TrustGraph Team
Version: 1.0.0
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from trustgraph.scoring.models import Answer, AnswerType, Evidence, EvidenceType, MaturityLevel
from trustgraph.scoring.question_bank import ORG_QUESTIONS_V1, SYSTEM_QUESTIONS_V1


FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

STRONG = Evidence(type=EvidenceType.LINK, pointer="https://wiki.example.com/controls/1")
WEAK = Evidence(type=EvidenceType.DOCUMENT_REF, pointer="handbook.pdf")


class FakeClock:
    """Controllable clock injected into the service."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def uniform_answers(
    questions,
    level: MaturityLevel = MaturityLevel.AUTOMATED,
    boolean: bool = True,
    evidence: Optional[Evidence] = STRONG,
) -> Dict[str, Answer]:
    """Same answer for every question of a bank."""
    answers = {}
    for q in questions:
        if q.answer_type == AnswerType.BOOLEAN:
            answers[q.id] = Answer(boolean=boolean, evidence=evidence)
        else:
            answers[q.id] = Answer(maturity=level, evidence=evidence)
    return answers


def sys_answers(level: MaturityLevel = MaturityLevel.AUTOMATED, boolean: bool = True, evidence=STRONG):
    return uniform_answers(SYSTEM_QUESTIONS_V1, level, boolean, evidence)


def org_answers(level: MaturityLevel = MaturityLevel.AUTOMATED, boolean: bool = True, evidence=STRONG):
    return uniform_answers(ORG_QUESTIONS_V1, level, boolean, evidence)
