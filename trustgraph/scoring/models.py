"""
Scoring Domain Models
=====================

Question, answer and evidence models consumed by the answer scorer.

Author: TrustGraph Team
Version: 1.0.0
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Dimension(str, Enum):
    """The five fixed trust dimensions."""
    TRANSPARENCY = "Transparency"
    INCLUSION = "Inclusion"
    CONFIDENCE = "Confidence"
    EXPLAINABILITY = "Explainability"
    RISK = "Risk"


DIMENSIONS: List[Dimension] = list(Dimension)


class AnswerType(str, Enum):
    """How a question is answered."""
    BOOLEAN = "boolean"
    MATURITY = "maturity"


class MaturityLevel(str, Enum):
    """Ordered 5-point maturity scale."""
    NONE = "none"
    AD_HOC = "ad_hoc"
    DEFINED = "defined"
    ENFORCED = "enforced"
    AUTOMATED = "automated"


class EvidenceType(str, Enum):
    """Evidence type tags."""
    LINK = "link"
    TICKET_REF = "ticket_ref"
    LOG_REF = "log_ref"
    RUNBOOK_REF = "runbook_ref"
    POLICY_REF = "policy_ref"
    DOCUMENT_REF = "document_ref"


STRONG_EVIDENCE_TYPES = frozenset({
    EvidenceType.LINK,
    EvidenceType.TICKET_REF,
    EvidenceType.LOG_REF,
    EvidenceType.RUNBOOK_REF,
    EvidenceType.POLICY_REF,
})


class Evidence(BaseModel):
    """Evidence attached to an answer."""
    model_config = ConfigDict(frozen=True)

    type: EvidenceType = Field(..., description="Evidence type tag")
    pointer: Optional[str] = Field(None, description="Concrete locator (URL, ticket id, ...)")
    note: Optional[str] = Field(None, description="Free-text note")

    @property
    def has_pointer(self) -> bool:
        return bool(self.pointer and self.pointer.strip())


class Answer(BaseModel):
    """
    A respondent's answer to one question.

    Exactly one of ``boolean`` / ``maturity`` is meaningful, depending on
    the question's answer type; the other is ignored by the scorer.
    """
    model_config = ConfigDict(frozen=True)

    boolean: Optional[bool] = None
    maturity: Optional[MaturityLevel] = None
    evidence: Optional[Evidence] = None


class Question(BaseModel):
    """Immutable question definition."""
    model_config = ConfigDict(frozen=True)

    id: str
    dimension: Dimension
    control: str
    prompt: str
    answer_type: AnswerType
    weight: float = Field(..., gt=0.0, le=1.0)


class RiskFlag(BaseModel):
    """Qualitative risk flag derived from specific answers."""
    model_config = ConfigDict(frozen=True)

    code: str
    label: str
    description: str


class Recommendation(BaseModel):
    """Remediation guidance for a weakly scored question."""
    question_id: str
    dimension: Dimension
    control: str
    priority: str  # "high" | "med"
    recommendation: str
