"""
Risk Flag Deriver
=================

Qualitative risk flags evaluated directly against answers.

Flags are answer-driven, not score-driven: a system with a high overall
score can still carry every flag. Each rule is bound to exactly one
question id through RISK_FLAG_BINDINGS; renaming a question means
updating the binding, never matching on wording.

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from trustgraph.scoring.models import Answer, MaturityLevel, RiskFlag
from trustgraph.scoring.rules import CAP_STRONG_EVIDENCE, evidence_cap


logger = logging.getLogger(__name__)


NO_KILL_SWITCH = "NO_KILL_SWITCH"
WEAK_AUDIT_LOGGING = "WEAK_AUDIT_LOGGING"
WEAK_TOOL_SANDBOX = "WEAK_TOOL_SANDBOX"
NO_THREAT_MODEL = "NO_THREAT_MODEL"

RISK_FLAG_BINDINGS: Dict[str, str] = {
    NO_KILL_SWITCH: "TXS_HO_03",
    WEAK_AUDIT_LOGGING: "TXS_ACC_02",
    WEAK_TOOL_SANDBOX: "TXS_RISK_03",
    NO_THREAT_MODEL: "TXS_RISK_01",
}


def _kill_switch_missing(answer: Optional[Answer]) -> bool:
    if answer is None or answer.boolean is not True:
        return True
    return evidence_cap(answer.evidence) < CAP_STRONG_EVIDENCE


def _maturity_below(threshold: MaturityLevel) -> Callable[[Optional[Answer]], bool]:
    order = list(MaturityLevel)

    def check(answer: Optional[Answer]) -> bool:
        if answer is None or answer.maturity is None:
            return True
        return order.index(answer.maturity) < order.index(threshold)

    return check


@dataclass(frozen=True)
class RiskRule:
    """A flag plus the predicate that fires it."""
    flag: RiskFlag
    triggered: Callable[[Optional[Answer]], bool]

    @property
    def question_id(self) -> str:
        return RISK_FLAG_BINDINGS[self.flag.code]


RISK_RULES: List[RiskRule] = [
    RiskRule(
        RiskFlag(
            code=NO_KILL_SWITCH,
            label="No kill switch",
            description=(
                "The system lacks a verified kill-switch or pause capability, "
                "or the evidence is insufficient."
            ),
        ),
        _kill_switch_missing,
    ),
    RiskRule(
        RiskFlag(
            code=WEAK_AUDIT_LOGGING,
            label="Weak audit logging",
            description=(
                "Audit logging maturity is below 'defined', meaning logs may "
                "be incomplete or inconsistent."
            ),
        ),
        _maturity_below(MaturityLevel.DEFINED),
    ),
    RiskRule(
        RiskFlag(
            code=WEAK_TOOL_SANDBOX,
            label="Weak tool sandboxing",
            description=(
                "Tool/action sandboxing maturity is below 'enforced', creating "
                "privilege escalation risk."
            ),
        ),
        _maturity_below(MaturityLevel.ENFORCED),
    ),
    RiskRule(
        RiskFlag(
            code=NO_THREAT_MODEL,
            label="No threat model",
            description="No threat model or risk assessment exists for this system.",
        ),
        _maturity_below(MaturityLevel.AD_HOC),
    ),
]


def derive_risk_flags(
    answers: Mapping[str, Answer],
    question_ids: Optional[Iterable[str]] = None,
) -> List[RiskFlag]:
    """
    Evaluate every rule against its bound answer.

    Args:
        answers: Answers keyed by question id
        question_ids: Ids of the bank being scored. Rules bound to a
            question outside the bank are skipped, so organisational
            surveys never carry system flags.

    Returns:
        Triggered flags in rule order
    """
    bank = set(question_ids) if question_ids is not None else None
    flags = []
    for rule in RISK_RULES:
        if bank is not None and rule.question_id not in bank:
            continue
        if rule.triggered(answers.get(rule.question_id)):
            flags.append(rule.flag)
    return flags
