"""
Remediation Recommendations
===========================

Rule-based remediation text for weakly scored questions.

A question produces a recommendation when it was answered and its
effective score (after the evidence cap) is below 0.5. Scores below 0.25
are high priority; the rest are medium.

Author: TrustGraph Team
Version: 1.0.0
"""

from typing import Dict, Iterable, List, Mapping

from trustgraph.scoring.models import Answer, Question, Recommendation
from trustgraph.scoring.rules import question_score


RECOMMENDATION_THRESHOLD = 0.5
HIGH_PRIORITY_THRESHOLD = 0.25

RECOMMENDATION_TEXT: Dict[str, str] = {
    # System: Transparency
    "TXS_TRAN_01": (
        "Document the system's purpose, intended use cases, and target users. "
        "Publish internally and make accessible to all stakeholders."
    ),
    "TXS_TRAN_02": (
        "Create and maintain a data inventory listing all inputs, datasets, and RAG corpora. "
        "Include data freshness and update cadence."
    ),
    "TXS_TRAN_03": (
        "Document known failure modes, edge cases, and limitations. "
        "Make this available to users alongside the system's outputs."
    ),
    "TXS_TRAN_04": (
        "Add user-facing disclosures explaining what the system does, what it doesn't do, "
        "and when outputs should be independently verified."
    ),
    "TXS_TRAN_05": (
        "Establish a change log tracking model, prompt, and data updates. "
        "Include dates, authors, and impact assessments for each change."
    ),
    # System: Explainability
    "TXS_EXPL_01": (
        "Ensure the system produces traceable reasoning artifacts (citations, source references, "
        "rationale chains) for its outputs. Add citation requirements to prompt templates."
    ),
    "TXS_EXPL_02": (
        "Implement RAG grounding with required citations. "
        "Add fallback behaviour when source material is insufficient or missing."
    ),
    "TXS_EXPL_03": (
        "Add a confidence or uncertainty signal to outputs (e.g., confidence score, "
        "'insufficient information' flags). Calibrate thresholds against evaluation data."
    ),
    "TXS_EXPL_04": (
        "Build an evaluation suite with golden-set test cases and regression tests. "
        "Run regularly and track accuracy, grounding, and hallucination rates."
    ),
    "TXS_EXPL_05": (
        "Make explainability accessible to non-technical users. Translate technical "
        "explanations into plain language and provide them alongside outputs."
    ),
    # System: human oversight
    "TXS_HO_01": (
        "Define which actions are high-risk and require human-in-the-loop approval. "
        "Implement approval gates in the workflow before these actions execute."
    ),
    "TXS_HO_02": (
        "Create a clear escalation path for uncertain, contested, or policy-violating outputs. "
        "Document triggers, escalation contacts, and response SLAs."
    ),
    "TXS_HO_03": (
        "Implement a kill-switch or pause mechanism that can halt the system quickly. "
        "Test it regularly and document the procedure for operators."
    ),
    "TXS_HO_04": (
        "Implement role-based access control for system administration, prompt editing, "
        "and tool configuration. Audit access logs regularly."
    ),
    "TXS_HO_05": (
        "Set up monitoring dashboards and alerting for anomalous behaviour, error rates, "
        "and latency. Ensure operators can intervene based on alerts."
    ),
    # System: Risk
    "TXS_RISK_01": (
        "Conduct a threat model or risk assessment covering adversarial inputs, data poisoning, "
        "privilege escalation, and unintended behaviour. Document and review periodically."
    ),
    "TXS_RISK_02": (
        "Implement data protection controls: PII filtering on inputs/outputs, "
        "data retention policies, encryption at rest and in transit."
    ),
    "TXS_RISK_03": (
        "Implement least-privilege tool credentials and sandbox agent actions to scoped "
        "resources. Add separate service accounts and explicit allowlists."
    ),
    "TXS_RISK_04": (
        "Deploy prompt injection defenses, jailbreak detection, and policy filters. "
        "Test regularly with adversarial inputs and red-team exercises."
    ),
    "TXS_RISK_05": (
        "Create an incident response playbook for model/system failures. Include detection "
        "criteria, communication templates, rollback procedures, and post-incident review."
    ),
    # System: accountability
    "TXS_ACC_01": (
        "Name a system owner (role, person, or team) with documented responsibilities "
        "for the system's behaviour, performance, and compliance."
    ),
    "TXS_ACC_02": (
        "Enable audit logging for all system inputs, outputs, and actions where legally "
        "permissible. Ensure logs are immutable and retained per policy."
    ),
    "TXS_ACC_03": (
        "Implement version control for prompts, models, and tools. "
        "Ensure a rollback path exists and has been tested for each component."
    ),
    "TXS_ACC_04": (
        "Maintain a dependency inventory listing all third-party models, APIs, and plugins. "
        "Track versions, licences, and security advisories."
    ),
    "TXS_ACC_05": (
        "Map the system against applicable regulatory frameworks (EU AI Act, ISO 42001, SOC2, "
        "sector-specific rules). Document gaps and remediation plans."
    ),
    # Organisational survey
    "TORG_TRAN_01": "Publish a short rationale with every significant decision and link it from the decision record.",
    "TORG_TRAN_02": "Maintain a decision register naming the accountable owner for each major decision.",
    "TORG_TRAN_03": "Record the options considered and the trade-off accepted whenever priorities change.",
    "TORG_INCL_01": "Set up an anonymous or protected channel for challenging decisions and publish how it is handled.",
    "TORG_INCL_02": "Invite frontline representatives into planning cycles that affect their work.",
    "TORG_INCL_03": "Log dissenting views alongside decisions and respond to each one in writing.",
    "TORG_CONF_01": "Track leadership commitments in a shared register with owners and target dates.",
    "TORG_CONF_02": "Review follow-through across business units quarterly and address gaps.",
    "TORG_CONF_03": "Report progress against commitments on a fixed cadence.",
    "TORG_EXPL_01": "Provide plain-language explanations for AI-supported decisions to the people affected.",
    "TORG_EXPL_02": "Disclose where AI is used in decision-making to those affected by the outcome.",
    "TORG_EXPL_03": "Offer a documented route to request an explanation or appeal an outcome.",
    "TORG_RISK_01": "Audit governance controls for consistent enforcement and remediate exceptions.",
    "TORG_RISK_02": "Track escalations to closure and review open ones at each governance meeting.",
    "TORG_RISK_03": "Maintain a risk register with owners and review it on a fixed cadence.",
}


def generate_recommendations(
    questions: Iterable[Question],
    answers: Mapping[str, Answer],
) -> List[Recommendation]:
    """
    Build remediation guidance for weakly scored answered questions.

    Unanswered questions are skipped; they already score 0 and are
    reported as missing elsewhere.

    Returns:
        Recommendations, high priority first, then by question id
    """
    results: List[Recommendation] = []
    for q in questions:
        answer = answers.get(q.id)
        if answer is None:
            continue
        score = question_score(answer, q.answer_type)
        if score >= RECOMMENDATION_THRESHOLD:
            continue
        text = RECOMMENDATION_TEXT.get(q.id)
        if not text:
            continue
        results.append(Recommendation(
            question_id=q.id,
            dimension=q.dimension,
            control=q.control,
            priority="high" if score < HIGH_PRIORITY_THRESHOLD else "med",
            recommendation=text,
        ))

    results.sort(key=lambda r: (0 if r.priority == "high" else 1, r.question_id))
    return results
