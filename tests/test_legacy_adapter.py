"""
Tests for the legacy system-assessment adapter.

Author: TrustGraph Team
Version: 1.0.0
"""

import pytest

from trustgraph.adapters.legacy import (
    legacy_answer_type,
    response_to_answer,
    responses_to_answers,
    run_to_legacy_status,
    system_run_to_run,
)
from trustgraph.errors import ValidationError
from trustgraph.models import RunStatus, RunType
from trustgraph.scoring.engine import ScoringEngine
from trustgraph.scoring.models import AnswerType, EvidenceType, MaturityLevel
from trustgraph.scoring.question_bank import SYSTEM_QUESTIONS_V1


class TestLegacyAnswers:

    def test_answer_types(self):
        assert legacy_answer_type("enum_maturity") == AnswerType.MATURITY
        assert legacy_answer_type("boolean") == AnswerType.BOOLEAN
        with pytest.raises(ValidationError):
            legacy_answer_type("free_text")

    def test_evidence_column_wins(self):
        answer = response_to_answer({
            "question_id": "TXS_RISK_01",
            "answer": {"maturity": "enforced", "evidence": {"type": "document_ref", "pointer": "a.pdf"}},
            "evidence": {"type": "ticket_ref", "pointer": "SEC-42"},
        })
        assert answer.maturity == MaturityLevel.ENFORCED
        assert answer.evidence.type == EvidenceType.TICKET_REF

    def test_embedded_evidence_used_when_column_empty(self):
        answer = response_to_answer({
            "question_id": "TXS_HO_03",
            "answer": {"boolean": True, "evidence": {"type": "runbook_ref", "pointer": "RB-7"}},
            "evidence": None,
        })
        assert answer.boolean is True
        assert answer.evidence.pointer == "RB-7"

    def test_bad_maturity_rejected(self):
        with pytest.raises(ValidationError):
            response_to_answer({"question_id": "TXS_RISK_01", "answer": {"maturity": "excellent"}})

    def test_unknown_question_rejected(self):
        with pytest.raises(ValidationError):
            responses_to_answers([{"question_id": "LEGACY_99", "answer": {}}], SYSTEM_QUESTIONS_V1)

    def test_incomplete_submission_rejected(self):
        rows = [{"question_id": "TXS_HO_03", "answer": {"boolean": True}}]
        with pytest.raises(ValidationError) as exc:
            responses_to_answers(rows, SYSTEM_QUESTIONS_V1, require_complete=True)
        assert len(exc.value.details["missing"]) == 24

    def test_translated_answers_score(self):
        rows = [
            {"question_id": q.id, "answer": {"boolean": True} if q.answer_type == AnswerType.BOOLEAN
             else {"maturity": "automated"}, "evidence": {"type": "link", "pointer": "https://x"}}
            for q in SYSTEM_QUESTIONS_V1
        ]
        answers = responses_to_answers(rows, SYSTEM_QUESTIONS_V1, require_complete=True)
        assert ScoringEngine().score(answers, "sys").overall_score == 100


class TestLegacyRuns:

    def test_submitted_run(self):
        run = system_run_to_run({
            "id": 17,
            "system_id": "sys-abc",
            "version": 3,
            "status": "submitted",
            "overall_score": 64,
            "dimension_scores": {"Transparency": 70},
            "created_at": "2026-01-02T10:00:00Z",
            "submitted_at": "2026-01-03T10:00:00Z",
        }, organisation_id="org-1")
        assert run.id == "17"
        assert run.run_type == RunType.SYS
        assert run.status == RunStatus.COMPLETED
        assert run.version == 3
        assert run.completed_at.day == 3
        assert run_to_legacy_status(run) == "submitted"

    def test_draft_run(self):
        run = system_run_to_run({"id": "r1", "system_id": "s1", "status": "draft"}, organisation_id="org-1")
        assert run.version == 1
        assert run.completed_at is None
        assert run_to_legacy_status(run) == "draft"

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            system_run_to_run({"id": "r1", "system_id": "s1", "status": "archived"}, organisation_id="org-1")
