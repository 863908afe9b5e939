"""
Legacy Assessment Adapter
=========================

Translates the legacy ``system_runs`` / ``system_responses`` row shapes
into the canonical Run and Answer models.

Legacy differences:
    - answers are stored as a JSON ``answer`` object ({"maturity": ...}
      or {"boolean": ...}) with evidence in a separate ``evidence`` column
    - the maturity answer type is spelled ``enum_maturity``
    - run status is ``draft`` or ``submitted`` (no in-progress state)
    - targets are keyed by ``system_id``; version labels may be absent

The engine never imports this module; callers translate at the boundary.

Author: TrustGraph Team
Version: 1.0.0
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from trustgraph.errors import ValidationError
from trustgraph.models import Run, RunStatus, RunType
from trustgraph.scoring.models import Answer, AnswerType, Evidence, Question


logger = logging.getLogger(__name__)


LEGACY_ANSWER_TYPES: Dict[str, AnswerType] = {
    "enum_maturity": AnswerType.MATURITY,
    "maturity": AnswerType.MATURITY,
    "boolean": AnswerType.BOOLEAN,
}

LEGACY_RUN_STATUSES: Dict[str, RunStatus] = {
    "draft": RunStatus.DRAFT,
    "in_progress": RunStatus.IN_PROGRESS,
    "submitted": RunStatus.COMPLETED,
    "completed": RunStatus.COMPLETED,
}


def legacy_answer_type(value: str) -> AnswerType:
    try:
        return LEGACY_ANSWER_TYPES[value]
    except KeyError:
        raise ValidationError(f"Unknown legacy answer type: {value!r}")


def legacy_run_status(value: str) -> RunStatus:
    try:
        return LEGACY_RUN_STATUSES[value]
    except KeyError:
        raise ValidationError(f"Unknown legacy run status: {value!r}")


def _parse_evidence(raw: Optional[Mapping[str, Any]]) -> Optional[Evidence]:
    if not raw:
        return None
    try:
        return Evidence.model_validate(dict(raw))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid legacy evidence: {e.errors()[0]['msg']}")


def response_to_answer(row: Mapping[str, Any]) -> Answer:
    """
    Convert one ``system_responses`` row.

    Evidence found in the separate ``evidence`` column wins over any
    evidence embedded in the answer object.
    """
    answer = dict(row.get("answer") or {})
    embedded = answer.pop("evidence", None)
    evidence = _parse_evidence(row.get("evidence") or embedded)
    try:
        return Answer(
            boolean=answer.get("boolean"),
            maturity=answer.get("maturity"),
            evidence=evidence,
        )
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid legacy answer for {row.get('question_id')}: {e.errors()[0]['msg']}",
            {"question_id": row.get("question_id")},
        )


def responses_to_answers(
    rows: Iterable[Mapping[str, Any]],
    questions: Optional[Iterable[Question]] = None,
    require_complete: bool = False,
) -> Dict[str, Answer]:
    """
    Build a canonical answer map from legacy response rows.

    Args:
        rows: ``system_responses`` rows (question_id, answer, evidence)
        questions: Bank used to reject unknown ids and check completeness
        require_complete: Reject the set unless every question is answered,
            matching the legacy submit rule

    Raises:
        ValidationError: unknown question id, malformed answer, or missing
            responses when ``require_complete`` is set
    """
    answers: Dict[str, Answer] = {}
    known = {q.id for q in questions} if questions is not None else None
    for row in rows:
        qid = row.get("question_id")
        if not qid:
            raise ValidationError("Legacy response row without question_id")
        if known is not None and qid not in known:
            raise ValidationError(f"Unknown question id: {qid}", {"question_id": qid})
        answers[qid] = response_to_answer(row)

    if require_complete and known is not None:
        missing = sorted(known - set(answers))
        if missing:
            raise ValidationError(
                f"Missing responses for {len(missing)} question(s)",
                {"missing": missing},
            )
    return answers


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def system_run_to_run(
    row: Mapping[str, Any],
    organisation_id: str,
    answers: Optional[Dict[str, Answer]] = None,
) -> Run:
    """
    Convert one ``system_runs`` row into a canonical sys Run.

    Legacy scores are carried across as-is; they are not recomputed.
    """
    status = legacy_run_status(str(row.get("status", "draft")))
    version = row.get("version") or 1
    created_at = _parse_datetime(row.get("created_at"))
    run = Run(
        id=str(row["id"]),
        organisation_id=organisation_id,
        target_id=str(row["system_id"]),
        run_type=RunType.SYS,
        version=int(version),
        status=status,
        question_set_version=str(row.get("question_set_version") or "v1"),
        answers=answers or {},
        dimension_scores=row.get("dimension_scores"),
        overall_score=row.get("overall_score"),
        completed_at=_parse_datetime(row.get("submitted_at")) if status == RunStatus.COMPLETED else None,
        **({"created_at": created_at} if created_at else {}),
    )
    logger.debug(f"Translated legacy system run {run.id} ({status.value})")
    return run


def run_to_legacy_status(run: Run) -> str:
    return "submitted" if run.status == RunStatus.COMPLETED else "draft"
