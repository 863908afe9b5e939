"""
Expiry and Overdue-Action Sweeps
================================

Selection rules and escalation payloads for the two periodic sweeps:

    - Expiry sweep: every policy whose next_due has passed and that has
      not been escalated for that same next_due gets one ``high``
      escalation, and its target is marked expired.
    - Overdue-action sweep: every active action past its due date, at or
      above the configured severity, and with no unresolved escalation
      linked to it gets one ``critical`` escalation.

Both sweeps are idempotent. The selection here filters already-handled
items, and the store re-checks the same condition inside its write so a
concurrent sweep cannot insert a duplicate.

Author: TrustGraph Team
Version: 1.0.0
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Set

from trustgraph.models import (
    Action,
    Escalation,
    ReassessmentPolicy,
    Severity,
)
from trustgraph.scheduling.reassessment import is_overdue


RUN_TYPE_LABELS = {
    "org": "Organisational survey",
    "sys": "System assessment",
}


@dataclass
class SweepResult:
    """Counts returned by a sweep."""
    expired_count: int = 0
    escalation_count: int = 0
    skipped_count: int = 0

    def to_dict(self):
        return {
            "expired_count": self.expired_count,
            "escalation_count": self.escalation_count,
            "skipped_count": self.skipped_count,
        }


def needs_expiry(policy: ReassessmentPolicy, now: datetime) -> bool:
    if not is_overdue(policy.next_due, now):
        return False
    return policy.escalated_for_due != policy.next_due


def select_expirable(policies: Iterable[ReassessmentPolicy], now: datetime) -> List[ReassessmentPolicy]:
    return [p for p in policies if needs_expiry(p, now)]


def expiry_reason(policy: ReassessmentPolicy) -> str:
    label = RUN_TYPE_LABELS.get(policy.run_type.value, policy.run_type.value)
    return (
        f"{label} for {policy.target_id} is overdue for reassessment "
        f"(policy: every {policy.frequency_days} days)"
    )


def build_expiry_escalation(policy: ReassessmentPolicy, now: datetime) -> Escalation:
    return Escalation(
        organisation_id=policy.organisation_id,
        linked_run_type=policy.run_type,
        linked_policy_id=policy.id,
        target_id=policy.target_id,
        reason=expiry_reason(policy),
        severity=Severity.HIGH,
        created_at=now,
    )


def mark_expired(policy: ReassessmentPolicy, now: datetime) -> ReassessmentPolicy:
    return policy.model_copy(update={
        "expired_at": now,
        "escalated_for_due": policy.next_due,
        "updated_at": now,
    })


def action_is_escalatable(
    action: Action,
    now: datetime,
    min_severity: Severity,
) -> bool:
    if not action.is_active or action.due_date is None:
        return False
    if action.due_date >= now:
        return False
    return action.severity.rank >= min_severity.rank


def select_escalatable_actions(
    actions: Iterable[Action],
    now: datetime,
    min_severity: Severity,
    already_escalated: Optional[Set[str]] = None,
) -> List[Action]:
    escalated = already_escalated or set()
    return [
        a for a in actions
        if action_is_escalatable(a, now, min_severity) and a.id not in escalated
    ]


def action_reason(action: Action) -> str:
    due = action.due_date.strftime("%d %b %Y") if action.due_date else "no date"
    label = action.severity.value.capitalize()
    return f'{label} action overdue: "{action.title}" (due {due})'


def build_action_escalation(action: Action, now: datetime) -> Escalation:
    return Escalation(
        organisation_id=action.organisation_id,
        linked_action_id=action.id,
        reason=action_reason(action),
        severity=Severity.CRITICAL,
        created_at=now,
    )
