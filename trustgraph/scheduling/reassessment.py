"""
Reassessment Scheduling
=======================

Pure due-date arithmetic for reassessment policies.

State machine per (target, run type):

    no_policy -> scheduled -> {on_time, overdue} -> escalated

    - scheduled: a policy exists but nothing has been completed yet
    - on_time:   next_due is now or later
    - overdue:   next_due < now and the expiry sweep has not acted yet
    - escalated: the expiry sweep raised an escalation for this next_due

Author: TrustGraph Team
Version: 1.0.0
"""

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel

from trustgraph.errors import ValidationError
from trustgraph.models import PolicyState, ReassessmentPolicy, RunType, utcnow


SECONDS_PER_DAY = 86400


def compute_next_due(last_completed: Optional[datetime], frequency_days: int) -> Optional[datetime]:
    """next_due = last_completed + frequency, or None if never completed."""
    if last_completed is None:
        return None
    return last_completed + timedelta(days=frequency_days)


def is_overdue(next_due: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if next_due is None:
        return False
    return next_due < (now or utcnow())


def days_until_due(next_due: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    """Signed whole days until due, rounded up; negative once overdue."""
    if next_due is None:
        return None
    seconds = (next_due - (now or utcnow())).total_seconds()
    return math.ceil(seconds / SECONDS_PER_DAY)


def policy_state(policy: Optional[ReassessmentPolicy], now: Optional[datetime] = None) -> PolicyState:
    if policy is None:
        return PolicyState.NO_POLICY
    if policy.next_due is None:
        return PolicyState.SCHEDULED
    if not is_overdue(policy.next_due, now):
        return PolicyState.ON_TIME
    if policy.escalated_for_due is not None and policy.escalated_for_due == policy.next_due:
        return PolicyState.ESCALATED
    return PolicyState.OVERDUE


def validate_policy_input(
    target_id: Optional[str],
    run_type: Any,
    frequency_days: Any,
) -> RunType:
    """
    Check an upsert request before anything is written.

    Returns:
        The parsed RunType

    Raises:
        ValidationError: missing target, unknown run type, or frequency < 1
    """
    if not target_id or not str(target_id).strip():
        raise ValidationError("target_id is required", {"field": "target_id"})
    try:
        parsed = RunType(run_type)
    except ValueError:
        raise ValidationError(
            f"run_type must be one of: {', '.join(t.value for t in RunType)}",
            {"field": "run_type", "value": str(run_type)},
        )
    if isinstance(frequency_days, bool) or not isinstance(frequency_days, int):
        raise ValidationError("frequency_days must be an integer", {"field": "frequency_days"})
    if frequency_days < 1:
        raise ValidationError(
            "frequency_days must be at least 1",
            {"field": "frequency_days", "value": frequency_days},
        )
    return parsed


def apply_completion(
    policy: ReassessmentPolicy,
    completed_at: datetime,
) -> ReassessmentPolicy:
    """Roll a policy forward after a run of its type completes."""
    return policy.model_copy(update={
        "last_completed": completed_at,
        "next_due": compute_next_due(completed_at, policy.frequency_days),
        "expired_at": None,
        "escalated_for_due": None,
        "updated_at": completed_at,
    })


def policy_after_completion(
    existing: Optional[ReassessmentPolicy],
    organisation_id: str,
    target_id: str,
    run_type: RunType,
    completed_at: datetime,
    default_frequency_days: int,
) -> Tuple[ReassessmentPolicy, bool]:
    """
    Policy state after a completion: created with the default frequency
    on a target's first completion, otherwise rolled forward.

    Returns:
        (policy, created)
    """
    if existing is not None:
        return apply_completion(existing, completed_at), False
    policy = ReassessmentPolicy(
        organisation_id=organisation_id,
        target_id=target_id,
        run_type=run_type,
        frequency_days=default_frequency_days,
        created_at=completed_at,
    )
    return apply_completion(policy, completed_at), True


class PolicyView(BaseModel):
    """A policy together with its derived scheduling state."""
    policy: ReassessmentPolicy
    is_overdue: bool
    days_until_due: Optional[int]
    state: PolicyState

    def to_dict(self) -> Dict[str, Any]:
        data = self.policy.model_dump(mode="json")
        data.update({
            "is_overdue": self.is_overdue,
            "days_until_due": self.days_until_due,
            "state": self.state.value,
        })
        return data


def describe_policy(policy: ReassessmentPolicy, now: Optional[datetime] = None) -> PolicyView:
    now = now or utcnow()
    return PolicyView(
        policy=policy,
        is_overdue=is_overdue(policy.next_due, now),
        days_until_due=days_until_due(policy.next_due, now),
        state=policy_state(policy, now),
    )
