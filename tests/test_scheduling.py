"""
Tests for reassessment scheduling and sweeps.

Author: TrustGraph Team
Version: 1.0.0
"""

import asyncio
from datetime import timedelta

import pytest

from trustgraph.errors import ValidationError
from trustgraph.models import (
    Action,
    ActionStatus,
    PolicyState,
    ReassessmentPolicy,
    RunType,
    Severity,
)
from trustgraph.scheduling.reassessment import (
    compute_next_due,
    days_until_due,
    describe_policy,
    is_overdue,
    policy_after_completion,
    policy_state,
    validate_policy_input,
)
from trustgraph.scheduling.sweeps import (
    action_reason,
    build_expiry_escalation,
    expiry_reason,
    mark_expired,
    needs_expiry,
)

from tests.fixtures import FIXED_NOW


def _policy(next_due_offset_days=None, **kwargs):
    next_due = FIXED_NOW + timedelta(days=next_due_offset_days) if next_due_offset_days is not None else None
    defaults = dict(
        organisation_id="org-1",
        target_id="sys-1",
        run_type=RunType.SYS,
        frequency_days=90,
        last_completed=next_due - timedelta(days=90) if next_due else None,
        next_due=next_due,
    )
    defaults.update(kwargs)
    return ReassessmentPolicy(**defaults)


class TestDueDates:
    """next_due, overdue and day counts."""

    def test_next_due(self):
        assert compute_next_due(FIXED_NOW, 30) == FIXED_NOW + timedelta(days=30)
        assert compute_next_due(None, 30) is None

    def test_is_overdue(self):
        assert is_overdue(FIXED_NOW - timedelta(seconds=1), FIXED_NOW) is True
        assert is_overdue(FIXED_NOW, FIXED_NOW) is False
        assert is_overdue(None, FIXED_NOW) is False

    def test_days_until_due_rounds_up(self):
        assert days_until_due(FIXED_NOW + timedelta(days=1, hours=12), FIXED_NOW) == 2
        assert days_until_due(FIXED_NOW + timedelta(days=3), FIXED_NOW) == 3

    def test_days_until_due_is_negative_when_overdue(self):
        assert days_until_due(FIXED_NOW - timedelta(days=2, hours=12), FIXED_NOW) == -2
        assert days_until_due(FIXED_NOW - timedelta(days=3), FIXED_NOW) == -3

    def test_policy_states(self):
        assert policy_state(None, FIXED_NOW) == PolicyState.NO_POLICY
        assert policy_state(_policy(), FIXED_NOW) == PolicyState.SCHEDULED
        assert policy_state(_policy(5), FIXED_NOW) == PolicyState.ON_TIME
        overdue = _policy(-5)
        assert policy_state(overdue, FIXED_NOW) == PolicyState.OVERDUE
        assert policy_state(mark_expired(overdue, FIXED_NOW), FIXED_NOW) == PolicyState.ESCALATED

    def test_describe_policy(self):
        view = describe_policy(_policy(-1), FIXED_NOW)
        data = view.to_dict()
        assert data["is_overdue"] is True
        assert data["days_until_due"] == -1
        assert data["state"] == "overdue"


class TestPolicyInput:
    """Validation before any write."""

    def test_valid(self):
        assert validate_policy_input("sys-1", "sys", 30) == RunType.SYS

    @pytest.mark.parametrize("target,run_type,freq", [
        ("", "sys", 30),
        ("sys-1", "weekly", 30),
        ("sys-1", "org", 0),
        ("sys-1", "org", "30"),
        ("sys-1", "org", True),
    ])
    def test_invalid(self, target, run_type, freq):
        with pytest.raises(ValidationError):
            validate_policy_input(target, run_type, freq)


class TestCompletionRollForward:
    """Policy changes driven by a completed run."""

    def test_first_completion_creates_policy(self):
        policy, created = policy_after_completion(None, "org-1", "sys-1", RunType.SYS, FIXED_NOW, 90)
        assert created is True
        assert policy.frequency_days == 90
        assert policy.next_due == FIXED_NOW + timedelta(days=90)

    def test_completion_clears_expiry(self):
        expired = mark_expired(_policy(-5, frequency_days=30), FIXED_NOW)
        policy, created = policy_after_completion(expired, "org-1", "sys-1", RunType.SYS, FIXED_NOW, 90)
        assert created is False
        assert policy.frequency_days == 30
        assert policy.expired_at is None
        assert policy.escalated_for_due is None
        assert policy.next_due == FIXED_NOW + timedelta(days=30)


class TestSweepHelpers:
    """Pure expiry and action escalation helpers."""

    def test_needs_expiry_once_per_due_date(self):
        overdue = _policy(-1)
        assert needs_expiry(overdue, FIXED_NOW) is True
        assert needs_expiry(mark_expired(overdue, FIXED_NOW), FIXED_NOW) is False

    def test_expiry_reason(self):
        assert expiry_reason(_policy(-1)) == (
            "System assessment for sys-1 is overdue for reassessment (policy: every 90 days)"
        )

    def test_expiry_escalation(self):
        policy = _policy(-1)
        esc = build_expiry_escalation(policy, FIXED_NOW)
        assert esc.severity == Severity.HIGH
        assert esc.linked_policy_id == policy.id

    def test_action_reason(self):
        action = Action(
            organisation_id="org-1",
            title="Rotate keys",
            severity=Severity.CRITICAL,
            due_date=FIXED_NOW - timedelta(days=3),
        )
        assert action_reason(action) == 'Critical action overdue: "Rotate keys" (due 15 Oct 2026)'


class TestSweeps:
    """Service sweeps against the in-memory store."""

    async def test_expiry_sweep_is_idempotent(self, service, store):
        await store.save_policy(_policy(-1))
        first = await service.sweep_expiry()
        second = await service.sweep_expiry()
        assert first.expired_count == 1
        assert first.escalation_count == 1
        assert second.expired_count == 0
        assert second.escalation_count == 0
        escalations = await store.list_escalations("org-1")
        assert len(escalations) == 1
        assert len(store.audit_log) == 1
        assert store.audit_log[0].target_type == "reassessment_policy"
        assert store.audit_log[0].after["escalated_for_due"] is not None
        assert store.audit_log[0].metadata == {"escalation_id": escalations[0].id}

    async def test_concurrent_expiry_sweeps_escalate_once(self, service, store):
        await store.save_policy(_policy(-1))
        results = await asyncio.gather(service.sweep_expiry(), service.sweep_expiry())
        assert sum(r.escalation_count for r in results) == 1
        assert len(await store.list_escalations("org-1")) == 1

    async def test_policy_not_yet_due_is_untouched(self, service, store):
        await store.save_policy(_policy(10))
        result = await service.sweep_expiry()
        assert result.expired_count == 0

    async def test_completion_then_new_due_date_escalates_again(self, service, store, clock):
        await store.save_policy(_policy(-1))
        await service.sweep_expiry()
        policy = await store.get_policy("org-1", "sys-1", RunType.SYS)
        policy, _ = policy_after_completion(policy, "org-1", "sys-1", RunType.SYS, FIXED_NOW, 90)
        await store.save_policy(policy)
        clock.advance(days=91)
        assert (await service.sweep_expiry()).expired_count == 1

    async def test_overdue_critical_actions_escalated_once(self, service, store):
        action = await store.save_action(Action(
            organisation_id="org-1",
            title="Patch sandbox",
            severity=Severity.CRITICAL,
            due_date=FIXED_NOW - timedelta(days=1),
        ))
        first = await service.sweep_overdue_actions()
        second = await service.sweep_overdue_actions()
        assert first.escalation_count == 1
        assert second.escalation_count == 0
        assert second.skipped_count == 1
        escalations = await store.list_escalations("org-1")
        assert escalations[0].severity == Severity.CRITICAL
        assert [(r.target_type, r.target_id) for r in store.audit_log] == [("action", action.id)]

    async def test_non_critical_or_closed_actions_ignored(self, service, store):
        await store.save_action(Action(
            organisation_id="org-1",
            title="Update docs",
            severity=Severity.MEDIUM,
            due_date=FIXED_NOW - timedelta(days=1),
        ))
        await store.save_action(Action(
            organisation_id="org-1",
            title="Done already",
            severity=Severity.CRITICAL,
            status=ActionStatus.DONE,
            due_date=FIXED_NOW - timedelta(days=1),
        ))
        result = await service.sweep_overdue_actions()
        assert result.escalation_count == 0

    async def test_sweep_requires_reason(self, service):
        with pytest.raises(ValidationError):
            await service.sweep_expiry(reason="  ")
