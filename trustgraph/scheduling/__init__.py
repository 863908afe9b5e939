"""
TrustGraph Scheduling Package
=============================

Reassessment due dates and the expiry / overdue-action sweeps.

This package provides:
    - reassessment: next_due, overdue and state derivation
    - sweeps: selection rules and escalation payloads for both sweeps

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.scheduling.reassessment import (
    PolicyView,
    compute_next_due,
    days_until_due,
    describe_policy,
    is_overdue,
    policy_state,
)
from trustgraph.scheduling.sweeps import SweepResult

__all__ = [
    "PolicyView",
    "SweepResult",
    "compute_next_due",
    "days_until_due",
    "describe_policy",
    "is_overdue",
    "policy_state",
]
