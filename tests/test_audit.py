"""
Tests for audit records.

Author: TrustGraph Team
Version: 1.0.0
"""

import pytest

from trustgraph.audit import AuditAction, build_audit_record, require_actor, require_reason
from trustgraph.errors import ValidationError
from trustgraph.logging import set_correlation_id

from tests.fixtures import FIXED_NOW


class TestAuditRecord:

    def test_record_is_hashed(self):
        record = build_audit_record(
            actor="ops",
            action=AuditAction.POLICY_UPDATED,
            target_type="reassessment_policy",
            target_id="p-1",
            reason="Tighter cadence",
            before={"frequency_days": 90},
            after={"frequency_days": 30},
            organisation_id="org-1",
            timestamp=FIXED_NOW,
        )
        assert len(record.hash) == 64
        assert record.verify()
        assert record.to_dict()["action"] == "policy_updated"

    def test_tampering_breaks_hash(self):
        record = build_audit_record(
            actor="ops",
            action=AuditAction.ESCALATION_RESOLVED,
            target_type="escalation",
            target_id="e-1",
            reason="fixed",
            timestamp=FIXED_NOW,
        )
        record.after = {"resolved": False}
        assert not record.verify()

    def test_correlation_id_attached(self):
        set_correlation_id("req-77")
        record = build_audit_record(
            actor="ops", action=AuditAction.EXPIRY_SWEEP, target_type="reassessment_policy",
            target_id="p-1", reason="nightly",
        )
        assert record.correlation_id == "req-77"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_reason_and_actor_required(self, value):
        with pytest.raises(ValidationError):
            require_reason(value)
        with pytest.raises(ValidationError):
            require_actor(value)

    def test_values_trimmed(self):
        assert require_reason("  because  ") == "because"
