"""
Tests for log context.

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.logging import _add_operation_scope, current_scope, operation_scope


class TestOperationScope:

    def test_empty_outside_scope(self):
        assert current_scope() == {}

    def test_scope_is_reset_on_exit(self):
        with operation_scope(organisation_id="org-1", run_id="run-1"):
            assert current_scope() == {"organisation_id": "org-1", "run_id": "run-1"}
        assert current_scope() == {}

    def test_inner_scope_keeps_organisation(self):
        with operation_scope(organisation_id="org-1", run_id="run-1"):
            with operation_scope(run_id="run-2"):
                assert current_scope() == {"organisation_id": "org-1", "run_id": "run-2"}
            assert current_scope()["run_id"] == "run-1"

    def test_processor_does_not_override_explicit_fields(self):
        with operation_scope(organisation_id="org-1", run_id="run-1"):
            event = _add_operation_scope(None, "info", {"event": "x", "organisation_id": "org-2"})
        assert event == {"event": "x", "organisation_id": "org-2", "run_id": "run-1"}
