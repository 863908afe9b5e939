"""
TrustGraph Adapters
===================

Boundary translations for legacy data shapes.

Author: TrustGraph Team
Version: 1.0.0
"""

from trustgraph.adapters.legacy import responses_to_answers, system_run_to_run

__all__ = [
    "responses_to_answers",
    "system_run_to_run",
]
