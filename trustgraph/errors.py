"""
TrustGraph Error Taxonomy
=========================

Error classes raised by the engine and mapped to HTTP status codes
by the API layer.

Categories:
    - Validation: bad input shape, unknown ids, out-of-range values
    - Not found: unknown run/policy/escalation for the organisation
    - State conflict: the transition has already happened ("already done")
    - Concurrent update: a read went stale before the write (retryable)
    - Dependency: storage unavailable or timed out (retryable)

Degraded data (no scores for an organisation yet) is not an error; the
health aggregator reports it as an explicit "unavailable" snapshot.

Author: TrustGraph Team
Version: 1.0.0
"""

from typing import Any, Dict, Optional


class TrustGraphError(Exception):
    """Base class for all engine errors."""

    code: str = "trustgraph_error"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason)
        self.reason = reason
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "reason": self.reason,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(TrustGraphError):
    """Input rejected before anything was written."""

    code = "validation_error"
    http_status = 422


class NotFoundError(TrustGraphError):
    """Referenced record does not exist for the organisation."""

    code = "not_found"
    http_status = 404


class StateConflictError(TrustGraphError):
    """
    The requested transition has already been applied.

    Callers treat this as a benign no-op where the operation is
    idempotent, and as a 409 conflict elsewhere.
    """

    code = "already_done"
    http_status = 409


class DependencyError(TrustGraphError):
    """Backing store unavailable, timed out, or returned a stale read."""

    code = "dependency_unavailable"
    http_status = 503
    retryable = True


class ConcurrentUpdateError(TrustGraphError):
    """
    Data read before a write changed before the write committed.

    Raised when a run's target history moves while the run is being
    completed; the caller re-reads and tries again.
    """

    code = "concurrent_update"
    http_status = 409
    retryable = True
