"""
Operator Audit Records
======================

Before/after payloads for operator-triggered state changes.

Every escalation resolution, policy create/override and sweep produces
one AuditRecord carrying the actor, a human-supplied reason and a
SHA-256 content hash for tamper evidence. Persisting the trail is the
store's audit sink's job; this module only builds the record.

Author: TrustGraph Team
Version: 1.0.0
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from trustgraph.errors import ValidationError
from trustgraph.logging import get_correlation_id
from trustgraph.models import new_id, utcnow


class AuditAction(str, Enum):
    """Operator actions that are audited."""
    ESCALATION_RESOLVED = "escalation_resolved"
    POLICY_CREATED = "policy_created"
    POLICY_UPDATED = "policy_updated"
    EXPIRY_SWEEP = "expiry_sweep"
    ACTION_SWEEP = "action_sweep"


@dataclass
class AuditRecord:
    """An immutable audit record."""
    actor: str
    action: AuditAction
    target_type: str
    target_id: str
    reason: str
    before: Optional[Dict[str, Any]]
    after: Optional[Dict[str, Any]]
    organisation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    correlation_id: Optional[str] = None
    hash: str = field(default="", init=False)

    def __post_init__(self):
        self.hash = self._calculate_hash()

    def _calculate_hash(self) -> str:
        """Calculate SHA-256 hash of record content."""
        content = json.dumps({
            "id": self.id,
            "actor": self.actor,
            "action": self.action.value,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "organisation_id": self.organisation_id,
            "reason": self.reason,
            "before": self.before,
            "after": self.after,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }, sort_keys=True, default=str)
        return hashlib.sha256(content.encode()).hexdigest()

    def verify(self) -> bool:
        return self.hash == self._calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "actor": self.actor,
            "action": self.action.value,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "organisation_id": self.organisation_id,
            "reason": self.reason,
            "before": self.before,
            "after": self.after,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "hash": self.hash,
        }


def require_reason(reason: Optional[str]) -> str:
    """Operator actions must say why."""
    if reason is None or not str(reason).strip():
        raise ValidationError("A non-empty reason is required", {"field": "reason"})
    return str(reason).strip()


def require_actor(actor: Optional[str]) -> str:
    if actor is None or not str(actor).strip():
        raise ValidationError("An actor identity is required", {"field": "actor"})
    return str(actor).strip()


def build_audit_record(
    actor: str,
    action: AuditAction,
    target_type: str,
    target_id: str,
    reason: str,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    organisation_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> AuditRecord:
    """
    Build an audit record for an operator-triggered change.

    Raises:
        ValidationError: empty actor or reason
    """
    return AuditRecord(
        actor=require_actor(actor),
        action=action,
        target_type=target_type,
        target_id=target_id,
        reason=require_reason(reason),
        before=before,
        after=after,
        organisation_id=organisation_id,
        metadata=metadata or {},
        timestamp=timestamp or utcnow(),
        correlation_id=get_correlation_id() or None,
    )
