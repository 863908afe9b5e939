"""
TrustGraph ORM Models
=====================

Relational tables backing SQLTrustGraphStore.

Tables:
    - tg_runs: assessment runs, one row per (target, run type, version)
    - tg_reassessment_policies: one row per (organisation, target, run type)
    - tg_drift_events: append-only drift records
    - tg_escalations: engine and operator escalations
    - tg_actions: remediation actions mirrored from the action tracker
    - tg_health_snapshots: one derived snapshot per organisation
    - tg_health_recompute_queue: organisations whose snapshot is out of date
    - tg_audit_log: operator audit trail

Author: TrustGraph Team
Version: 1.0.0
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from trustgraph.db.base import Base, TimestampMixin
from trustgraph.models import utcnow


class RunRow(Base, TimestampMixin):
    __tablename__ = "tg_runs"
    __table_args__ = (
        UniqueConstraint("organisation_id", "target_id", "run_type", "version", name="uq_tg_runs_target_version"),
        Index("ix_tg_runs_org_type_status", "organisation_id", "run_type", "status"),
        CheckConstraint("autonomy_level BETWEEN 1 AND 5", name="ck_tg_runs_autonomy_level"),
        CheckConstraint("criticality_level BETWEEN 1 AND 5", name="ck_tg_runs_criticality_level"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organisation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    run_type: Mapped[str] = mapped_column(String(8), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    question_set_version: Mapped[str] = mapped_column(String(16), nullable=False, default="v1")
    answers: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    autonomy_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    criticality_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    dimension_scores: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    overall_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    risk_flags: Mapped[List[Any]] = mapped_column(JSONB, nullable=False, default=list)
    drift_from_previous: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    drift_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    variance_last_3: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    stability_status: Mapped[str] = mapped_column(String(16), nullable=False, default="provisional")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class PolicyRow(Base, TimestampMixin):
    __tablename__ = "tg_reassessment_policies"
    __table_args__ = (
        UniqueConstraint("organisation_id", "target_id", "run_type", name="uq_tg_policies_target"),
        Index("ix_tg_policies_next_due", "next_due"),
        CheckConstraint("frequency_days >= 1", name="ck_tg_policies_frequency"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organisation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    run_type: Mapped[str] = mapped_column(String(8), nullable=False)
    frequency_days: Mapped[int] = mapped_column(Integer, nullable=False)
    last_completed: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    next_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    escalated_for_due: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class DriftEventRow(Base):
    __tablename__ = "tg_drift_events"
    __table_args__ = (
        Index("ix_tg_drift_org_created", "organisation_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    run_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    previous_run_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    organisation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    run_type: Mapped[str] = mapped_column(String(8), nullable=False)
    delta_score: Mapped[float] = mapped_column(Float, nullable=False)
    dimension: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    drift_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class EscalationRow(Base):
    __tablename__ = "tg_escalations"
    __table_args__ = (
        Index("ix_tg_escalations_org_resolved", "organisation_id", "resolved"),
        # At most one unresolved escalation per action
        Index(
            "uq_tg_escalations_open_action",
            "linked_action_id",
            unique=True,
            postgresql_where=text("resolved = false AND linked_action_id IS NOT NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organisation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    linked_run_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    linked_run_type: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    linked_action_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    linked_policy_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    target_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ActionRow(Base):
    __tablename__ = "tg_actions"
    __table_args__ = (
        Index("ix_tg_actions_org_status", "organisation_id", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organisation_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class HealthSnapshotRow(Base):
    __tablename__ = "tg_health_snapshots"

    organisation_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    health_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    base_health: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    org_base: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sys_base: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    p_rel: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    p_act: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    p_drift: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    p_exp: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    open_actions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overdue_actions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    critical_overdue_actions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    open_escalations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class HealthRecomputeRow(Base):
    __tablename__ = "tg_health_recompute_queue"

    organisation_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class AuditLogRow(Base):
    __tablename__ = "tg_audit_log"
    __table_args__ = (
        Index("ix_tg_audit_target", "target_type", "target_id"),
        Index("ix_tg_audit_timestamp", "timestamp"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    organisation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    target_type: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    before: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    after: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    metadata_: Mapped[Dict[str, Any]] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    correlation_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
