"""TrustGraph schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the tables behind SQLTrustGraphStore:
- tg_runs: Assessment runs, versioned per target
- tg_reassessment_policies: One schedule per (organisation, target, run type)
- tg_drift_events: Append-only drift records
- tg_escalations: Engine and operator escalations
- tg_actions: Remediation actions
- tg_health_snapshots: Latest health snapshot per organisation
- tg_audit_log: Operator audit trail
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # tg_runs table
    # ==========================================================================
    op.create_table(
        "tg_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("organisation_id", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(128), nullable=False),
        sa.Column("run_type", sa.String(8), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("question_set_version", sa.String(16), nullable=False, server_default="v1"),
        sa.Column("answers", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("dimension_scores", postgresql.JSONB(), nullable=True),
        sa.Column("overall_score", sa.Integer(), nullable=True),
        sa.Column("risk_flags", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("drift_from_previous", sa.Float(), nullable=True),
        sa.Column("drift_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("variance_last_3", sa.Float(), nullable=True),
        sa.Column("stability_status", sa.String(16), nullable=False, server_default="provisional"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "organisation_id", "target_id", "run_type", "version",
            name="uq_tg_runs_target_version",
        ),
    )
    op.create_index("ix_tg_runs_org_type_status", "tg_runs", ["organisation_id", "run_type", "status"])

    # ==========================================================================
    # tg_reassessment_policies table
    # ==========================================================================
    op.create_table(
        "tg_reassessment_policies",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("organisation_id", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(128), nullable=False),
        sa.Column("run_type", sa.String(8), nullable=False),
        sa.Column("frequency_days", sa.Integer(), nullable=False),
        sa.Column("last_completed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalated_for_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("organisation_id", "target_id", "run_type", name="uq_tg_policies_target"),
        sa.CheckConstraint("frequency_days >= 1", name="ck_tg_policies_frequency"),
    )
    op.create_index("ix_tg_policies_next_due", "tg_reassessment_policies", ["next_due"])

    # ==========================================================================
    # tg_drift_events table
    # ==========================================================================
    op.create_table(
        "tg_drift_events",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("run_id", sa.String(36), nullable=False),
        sa.Column("previous_run_id", sa.String(36), nullable=True),
        sa.Column("organisation_id", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(128), nullable=False),
        sa.Column("run_type", sa.String(8), nullable=False),
        sa.Column("delta_score", sa.Float(), nullable=False),
        sa.Column("dimension", sa.String(32), nullable=True),
        sa.Column("drift_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tg_drift_events_run_id", "tg_drift_events", ["run_id"])
    op.create_index("ix_tg_drift_org_created", "tg_drift_events", ["organisation_id", "created_at"])

    # ==========================================================================
    # tg_escalations table
    # ==========================================================================
    op.create_table(
        "tg_escalations",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("organisation_id", sa.String(64), nullable=False),
        sa.Column("linked_run_id", sa.String(36), nullable=True),
        sa.Column("linked_run_type", sa.String(8), nullable=True),
        sa.Column("linked_action_id", sa.String(36), nullable=True),
        sa.Column("linked_policy_id", sa.String(36), nullable=True),
        sa.Column("target_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("resolved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(255), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tg_escalations_org_resolved", "tg_escalations", ["organisation_id", "resolved"])
    # At most one unresolved escalation per action
    op.create_index(
        "uq_tg_escalations_open_action",
        "tg_escalations",
        ["linked_action_id"],
        unique=True,
        postgresql_where=sa.text("resolved = false AND linked_action_id IS NOT NULL"),
    )

    # ==========================================================================
    # tg_actions table
    # ==========================================================================
    op.create_table(
        "tg_actions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("organisation_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False, server_default="medium"),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tg_actions_org_status", "tg_actions", ["organisation_id", "status"])

    # ==========================================================================
    # tg_health_snapshots table
    # ==========================================================================
    op.create_table(
        "tg_health_snapshots",
        sa.Column("organisation_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("health_score", sa.Float(), nullable=True),
        sa.Column("base_health", sa.Float(), nullable=True),
        sa.Column("org_base", sa.Float(), nullable=True),
        sa.Column("sys_base", sa.Float(), nullable=True),
        sa.Column("p_rel", sa.Float(), nullable=False, server_default="0"),
        sa.Column("p_act", sa.Float(), nullable=False, server_default="0"),
        sa.Column("p_drift", sa.Float(), nullable=False, server_default="0"),
        sa.Column("p_exp", sa.Float(), nullable=False, server_default="0"),
        sa.Column("open_actions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("overdue_actions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("critical_overdue_actions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("open_escalations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("organisation_id"),
    )

    # ==========================================================================
    # tg_audit_log table
    # ==========================================================================
    op.create_table(
        "tg_audit_log",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("organisation_id", sa.String(64), nullable=True),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("target_type", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(128), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("before", postgresql.JSONB(), nullable=True),
        sa.Column("after", postgresql.JSONB(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("correlation_id", sa.String(64), nullable=True),
        sa.Column("hash", sa.String(64), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tg_audit_target", "tg_audit_log", ["target_type", "target_id"])
    op.create_index("ix_tg_audit_timestamp", "tg_audit_log", ["timestamp"])


def downgrade() -> None:
    op.drop_table("tg_audit_log")
    op.drop_table("tg_health_snapshots")
    op.drop_table("tg_actions")
    op.drop_index("uq_tg_escalations_open_action", table_name="tg_escalations")
    op.drop_table("tg_escalations")
    op.drop_table("tg_drift_events")
    op.drop_table("tg_reassessment_policies")
    op.drop_table("tg_runs")
