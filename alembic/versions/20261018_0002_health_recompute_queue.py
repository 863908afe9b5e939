"""Health recompute queue and system risk levels

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18

Adds:
- tg_runs.autonomy_level / criticality_level: weights of a system run in sys_base
- tg_health_recompute_queue: organisations whose health snapshot is out of date
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("tg_runs", sa.Column("autonomy_level", sa.Integer(), nullable=True))
    op.add_column("tg_runs", sa.Column("criticality_level", sa.Integer(), nullable=True))
    op.create_check_constraint(
        "ck_tg_runs_autonomy_level", "tg_runs", "autonomy_level BETWEEN 1 AND 5"
    )
    op.create_check_constraint(
        "ck_tg_runs_criticality_level", "tg_runs", "criticality_level BETWEEN 1 AND 5"
    )

    # ==========================================================================
    # tg_health_recompute_queue table
    # ==========================================================================
    op.create_table(
        "tg_health_recompute_queue",
        sa.Column("organisation_id", sa.String(64), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("organisation_id"),
    )


def downgrade() -> None:
    op.drop_table("tg_health_recompute_queue")
    op.drop_constraint("ck_tg_runs_criticality_level", "tg_runs", type_="check")
    op.drop_constraint("ck_tg_runs_autonomy_level", "tg_runs", type_="check")
    op.drop_column("tg_runs", "criticality_level")
    op.drop_column("tg_runs", "autonomy_level")
