"""Initial study-plan persistence schema."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_01_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "learners",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.Text(), nullable=False, server_default=""),
        sa.Column("level", sa.String(length=16), nullable=False, server_default="beginner"),
        sa.Column("routine", sa.JSON(), nullable=False),
        sa.Column("completed_goal_ids", sa.JSON(), nullable=False),
        sa.Column("completed_review_ids", sa.JSON(), nullable=False),
        sa.Column("total_study_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("plan_study_seconds", sa.JSON(), nullable=False),
        sa.Column("plan_configs", sa.JSON(), nullable=False),
        sa.Column("current_plan_id", sa.String(length=128), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_learners_user_id", "learners", ["user_id"], unique=True)

    op.create_table(
        "study_plans",
        sa.Column("id", sa.String(length=128), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("cycle_system", sa.String(length=16), nullable=False, server_default="rotating"),
        sa.Column("document", sa.JSON(), nullable=False),
    )

    op.create_table(
        "simulados",
        sa.Column("id", sa.String(length=128), primary_key=True, nullable=False),
        *_timestamps(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("total_questions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
    )

    op.create_table(
        "simulado_attempts",
        sa.Column("id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("simulado_id", sa.String(length=128), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_simulado_attempts_user", "simulado_attempts", ["user_id"])

    op.create_table(
        "persistence_audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("learner_id", sa.String(length=36), sa.ForeignKey("learners.id", ondelete="SET NULL"), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("actor", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_persistence_audit_events_learner", "persistence_audit_events", ["learner_id"])


def downgrade() -> None:
    op.drop_index("ix_persistence_audit_events_learner", table_name="persistence_audit_events")
    op.drop_table("persistence_audit_events")
    op.drop_index("ix_simulado_attempts_user", table_name="simulado_attempts")
    op.drop_table("simulado_attempts")
    op.drop_table("simulados")
    op.drop_table("study_plans")
    op.drop_index("ix_learners_user_id", table_name="learners")
    op.drop_table("learners")
