"""Goal plan schema: goals, objectives, key results and the action log."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "goals",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("progress_percentage", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "status IN ('active', 'completed', 'archived', 'paused')",
            name="ck_goals_status",
        ),
    )
    op.create_index("ix_goals_user_id", "goals", ["user_id"], unique=False)

    op.create_table(
        "yearly_objectives",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("goal_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("target_year", sa.Integer(), nullable=False),
        sa.Column("objective", sa.Text(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("progress_percentage", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("goal_id", "target_year", name="uq_yearly_objectives_goal_year"),
    )
    op.create_index("ix_yearly_objectives_goal_id", "yearly_objectives", ["goal_id"], unique=False)

    op.create_table(
        "quarterly_objectives",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("yearly_objective_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("target_year", sa.Integer(), nullable=False),
        sa.Column("target_quarter", sa.Integer(), nullable=False),
        sa.Column("objective", sa.Text(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("progress_percentage", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["yearly_objective_id"], ["yearly_objectives.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "yearly_objective_id",
            "target_quarter",
            name="uq_quarterly_objectives_yearly_quarter",
        ),
        sa.CheckConstraint("target_quarter BETWEEN 1 AND 4", name="ck_quarterly_objectives_quarter_range"),
    )
    op.create_index(
        "ix_quarterly_objectives_yearly_objective_id",
        "quarterly_objectives",
        ["yearly_objective_id"],
        unique=False,
    )

    op.create_table(
        "key_results",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("yearly_objective_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("quarterly_objective_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("target_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("current_value", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("unit", sa.String(length=50), nullable=True),
        sa.Column("achievement_rate", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["yearly_objective_id"], ["yearly_objectives.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["quarterly_objective_id"], ["quarterly_objectives.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "(yearly_objective_id IS NOT NULL AND quarterly_objective_id IS NULL) OR "
            "(yearly_objective_id IS NULL AND quarterly_objective_id IS NOT NULL)",
            name="ck_key_results_single_parent",
        ),
        sa.CheckConstraint("target_value > 0", name="ck_key_results_target_positive"),
    )
    op.create_index("ix_key_results_yearly_objective_id", "key_results", ["yearly_objective_id"], unique=False)
    op.create_index("ix_key_results_quarterly_objective_id", "key_results", ["quarterly_objective_id"], unique=False)

    op.create_table(
        "plan_action_log",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("goal_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action_type", sa.Text(), nullable=False),
        sa.Column(
            "action_payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("request_id", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["goal_id"], ["goals.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_plan_action_log_goal_id", "plan_action_log", ["goal_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_plan_action_log_goal_id", table_name="plan_action_log")
    op.drop_table("plan_action_log")
    op.drop_index("ix_key_results_quarterly_objective_id", table_name="key_results")
    op.drop_index("ix_key_results_yearly_objective_id", table_name="key_results")
    op.drop_table("key_results")
    op.drop_index("ix_quarterly_objectives_yearly_objective_id", table_name="quarterly_objectives")
    op.drop_table("quarterly_objectives")
    op.drop_index("ix_yearly_objectives_goal_id", table_name="yearly_objectives")
    op.drop_table("yearly_objectives")
    op.drop_index("ix_goals_user_id", table_name="goals")
    op.drop_table("goals")
    op.drop_table("users")
