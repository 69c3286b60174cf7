"""journal entries, per-entry analyses and credit metering

Revision ID: 20261002_journal_billing
Revises: 20261001_core_initial
Create Date: 2026-10-02
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261002_journal_billing"
down_revision = "20261001_core_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "journal_entry",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False, index=True),
        sa.Column("title", sa.String(length=255)),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("mood", sa.String(length=64)),
        sa.Column("tags", sa.JSON()),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_journal_entry_user_entry_date", "journal_entry", ["user_id", "entry_date"])
    op.create_index("ix_journal_entry_user_deleted", "journal_entry", ["user_id", "is_deleted"])
    op.create_table(
        "entry_analysis",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "entry_id",
            sa.Integer(),
            sa.ForeignKey("journal_entry.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("themes", sa.JSON()),
        sa.Column("emotions", sa.JSON()),
        sa.Column("symbols", sa.JSON()),
        sa.Column("analysis_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("recommendations", sa.Text()),
        sa.Column("reflection_questions", sa.JSON()),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "subscription_plan",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("ai_credits_monthly", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_table(
        "credit_balance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False, unique=True),
        sa.Column("plan_id", sa.Integer(), sa.ForeignKey("subscription_plan.id")),
        sa.Column("credits_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credits_used_this_period", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reset_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("credits_remaining >= 0", name="ck_credit_balance_remaining_non_negative"),
    )
    op.create_table(
        "usage_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False, index=True),
        sa.Column("action_kind", sa.String(length=64), nullable=False),
        sa.Column("credits_charged", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=128), unique=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_usage_log_user_created_at", "usage_log", ["user_id", "created_at"])
    op.create_table(
        "billing_event",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(length=255), nullable=False, unique=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), index=True),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("processed_at", sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table("billing_event")
    op.drop_index("ix_usage_log_user_created_at", table_name="usage_log")
    op.drop_table("usage_log")
    op.drop_table("credit_balance")
    op.drop_table("subscription_plan")
    op.drop_table("entry_analysis")
    op.drop_index("ix_journal_entry_user_deleted", table_name="journal_entry")
    op.drop_index("ix_journal_entry_user_entry_date", table_name="journal_entry")
    op.drop_table("journal_entry")
