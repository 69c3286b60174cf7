"""aggregate pattern reports and the current-report index

Revision ID: 20261003_patterns_aggregate
Revises: 20261002_journal_billing
Create Date: 2026-10-03
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "20261003_patterns_aggregate"
down_revision = "20261002_journal_billing"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "aggregate_analysis",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), nullable=False, index=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("entries_covered", sa.Integer(), nullable=False),
        sa.Column("latest_source_date", sa.Date(), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
        sa.Column("credits_cost", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "ix_aggregate_analysis_user_created_at",
        "aggregate_analysis",
        ["user_id", "created_at"],
    )
    op.create_table(
        "aggregate_analysis_current",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id"), primary_key=True),
        sa.Column(
            "aggregate_id",
            sa.Integer(),
            sa.ForeignKey("aggregate_analysis.id"),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table("aggregate_analysis_current")
    op.drop_index("ix_aggregate_analysis_user_created_at", table_name="aggregate_analysis")
    op.drop_table("aggregate_analysis")
