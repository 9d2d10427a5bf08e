"""create kpi status and fact change workflow tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _audit() -> list[sa.Column]:
    return [
        *_timestamps(),
        sa.Column("created_by", sa.String(length=150), nullable=False, server_default="system"),
        sa.Column(
            "last_changed_by", sa.String(length=150), nullable=False, server_default="system"
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    ]


def upgrade() -> None:
    op.create_table(
        "kpis",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        *_audit(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_kpis_code"),
    )
    op.create_index("ix_kpis_is_active", "kpis", ["is_active"], unique=False)

    op.create_table(
        "periods",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month_num", sa.Integer(), nullable=True, comment="1-12 for monthly periods"),
        sa.Column(
            "quarter_num", sa.Integer(), nullable=True, comment="1-4 for quarterly periods"
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "end_date",
            sa.DateTime(timezone=True),
            nullable=True,
            comment="Explicit reporting deadline; derived from year/month/quarter when null",
        ),
        *_audit(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "year", "month_num", "quarter_num", name="uq_periods_year_month_quarter"
        ),
        sa.CheckConstraint(
            "month_num IS NULL OR quarter_num IS NULL",
            name="ck_periods_month_xor_quarter",
        ),
        sa.CheckConstraint(
            "month_num IS NULL OR (month_num BETWEEN 1 AND 12)",
            name="ck_periods_month_range",
        ),
        sa.CheckConstraint(
            "quarter_num IS NULL OR (quarter_num BETWEEN 1 AND 4)",
            name="ck_periods_quarter_range",
        ),
    )
    op.create_index(
        "ix_periods_year_start_date", "periods", ["year", "start_date"], unique=False
    )

    op.create_table(
        "kpi_year_plans",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "period_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Year period this plan covers",
        ),
        sa.Column("frequency", sa.String(length=30), nullable=False, server_default="monthly"),
        sa.Column(
            "target_direction",
            sa.Integer(),
            nullable=True,
            comment="1 ascending-is-better, -1 descending-is-better",
        ),
        sa.Column("owner_id", sa.String(length=150), nullable=True),
        sa.Column("editor_id", sa.String(length=150), nullable=True),
        sa.Column("unit", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("annual_target", sa.Numeric(18, 4), nullable=True),
        sa.Column("annual_budget", sa.Numeric(18, 4), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True),
        *_audit(),
        sa.ForeignKeyConstraint(["kpi_id"], ["kpis.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("kpi_id", "period_id", name="uq_kpi_year_plans_kpi_period"),
    )
    op.create_index(
        "ix_kpi_year_plans_owner_id", "kpi_year_plans", ["owner_id"], unique=False
    )

    op.create_table(
        "kpi_facts",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_year_plan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("period_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actual_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("target_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("forecast_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("budget", sa.Numeric(18, 4), nullable=True),
        sa.Column(
            "status_code",
            sa.String(length=50),
            nullable=True,
            comment="ok, needs_attention, catching_up, data_missing",
        ),
        *_audit(),
        sa.ForeignKeyConstraint(["kpi_id"], ["kpis.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["kpi_year_plan_id"], ["kpi_year_plans.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["period_id"], ["periods.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "kpi_year_plan_id", "period_id", name="uq_kpi_facts_plan_period"
        ),
    )
    op.create_index("ix_kpi_facts_kpi_id", "kpi_facts", ["kpi_id"], unique=False)

    op.create_table(
        "kpi_fact_change_batches",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_year_plan_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("frequency", sa.String(length=30), nullable=False),
        sa.Column("period_min", sa.Integer(), nullable=True),
        sa.Column("period_max", sa.Integer(), nullable=True),
        sa.Column("row_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_by", sa.String(length=150), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "approval_status", sa.String(length=20), nullable=False, server_default="pending"
        ),
        sa.Column("reviewed_by", sa.String(length=150), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reject_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["kpi_id"], ["kpis.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["kpi_year_plan_id"], ["kpi_year_plans.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_kpi_fact_change_batches_plan_year",
        "kpi_fact_change_batches",
        ["kpi_year_plan_id", "year"],
        unique=False,
    )
    op.create_index(
        "ix_kpi_fact_change_batches_approval_status",
        "kpi_fact_change_batches",
        ["approval_status"],
        unique=False,
    )

    op.create_table(
        "kpi_fact_changes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kpi_fact_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("proposed_actual_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("proposed_target_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("proposed_forecast_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("proposed_status_code", sa.String(length=50), nullable=True),
        sa.Column("submitted_by", sa.String(length=150), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "approval_status", sa.String(length=20), nullable=False, server_default="pending"
        ),
        sa.Column("reviewed_by", sa.String(length=150), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reject_reason", sa.Text(), nullable=True),
        sa.Column("batch_id", postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["kpi_fact_id"], ["kpi_facts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["batch_id"], ["kpi_fact_change_batches.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_kpi_fact_changes_one_pending",
        "kpi_fact_changes",
        ["kpi_fact_id"],
        unique=True,
        postgresql_where=sa.text("approval_status = 'pending'"),
    )
    op.create_index(
        "ix_kpi_fact_changes_approval_status",
        "kpi_fact_changes",
        ["approval_status"],
        unique=False,
    )
    op.create_index(
        "ix_kpi_fact_changes_batch_id_status",
        "kpi_fact_changes",
        ["batch_id", "approval_status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_kpi_fact_changes_batch_id_status", table_name="kpi_fact_changes")
    op.drop_index("ix_kpi_fact_changes_approval_status", table_name="kpi_fact_changes")
    op.drop_index("uq_kpi_fact_changes_one_pending", table_name="kpi_fact_changes")
    op.drop_table("kpi_fact_changes")
    op.drop_index(
        "ix_kpi_fact_change_batches_approval_status", table_name="kpi_fact_change_batches"
    )
    op.drop_index("ix_kpi_fact_change_batches_plan_year", table_name="kpi_fact_change_batches")
    op.drop_table("kpi_fact_change_batches")
    op.drop_index("ix_kpi_facts_kpi_id", table_name="kpi_facts")
    op.drop_table("kpi_facts")
    op.drop_index("ix_kpi_year_plans_owner_id", table_name="kpi_year_plans")
    op.drop_table("kpi_year_plans")
    op.drop_index("ix_periods_year_start_date", table_name="periods")
    op.drop_table("periods")
    op.drop_index("ix_kpis_is_active", table_name="kpis")
    op.drop_table("kpis")
