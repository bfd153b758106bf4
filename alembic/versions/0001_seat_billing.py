from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "0001_seat_billing"
down_revision = None
branch_labels = None
depends_on = None

_SCHEDULED_DOWNGRADE = sa.text("action = 'downgrade' AND status = 'scheduled'")


def upgrade() -> None:
    op.create_table(
        "profile",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=9), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    )
    op.create_index("ix_profile_organization_id", "profile", ["organization_id"])
    op.create_index("ix_profile_org_role_status", "profile", ["organization_id", "role", "status"])

    op.create_table(
        "seat_plan",
        sa.Column("organization_id", sa.String(length=36), primary_key=True),
        sa.Column("seat_limit", sa.Integer(), nullable=False),
        sa.Column("billing_cycle_anchor", sa.DateTime(timezone=True), nullable=False),
        sa.Column("billing_cycle_interval", sa.String(length=7), nullable=False),
        sa.Column("status", sa.String(length=8), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint("seat_limit >= 0", name="ck_seat_plan_seat_limit_non_negative"),
    )

    op.create_table(
        "seat_plan_change",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("organization_id", sa.String(length=36), nullable=False),
        sa.Column("requested_by", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=9), nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("old_limit", sa.Integer(), nullable=False),
        sa.Column("new_limit", sa.Integer(), nullable=False),
        sa.Column("effective_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("prorated_amount_cents", sa.Integer(), nullable=False),
        sa.Column("proration_days_total", sa.Integer(), nullable=False),
        sa.Column("proration_days_remaining", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint("old_limit >= 0 AND new_limit >= 0", name="ck_seat_plan_change_limits_non_negative"),
        sa.CheckConstraint(
            "unit_price_cents >= 0 AND prorated_amount_cents >= 0",
            name="ck_seat_plan_change_amounts_non_negative",
        ),
        sa.CheckConstraint(
            "proration_days_remaining >= 0 AND proration_days_remaining <= proration_days_total",
            name="ck_seat_plan_change_proration_days",
        ),
    )
    op.create_index("ix_seat_plan_change_organization_id", "seat_plan_change", ["organization_id"])
    op.create_index("ix_seat_plan_change_due", "seat_plan_change", ["status", "action", "effective_at"])
    op.create_index("ix_seat_plan_change_org_created", "seat_plan_change", ["organization_id", "created_at"])
    op.create_index(
        "uq_seat_plan_change_one_scheduled_downgrade",
        "seat_plan_change",
        ["organization_id"],
        unique=True,
        sqlite_where=_SCHEDULED_DOWNGRADE,
        postgresql_where=_SCHEDULED_DOWNGRADE,
    )


def downgrade() -> None:
    op.drop_index("uq_seat_plan_change_one_scheduled_downgrade", table_name="seat_plan_change")
    op.drop_index("ix_seat_plan_change_org_created", table_name="seat_plan_change")
    op.drop_index("ix_seat_plan_change_due", table_name="seat_plan_change")
    op.drop_index("ix_seat_plan_change_organization_id", table_name="seat_plan_change")
    op.drop_table("seat_plan_change")
    op.drop_table("seat_plan")
    op.drop_index("ix_profile_org_role_status", table_name="profile")
    op.drop_index("ix_profile_organization_id", table_name="profile")
    op.drop_table("profile")
