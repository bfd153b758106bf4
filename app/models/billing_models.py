"""Seat plan and seat plan change models.

SeatPlan holds the live seat limit of an organization. SeatPlanChange is the
append-only history of upgrades (born ``applied``) and downgrades (born
``scheduled``, flipped to ``applied`` at rollover).
"""
from __future__ import annotations

import datetime as dt
import enum

from sqlalchemy import JSON, CheckConstraint, DateTime, Enum, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base_class import Base
from app.models.profile_models import generate_uuid, utcnow


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class BillingInterval(str, enum.Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SeatPlanStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SeatChangeAction(str, enum.Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"


class SeatChangeStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    APPLIED = "applied"


# Partial index predicate: at most one pending downgrade per organization
_SCHEDULED_DOWNGRADE = text("action = 'downgrade' AND status = 'scheduled'")


class SeatPlan(Base):
    """Purchased broker seats of one organization."""

    __table_args__ = (
        CheckConstraint("seat_limit >= 0", name="ck_seat_plan_seat_limit_non_negative"),
    )

    organization_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    seat_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    billing_cycle_anchor: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    billing_cycle_interval: Mapped[BillingInterval] = mapped_column(
        Enum(BillingInterval, values_callable=_values, native_enum=False),
        default=BillingInterval.MONTHLY,
        nullable=False,
    )
    status: Mapped[SeatPlanStatus] = mapped_column(
        Enum(SeatPlanStatus, values_callable=_values, native_enum=False),
        default=SeatPlanStatus.ACTIVE,
        nullable=False,
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )


class SeatPlanChange(Base):
    """One requested seat-limit change. Immutable except scheduled -> applied."""

    __table_args__ = (
        Index(
            "uq_seat_plan_change_one_scheduled_downgrade",
            "organization_id",
            unique=True,
            sqlite_where=_SCHEDULED_DOWNGRADE,
            postgresql_where=_SCHEDULED_DOWNGRADE,
        ),
        Index("ix_seat_plan_change_due", "status", "action", "effective_at"),
        Index("ix_seat_plan_change_org_created", "organization_id", "created_at"),
        CheckConstraint("old_limit >= 0 AND new_limit >= 0", name="ck_seat_plan_change_limits_non_negative"),
        CheckConstraint(
            "unit_price_cents >= 0 AND prorated_amount_cents >= 0",
            name="ck_seat_plan_change_amounts_non_negative",
        ),
        CheckConstraint(
            "proration_days_remaining >= 0 AND proration_days_remaining <= proration_days_total",
            name="ck_seat_plan_change_proration_days",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    requested_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    action: Mapped[SeatChangeAction] = mapped_column(
        Enum(SeatChangeAction, values_callable=_values, native_enum=False),
        nullable=False,
    )
    status: Mapped[SeatChangeStatus] = mapped_column(
        Enum(SeatChangeStatus, values_callable=_values, native_enum=False),
        nullable=False,
    )
    old_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    new_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False)
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    prorated_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    proration_days_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    proration_days_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    change_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )
