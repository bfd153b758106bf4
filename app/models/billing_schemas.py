"""Pydantic schemas for seat billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, AliasChoices, BaseModel, Field

from app.models.billing_models import BillingInterval, SeatChangeAction, SeatChangeStatus, SeatPlanStatus
from app.services.seat_billing.cycle import ensure_utc

# SQLite hands back naive datetimes; everything we store is UTC.
UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]


# ============================================================================
# Requests
# ============================================================================

class SeatChangeRequest(BaseModel):
    """Body of POST /settings/billing/seats.

    Range checks live in SeatPlanChangeValidator so every rejection carries the
    same reason codes whether it comes from HTTP or from a direct service call.
    """
    action: Literal["upgrade", "downgrade"]
    new_limit: int = Field(..., strict=True)
    unit_price_cents: int = Field(0, strict=True)
    currency_code: str | None = Field(None, max_length=8)
    notes: str | None = Field(None, max_length=2000)


class ApplyDueRequest(BaseModel):
    """Body of POST /jobs/billing/seats/apply-due."""
    limit: int | None = None
    organization_id: str | None = None


# ============================================================================
# Responses
# ============================================================================

class SeatPlanOut(BaseModel):
    organization_id: str
    seat_limit: int
    billing_cycle_anchor: UtcDatetime
    billing_cycle_interval: BillingInterval
    status: SeatPlanStatus

    model_config = {"from_attributes": True}


class SeatPlanChangeOut(BaseModel):
    id: str
    organization_id: str
    requested_by: str | None = None
    action: SeatChangeAction
    status: SeatChangeStatus
    old_limit: int
    new_limit: int
    effective_at: UtcDatetime
    currency_code: str
    unit_price_cents: int
    prorated_amount_cents: int
    proration_days_total: int
    proration_days_remaining: int
    notes: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("change_metadata", "metadata"),
    )
    created_at: UtcDatetime

    model_config = {"from_attributes": True}


class SeatUsageOut(BaseModel):
    used: int
    seat_limit: int
    available: int

    model_config = {"from_attributes": True}


class BillingCycleOut(BaseModel):
    start: UtcDatetime
    end: UtcDatetime
    interval: BillingInterval
    total_days: int
    remaining_days: int

    model_config = {"from_attributes": True}


class SeatCapacityAlertOut(BaseModel):
    level: Literal["warning", "limit"]
    threshold: int
    message: str

    model_config = {"from_attributes": True}


class BillingStateOut(BaseModel):
    ok: bool = True
    plan: SeatPlanOut
    usage: SeatUsageOut
    cycle: BillingCycleOut
    pending_change: SeatPlanChangeOut | None = None
    history: list[SeatPlanChangeOut]
    capacity_alert: SeatCapacityAlertOut | None = None

    model_config = {"from_attributes": True}


class SeatChangeOut(BaseModel):
    ok: bool = True
    change: SeatPlanChangeOut
    mode: Literal["upgrade_applied", "downgrade_scheduled"]
    usage_snapshot: SeatUsageOut


class RolloverResultOut(BaseModel):
    scanned: int
    applied: int
    blocked: int
    failed: int

    model_config = {"from_attributes": True}


class ApplyDueOut(BaseModel):
    ok: bool = True
    result: RolloverResultOut
