"""API routes for broker seat billing."""

import hmac
from typing import Annotated

from fastapi import APIRouter, Body, Header, Request

from app.api.dependencies import (
    ActorOrganizationDep,
    CurrentUserDep,
    DbDep,
    RolloverReconcilerDep,
    SeatBillingServiceDep,
    bearer_token,
    get_actor_organization_id,
    get_current_user_id,
)
from app.api.rate_limit import RATE_LIMITS, limiter
from app.core.audit import log_denied
from app.core.config import settings
from app.core.exceptions import AuthorizationError
from app.models import billing_schemas as schemas
from app.services.seat_billing import SqlRoleLookup
from app.services.seat_billing.service import authorize_billing_manager, storage_guard

router = APIRouter(tags=["billing"])


@router.get("/settings/billing/seats", response_model=schemas.BillingStateOut)
def get_seat_billing(
    current_user_id: CurrentUserDep,
    organization_id: ActorOrganizationDep,
    svc: SeatBillingServiceDep,
):
    """Current plan, usage, billing cycle, pending downgrade and recent changes."""
    state = svc.get_billing_state(organization_id, current_user_id)
    return schemas.BillingStateOut.model_validate(state)


@router.post("/settings/billing/seats", response_model=schemas.SeatChangeOut)
@limiter.limit(RATE_LIMITS["seat_change"])
def change_seat_limit(
    request: Request,
    payload: schemas.SeatChangeRequest,
    current_user_id: CurrentUserDep,
    organization_id: ActorOrganizationDep,
    svc: SeatBillingServiceDep,
):
    """Upgrade applies now with a prorated charge; downgrade waits for the cycle end."""
    outcome = svc.request_change(
        organization_id,
        current_user_id,
        action=payload.action,
        new_limit=payload.new_limit,
        unit_price_cents=payload.unit_price_cents,
        currency_code=payload.currency_code,
        notes=payload.notes,
    )
    return schemas.SeatChangeOut(
        change=schemas.SeatPlanChangeOut.model_validate(outcome.change),
        mode=outcome.mode,
        usage_snapshot=schemas.SeatUsageOut.model_validate(outcome.usage),
    )


def _is_cron_secret(token: str | None) -> bool:
    secret = settings.BILLING_SEATS_CRON_SECRET
    if not secret or not token:
        return False
    return hmac.compare_digest(token.encode(), secret.encode())


@router.post("/jobs/billing/seats/apply-due", response_model=schemas.ApplyDueOut)
@limiter.limit(RATE_LIMITS["seat_apply_due"])
def apply_due_seat_downgrades(
    request: Request,
    db: DbDep,
    reconciler: RolloverReconcilerDep,
    payload: Annotated[schemas.ApplyDueRequest | None, Body()] = None,
    authorization: Annotated[str | None, Header()] = None,
):
    """
    Apply scheduled downgrades whose effective time has passed.

    Called by the scheduler with the cron secret as bearer token (any
    organization), or by an owner/manager for their own organization.
    """
    payload = payload or schemas.ApplyDueRequest()
    organization_id = payload.organization_id

    if not _is_cron_secret(bearer_token(authorization)):
        actor_id = get_current_user_id(authorization)
        own_organization_id = get_actor_organization_id(actor_id, db)
        if organization_id and organization_id != own_organization_id:
            log_denied("billing.seats.apply_due", organization_id=organization_id, actor_id=actor_id, reason="organization")
            raise AuthorizationError()
        authorize_billing_manager(db, SqlRoleLookup(db), own_organization_id, actor_id, "billing.seats.apply_due")
        organization_id = own_organization_id

    with storage_guard(db, "seat_rollover"):
        result = reconciler.apply_due(organization_id=organization_id, limit=payload.limit)
    return schemas.ApplyDueOut(result=schemas.RolloverResultOut.model_validate(result))
