"""Common dependencies for authentication and seat billing wiring."""
from typing import Annotated, TypeAlias

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.audit import log_denied
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import TokenExpiredError, TokenValidationError, decode_token
from app.db.session import get_db
from app.services.seat_billing import CycleRolloverReconciler, SeatBillingService, SqlRoleLookup
from app.services.seat_billing.service import storage_guard

DbDep: TypeAlias = Annotated[Session, Depends(get_db)]


def bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[7:].strip() or None


def get_current_user_id(authorization: Annotated[str | None, Header()] = None) -> str:
    """Resolve the acting profile id from the bearer access token."""
    token = bearer_token(authorization)
    if token is None:
        raise AuthenticationError()
    try:
        payload = decode_token(token)
    except TokenExpiredError as exc:
        raise AuthenticationError("Token has expired") from exc
    except TokenValidationError as exc:
        raise AuthenticationError("Invalid token") from exc
    return str(payload["sub"])


CurrentUserDep: TypeAlias = Annotated[str, Depends(get_current_user_id)]


def get_actor_organization_id(current_user_id: CurrentUserDep, db: DbDep) -> str:
    """
    Organization the acting profile belongs to.

    Billing endpoints are always scoped to the caller's own organization;
    a profile with no organization cannot reach them.
    """
    with storage_guard(db, "actor_lookup"):
        organization_id = SqlRoleLookup(db).get_organization_id(current_user_id)
    if not organization_id:
        log_denied("billing.seats", actor_id=current_user_id, reason="no_organization")
        raise AuthorizationError()
    return organization_id


ActorOrganizationDep: TypeAlias = Annotated[str, Depends(get_actor_organization_id)]


def get_seat_billing_service(db: DbDep) -> SeatBillingService:
    return SeatBillingService(db)


def get_rollover_reconciler(db: DbDep) -> CycleRolloverReconciler:
    return CycleRolloverReconciler(db)


SeatBillingServiceDep: TypeAlias = Annotated[SeatBillingService, Depends(get_seat_billing_service)]
RolloverReconcilerDep: TypeAlias = Annotated[CycleRolloverReconciler, Depends(get_rollover_reconciler)]
