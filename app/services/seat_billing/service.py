"""Seat billing orchestration.

Every mutating operation is one unit of work on the request's session:

1. authorize the actor (owner/manager) before touching billing state
2. lock and load the plan, read usage
3. validate, compute the cycle (and proration for upgrades)
4. write and commit once; any failure rolls the whole unit back
5. emit the audit event after the commit

Per-organization serialization relies on storage: ``FOR UPDATE`` on the plan
row (PostgreSQL), a compare-and-set on ``seat_limit`` for upgrades and the
partial unique index on scheduled downgrades.

Usage is read once per request. A broker activated after a downgrade was
scheduled is caught when the rollover re-validates usage.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app import metrics
from app.core.audit import AuditSink, log_audit_event, log_denied
from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    DowngradeAlreadyScheduledError,
    NotFoundError,
    SeatBillingException,
    StateConflictError,
    StorageError,
    StorageUnavailableError,
)
from app.models.billing_models import (
    SeatChangeAction,
    SeatChangeStatus,
    SeatPlan,
    SeatPlanChange,
    SeatPlanStatus,
)
from app.models.profile_models import BILLING_MANAGER_ROLES, utcnow
from app.services.seat_billing.cycle import BillingCycle, compute_billing_cycle, ensure_utc
from app.services.seat_billing.proration import calculate_upgrade_proration
from app.services.seat_billing.usage import (
    RoleLookup,
    SeatCapacityAlert,
    SeatUsageProvider,
    SeatUsageSnapshot,
    SqlRoleLookup,
    SqlSeatUsageProvider,
    get_seat_capacity_alert,
)
from app.services.seat_billing.validator import SeatPlanChangeValidator, normalize_currency

logger = logging.getLogger(__name__)

_BILLING_MANAGER_ROLE_VALUES = frozenset(role.value for role in BILLING_MANAGER_ROLES)


@dataclass(frozen=True)
class BillingState:
    plan: SeatPlan
    usage: SeatUsageSnapshot
    cycle: BillingCycle
    pending_change: SeatPlanChange | None
    history: list[SeatPlanChange]
    capacity_alert: SeatCapacityAlert | None


@dataclass(frozen=True)
class SeatChangeOutcome:
    change: SeatPlanChange
    mode: str  # "upgrade_applied" | "downgrade_scheduled"
    usage: SeatUsageSnapshot


@contextmanager
def storage_guard(db: Session, operation: str) -> Iterator[None]:
    """Roll back and translate storage failures for one unit of work."""
    try:
        yield
    except SeatBillingException:
        db.rollback()
        raise
    except (OperationalError, PoolTimeoutError) as exc:
        db.rollback()
        logger.exception("Storage unavailable during %s", operation)
        raise StorageUnavailableError(operation) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage failure during %s", operation)
        raise StorageError(operation) from exc


def authorize_billing_manager(
    db: Session,
    role_lookup: RoleLookup,
    organization_id: str,
    actor_id: str,
    action: str,
) -> str:
    """Return the actor's role, or log the denial and raise unless it is owner or manager."""
    with storage_guard(db, "role_lookup"):
        role = role_lookup.get_role(organization_id, actor_id)
    if role not in _BILLING_MANAGER_ROLE_VALUES:
        log_denied(action, organization_id=organization_id, actor_id=actor_id, reason="role", role=role)
        raise AuthorizationError(role=role)
    return role


class SeatBillingService:
    """Reads and changes an organization's broker seat plan."""

    def __init__(
        self,
        db: Session,
        usage_provider: SeatUsageProvider | None = None,
        role_lookup: RoleLookup | None = None,
        audit: AuditSink = log_audit_event,
        clock: Callable[[], datetime] = utcnow,
        validator: SeatPlanChangeValidator | None = None,
    ):
        self.db = db
        self.usage_provider = usage_provider or SqlSeatUsageProvider(db)
        self.role_lookup = role_lookup or SqlRoleLookup(db)
        self.audit = audit
        self.clock = clock
        self.validator = validator or SeatPlanChangeValidator()

    # ========================================================================
    # Reads
    # ========================================================================

    def get_billing_state(self, organization_id: str, actor_id: str) -> BillingState:
        """Plan, usage, current cycle, pending downgrade and recent history."""
        self._authorize(organization_id, actor_id, "billing.seats.read")
        now = self._now()
        with storage_guard(self.db, "billing_state"):
            plan = self._load_plan(organization_id)
            usage = self.usage_provider.get_usage(organization_id)
            pending = self._pending_change(organization_id)
            history = list(
                self.db.scalars(
                    select(SeatPlanChange)
                    .where(SeatPlanChange.organization_id == organization_id)
                    .order_by(SeatPlanChange.created_at.desc(), SeatPlanChange.id.desc())
                    .limit(settings.BILLING_HISTORY_LIMIT)
                )
            )
        cycle = compute_billing_cycle(plan.billing_cycle_anchor, plan.billing_cycle_interval, now)
        return BillingState(
            plan=plan,
            usage=usage,
            cycle=cycle,
            pending_change=pending,
            history=history,
            capacity_alert=get_seat_capacity_alert(usage, settings.SEAT_CAPACITY_ALERT_THRESHOLD),
        )

    # ========================================================================
    # Changes
    # ========================================================================

    def request_change(
        self,
        organization_id: str,
        actor_id: str,
        action: str,
        new_limit: int,
        unit_price_cents: int = 0,
        currency_code: str | None = None,
        notes: str | None = None,
    ) -> SeatChangeOutcome:
        """Dispatch a seat change request to the upgrade or downgrade path."""
        self._authorize(organization_id, actor_id, "billing.seats.change")
        currency = normalize_currency(currency_code)
        rejection = self.validator.validate_input(
            action=action,
            new_limit=new_limit,
            unit_price_cents=unit_price_cents,
            currency_code=currency,
        )
        if rejection:
            raise rejection.to_exception()
        if SeatChangeAction(action) is SeatChangeAction.UPGRADE:
            return self._upgrade(organization_id, actor_id, new_limit, unit_price_cents, currency, notes)
        return self._downgrade(organization_id, actor_id, new_limit, unit_price_cents, currency, notes)

    def apply_upgrade(
        self,
        organization_id: str,
        actor_id: str,
        new_limit: int,
        unit_price_cents: int,
        currency_code: str | None = None,
        notes: str | None = None,
    ) -> SeatPlanChange:
        """Raise the seat limit now and record the prorated charge."""
        outcome = self.request_change(
            organization_id, actor_id, SeatChangeAction.UPGRADE.value, new_limit, unit_price_cents, currency_code, notes
        )
        return outcome.change

    def schedule_downgrade(
        self,
        organization_id: str,
        actor_id: str,
        new_limit: int,
        unit_price_cents: int,
        currency_code: str | None = None,
        notes: str | None = None,
    ) -> SeatPlanChange:
        """Record a seat limit decrease that takes effect at the end of the cycle."""
        outcome = self.request_change(
            organization_id, actor_id, SeatChangeAction.DOWNGRADE.value, new_limit, unit_price_cents, currency_code, notes
        )
        return outcome.change

    def _upgrade(
        self,
        organization_id: str,
        actor_id: str,
        new_limit: int,
        unit_price_cents: int,
        currency_code: str,
        notes: str | None,
    ) -> SeatChangeOutcome:
        now = self._now()
        with storage_guard(self.db, "seat_upgrade"):
            plan = self._load_plan(organization_id, lock=True)
            self._ensure_active(plan)
            # Rollover would overwrite the upgraded limit with the downgrade target
            pending = self._pending_change(organization_id)
            if pending is not None:
                raise DowngradeAlreadyScheduledError(pending.id)
            usage = self.usage_provider.get_usage(organization_id)
            current_limit = plan.seat_limit

            rejection = self.validator.validate(
                action=SeatChangeAction.UPGRADE,
                current_limit=current_limit,
                new_limit=new_limit,
                usage=usage,
                unit_price_cents=unit_price_cents,
                currency_code=currency_code,
            )
            if rejection:
                raise rejection.to_exception()

            cycle = compute_billing_cycle(plan.billing_cycle_anchor, plan.billing_cycle_interval, now)
            proration = calculate_upgrade_proration(
                old_limit=current_limit,
                new_limit=new_limit,
                unit_price_cents=unit_price_cents,
                cycle_total_days=cycle.total_days,
                cycle_remaining_days=cycle.remaining_days,
            )

            # Compare-and-set: a concurrent upgrade that already moved the limit wins.
            result = self.db.execute(
                update(SeatPlan)
                .where(SeatPlan.organization_id == organization_id, SeatPlan.seat_limit == current_limit)
                .values(seat_limit=new_limit, updated_at=now)
                .execution_options(synchronize_session="evaluate")
            )
            if result.rowcount != 1:
                raise StateConflictError(
                    "The seat limit changed while this upgrade was processed. Re-fetch and try again.",
                    code="seat_limit_changed",
                    details={"expected_limit": current_limit},
                )

            change = SeatPlanChange(
                organization_id=organization_id,
                requested_by=actor_id,
                action=SeatChangeAction.UPGRADE,
                status=SeatChangeStatus.APPLIED,
                old_limit=current_limit,
                new_limit=new_limit,
                effective_at=now,
                currency_code=currency_code,
                unit_price_cents=proration.unit_price_cents,
                prorated_amount_cents=proration.prorated_amount_cents,
                proration_days_total=proration.total_days,
                proration_days_remaining=proration.remaining_days,
                notes=_clean_notes(notes),
                change_metadata={
                    "seats_delta": proration.seats_delta,
                    "cycle_start": cycle.start.isoformat(),
                    "cycle_end": cycle.end.isoformat(),
                    "at": now.isoformat(),
                },
                created_at=now,
                updated_at=now,
            )
            self.db.add(change)
            self.db.commit()

        logger.info(
            "Seat upgrade applied org=%s %s->%s prorated=%s %s",
            organization_id, current_limit, new_limit, proration.prorated_amount_cents, currency_code,
        )
        metrics.seat_upgrade_applied(proration.prorated_amount_cents, currency_code)
        self.audit(
            "seat_upgrade_applied",
            organization_id=organization_id,
            actor_id=actor_id,
            level="info",
            message="Seat upgrade applied with proration.",
            change_id=change.id,
            old_limit=current_limit,
            new_limit=new_limit,
            prorated_amount_cents=proration.prorated_amount_cents,
            currency_code=currency_code,
        )
        return SeatChangeOutcome(change=change, mode="upgrade_applied", usage=usage)

    def _downgrade(
        self,
        organization_id: str,
        actor_id: str,
        new_limit: int,
        unit_price_cents: int,
        currency_code: str,
        notes: str | None,
    ) -> SeatChangeOutcome:
        now = self._now()
        with storage_guard(self.db, "seat_downgrade"):
            plan = self._load_plan(organization_id, lock=True)
            self._ensure_active(plan)
            usage = self.usage_provider.get_usage(organization_id)
            current_limit = plan.seat_limit
            pending = self._pending_change(organization_id)

            rejection = self.validator.validate(
                action=SeatChangeAction.DOWNGRADE,
                current_limit=current_limit,
                new_limit=new_limit,
                usage=usage,
                unit_price_cents=unit_price_cents,
                currency_code=currency_code,
                scheduled_downgrade_id=pending.id if pending else None,
            )
            if rejection:
                raise rejection.to_exception()

            cycle = compute_billing_cycle(plan.billing_cycle_anchor, plan.billing_cycle_interval, now)
            change = SeatPlanChange(
                organization_id=organization_id,
                requested_by=actor_id,
                action=SeatChangeAction.DOWNGRADE,
                status=SeatChangeStatus.SCHEDULED,
                old_limit=current_limit,
                new_limit=new_limit,
                effective_at=cycle.end,
                currency_code=currency_code,
                unit_price_cents=unit_price_cents,
                prorated_amount_cents=0,
                # Display only; downgrades are never charged
                proration_days_total=cycle.total_days,
                proration_days_remaining=cycle.remaining_days,
                notes=_clean_notes(notes),
                change_metadata={
                    "scheduled_at": now.isoformat(),
                    "cycle_start": cycle.start.isoformat(),
                    "cycle_end": cycle.end.isoformat(),
                },
                created_at=now,
                updated_at=now,
            )
            self.db.add(change)
            try:
                self.db.commit()
            except IntegrityError:
                # Lost the race against a concurrent scheduling request.
                self.db.rollback()
                winner = self._pending_change(organization_id)
                if winner is None:
                    raise
                raise DowngradeAlreadyScheduledError(winner.id) from None

        logger.info(
            "Seat downgrade scheduled org=%s %s->%s effective_at=%s",
            organization_id, current_limit, new_limit, cycle.end.isoformat(),
        )
        metrics.seat_downgrade_scheduled()
        self.audit(
            "seat_downgrade_scheduled",
            organization_id=organization_id,
            actor_id=actor_id,
            level="info",
            message="Seat downgrade scheduled for the next cycle.",
            change_id=change.id,
            old_limit=current_limit,
            new_limit=new_limit,
            effective_at=cycle.end.isoformat(),
        )
        return SeatChangeOutcome(change=change, mode="downgrade_scheduled", usage=usage)

    # ========================================================================
    # Helpers
    # ========================================================================

    def _now(self) -> datetime:
        return ensure_utc(self.clock())

    def _authorize(self, organization_id: str, actor_id: str, action: str) -> None:
        authorize_billing_manager(self.db, self.role_lookup, organization_id, actor_id, action)

    def _load_plan(self, organization_id: str, lock: bool = False) -> SeatPlan:
        stmt = select(SeatPlan).where(SeatPlan.organization_id == organization_id)
        if lock:
            stmt = stmt.with_for_update()
        plan = self.db.scalar(stmt)
        if plan is None:
            raise NotFoundError("Seat plan", organization_id)
        return plan

    def _pending_change(self, organization_id: str) -> SeatPlanChange | None:
        return self.db.scalar(
            select(SeatPlanChange)
            .where(
                SeatPlanChange.organization_id == organization_id,
                SeatPlanChange.action == SeatChangeAction.DOWNGRADE,
                SeatPlanChange.status == SeatChangeStatus.SCHEDULED,
            )
            .order_by(SeatPlanChange.effective_at.asc())
            .limit(1)
        )

    @staticmethod
    def _ensure_active(plan: SeatPlan) -> None:
        if plan.status is not SeatPlanStatus.ACTIVE:
            raise StateConflictError(
                "The seat plan is inactive and cannot be changed.",
                code="plan_inactive",
                details={"status": plan.status.value},
            )


def _clean_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    return notes.strip() or None
