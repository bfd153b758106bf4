"""Cycle rollover: apply scheduled downgrades whose effective time has passed.

Each due change is handled in its own transaction. A downgrade whose new limit
is below current usage stays ``scheduled`` and is reported again on the next
run until usage drops or the change is superseded.
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app import metrics
from app.core.audit import AuditSink, log_audit_event
from app.core.config import settings
from app.models.billing_models import SeatChangeAction, SeatChangeStatus, SeatPlan, SeatPlanChange
from app.models.profile_models import utcnow
from app.services.seat_billing.cycle import ensure_utc
from app.services.seat_billing.usage import SeatUsageProvider, SqlSeatUsageProvider

logger = logging.getLogger(__name__)

MAX_BATCH_LIMIT = 1000


@dataclass
class RolloverResult:
    scanned: int = 0
    applied: int = 0
    blocked: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def clamp_batch_limit(limit: int | None) -> int:
    if limit is None:
        limit = settings.SEAT_ROLLOVER_BATCH_LIMIT
    return max(1, min(MAX_BATCH_LIMIT, int(limit)))


class CycleRolloverReconciler:
    """Applies due scheduled downgrades. Safe to run concurrently and repeatedly."""

    def __init__(
        self,
        db: Session,
        usage_provider: SeatUsageProvider | None = None,
        audit: AuditSink = log_audit_event,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.usage_provider = usage_provider or SqlSeatUsageProvider(db)
        self.audit = audit
        self.clock = clock

    def apply_due(
        self,
        now: datetime | None = None,
        organization_id: str | None = None,
        limit: int | None = None,
    ) -> RolloverResult:
        now = ensure_utc(now or self.clock())
        batch_limit = clamp_batch_limit(limit)
        result = RolloverResult()

        stmt = (
            select(SeatPlanChange.id)
            .where(
                SeatPlanChange.action == SeatChangeAction.DOWNGRADE,
                SeatPlanChange.status == SeatChangeStatus.SCHEDULED,
                SeatPlanChange.effective_at <= now,
            )
            .order_by(SeatPlanChange.effective_at.asc(), SeatPlanChange.id.asc())
            .limit(batch_limit)
        )
        if organization_id:
            stmt = stmt.where(SeatPlanChange.organization_id == organization_id)
        due_ids = list(self.db.scalars(stmt))
        # Release the read snapshot before the per-change transactions
        self.db.rollback()

        for change_id in due_ids:
            result.scanned += 1
            try:
                outcome = self._apply_one(change_id, now)
            except Exception:
                self.db.rollback()
                result.failed += 1
                logger.exception("Failed to apply scheduled seat downgrade %s", change_id)
                continue
            if outcome == "applied":
                result.applied += 1
            elif outcome == "blocked":
                result.blocked += 1

        if result.scanned:
            logger.info("Seat rollover finished: %s", result.to_dict())
        return result

    def _apply_one(self, change_id: str, now: datetime) -> str:
        """Return ``applied``, ``blocked`` or ``skipped`` for one due change."""
        change = self.db.scalar(
            select(SeatPlanChange)
            .where(
                SeatPlanChange.id == change_id,
                SeatPlanChange.status == SeatChangeStatus.SCHEDULED,
            )
            .with_for_update(skip_locked=True)
        )
        if change is None:
            # Applied by another worker, or locked by one right now
            self.db.rollback()
            return "skipped"

        organization_id = change.organization_id
        old_limit, new_limit = change.old_limit, change.new_limit
        usage = self.usage_provider.get_usage(organization_id)
        if usage.used > new_limit:
            self.db.rollback()
            logger.warning(
                "Seat downgrade %s blocked: org=%s used=%s new_limit=%s",
                change_id, organization_id, usage.used, new_limit,
            )
            metrics.seat_downgrade_blocked()
            self.audit(
                "seat_downgrade_blocked",
                organization_id=organization_id,
                actor_id=None,
                level="warning",
                message="Scheduled downgrade kept pending: active usage exceeds the new limit.",
                change_id=change_id,
                used=usage.used,
                new_limit=new_limit,
            )
            return "blocked"

        flipped = self.db.execute(
            update(SeatPlanChange)
            .where(
                SeatPlanChange.id == change_id,
                SeatPlanChange.status == SeatChangeStatus.SCHEDULED,
            )
            .values(status=SeatChangeStatus.APPLIED, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        if flipped.rowcount != 1:
            self.db.rollback()
            return "skipped"

        self.db.execute(
            update(SeatPlan)
            .where(SeatPlan.organization_id == organization_id)
            .values(seat_limit=new_limit, updated_at=now)
            .execution_options(synchronize_session="evaluate")
        )
        self.db.commit()

        logger.info("Seat downgrade %s applied org=%s %s->%s", change_id, organization_id, old_limit, new_limit)
        metrics.seat_downgrade_applied()
        self.audit(
            "seat_downgrade_applied",
            organization_id=organization_id,
            actor_id=None,
            level="info",
            message="Scheduled seat downgrade applied at cycle rollover.",
            change_id=change_id,
            old_limit=old_limit,
            new_limit=new_limit,
        )
        return "applied"
