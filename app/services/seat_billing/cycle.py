"""Billing cycle window calculation.

Cycle boundaries are ``anchor + k * interval`` for integer ``k``, where an
interval is a calendar month or a calendar year. Every boundary is derived
from the anchor itself, never from the previous boundary, so month-end
anchors do not drift:

    anchor 2026-01-31 -> 2026-02-28 -> 2026-03-31 -> 2026-04-30 -> 2026-05-31

When the anchor's day does not exist in the target month the boundary is the
last day of that month (``relativedelta`` semantics). A Feb 29 anchor on a
yearly plan lands on Feb 28 in non-leap years.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta

from app.models.billing_models import BillingInterval

_SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class BillingCycle:
    start: datetime
    end: datetime
    interval: BillingInterval
    total_days: int
    remaining_days: int

    def to_dict(self) -> dict[str, object]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "interval": self.interval.value,
            "total_days": self.total_days,
            "remaining_days": self.remaining_days,
        }


def normalize_interval(value: str | BillingInterval | None) -> BillingInterval:
    """Map stored interval values to BillingInterval; anything unknown is monthly."""
    if isinstance(value, BillingInterval):
        return value
    if value and str(value).strip().lower() == BillingInterval.YEARLY.value:
        return BillingInterval.YEARLY
    return BillingInterval.MONTHLY


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def cycle_boundary(anchor: datetime, interval: BillingInterval, k: int) -> datetime:
    """The k-th boundary after (k > 0) or before (k < 0) ``anchor``."""
    if interval is BillingInterval.YEARLY:
        return anchor + relativedelta(years=k)
    return anchor + relativedelta(months=k)


def _estimate_offset(anchor: datetime, interval: BillingInterval, now: datetime) -> int:
    months = (now.year - anchor.year) * 12 + (now.month - anchor.month)
    if interval is BillingInterval.YEARLY:
        return months // 12
    return months


def compute_billing_cycle(
    anchor: datetime,
    interval: str | BillingInterval | None,
    now: datetime,
) -> BillingCycle:
    """Compute the cycle window containing ``now``.

    ``start`` is the latest boundary at or before ``now`` (a ``now`` that falls
    exactly on a boundary belongs to the cycle starting there) and ``end`` is
    the boundary after it.

    ``total_days`` counts calendar days between the two boundaries.
    ``remaining_days`` is the number of started days left until ``end``,
    clamped to ``[0, total_days]``.
    """
    cycle_interval = normalize_interval(interval)
    anchor = ensure_utc(anchor)
    now = ensure_utc(now)

    # Jump close to the answer, then settle on the exact boundary.
    k = _estimate_offset(anchor, cycle_interval, now)
    while cycle_boundary(anchor, cycle_interval, k) > now:
        k -= 1
    while cycle_boundary(anchor, cycle_interval, k + 1) <= now:
        k += 1

    start = cycle_boundary(anchor, cycle_interval, k)
    end = cycle_boundary(anchor, cycle_interval, k + 1)

    total_days = (end.date() - start.date()).days
    remaining_days = math.ceil((end - now).total_seconds() / _SECONDS_PER_DAY)
    remaining_days = max(0, min(total_days, remaining_days))

    return BillingCycle(
        start=start,
        end=end,
        interval=cycle_interval,
        total_days=total_days,
        remaining_days=remaining_days,
    )
