"""Seat usage and role lookup collaborators.

The billing core only reads usage and roles. Both are injected as protocols so
the core can be exercised without the member-counting service; the SQL
implementations here read the ``profile`` table.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Literal, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.billing_models import SeatPlan
from app.models.profile_models import SEAT_CONSUMING_ROLES, Profile, ProfileStatus


@dataclass(frozen=True)
class SeatUsageSnapshot:
    """Point-in-time seat usage. May be stale by the time it is acted on."""

    used: int
    seat_limit: int
    available: int

    @classmethod
    def from_counts(cls, used: int, seat_limit: int) -> SeatUsageSnapshot:
        return cls(used=used, seat_limit=seat_limit, available=max(0, seat_limit - used))

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class SeatUsageProvider(Protocol):
    def get_usage(self, organization_id: str) -> SeatUsageSnapshot: ...


class RoleLookup(Protocol):
    def get_role(self, organization_id: str, actor_id: str) -> str | None: ...


class SqlSeatUsageProvider:
    """Counts active seat-consuming profiles against the plan's seat limit."""

    def __init__(self, db: Session):
        self.db = db

    def get_usage(self, organization_id: str) -> SeatUsageSnapshot:
        used = self.db.scalar(
            select(func.count(Profile.id)).where(
                Profile.organization_id == organization_id,
                Profile.role.in_(list(SEAT_CONSUMING_ROLES)),
                Profile.status == ProfileStatus.ACTIVE,
            )
        ) or 0
        seat_limit = self.db.scalar(
            select(SeatPlan.seat_limit).where(SeatPlan.organization_id == organization_id)
        ) or 0
        return SeatUsageSnapshot.from_counts(int(used), int(seat_limit))


class SqlRoleLookup:
    """Resolves the actor's role from their active profile in the organization."""

    def __init__(self, db: Session):
        self.db = db

    def get_role(self, organization_id: str, actor_id: str) -> str | None:
        role = self.db.scalar(
            select(Profile.role).where(
                Profile.id == actor_id,
                Profile.organization_id == organization_id,
                Profile.status == ProfileStatus.ACTIVE,
            )
        )
        return role.value if role is not None else None

    def get_organization_id(self, actor_id: str) -> str | None:
        return self.db.scalar(select(Profile.organization_id).where(Profile.id == actor_id))


# ============================================================================
# Capacity alert
# ============================================================================

SeatCapacityAlertLevel = Literal["warning", "limit"]


@dataclass(frozen=True)
class SeatCapacityAlert:
    level: SeatCapacityAlertLevel
    threshold: int
    message: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def get_seat_capacity_alert(usage: SeatUsageSnapshot | None, threshold: int = 1) -> SeatCapacityAlert | None:
    """Warn when few seats remain, or flag the limit once none are left."""
    if usage is None:
        return None
    threshold = max(0, int(threshold))
    if usage.seat_limit <= 0 or usage.used <= 0:
        return None

    if usage.available <= 0:
        return SeatCapacityAlert(
            level="limit",
            threshold=threshold,
            message="Seat limit reached. Upgrade to avoid blocking new brokers.",
        )
    if usage.available <= threshold:
        seat_word = "seat" if usage.available == 1 else "seats"
        return SeatCapacityAlert(
            level="warning",
            threshold=threshold,
            message=f"Capacity almost full: {usage.available} {seat_word} left. Consider upgrading ahead of time.",
        )
    return None
