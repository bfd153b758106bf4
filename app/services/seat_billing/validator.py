"""Business rules checked before any seat plan transition.

Out-of-range seat limits and prices are rejected, never clamped: a request
for 2_000_000 seats is an input error, not a request for the maximum.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from app.core.config import settings
from app.core.exceptions import (
    DowngradeAlreadyScheduledError,
    DowngradeBelowActiveUsageError,
    SeatBillingException,
    ValidationError,
)
from app.models.billing_models import SeatChangeAction
from app.services.seat_billing.usage import SeatUsageSnapshot

CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}$")


@dataclass(frozen=True)
class SeatChangeRejection:
    reason: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_exception(self) -> SeatBillingException:
        if self.reason == "downgrade_below_active_usage":
            return DowngradeBelowActiveUsageError(used=self.details["used"], new_limit=self.details["new_limit"])
        if self.reason == "downgrade_already_scheduled":
            return DowngradeAlreadyScheduledError(self.details.get("change_id"))
        return ValidationError(self.reason, self.message, self.details)


def normalize_currency(value: str | None, default: str | None = None) -> str:
    raw = value if value is not None and value.strip() else (default or settings.BILLING_DEFAULT_CURRENCY)
    return raw.strip().upper()


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class SeatPlanChangeValidator:
    """Checks a requested seat change against limits, usage and pending changes."""

    def __init__(self, seat_limit_max: int | None = None, unit_price_max_cents: int | None = None):
        self.seat_limit_max = settings.SEAT_LIMIT_MAX if seat_limit_max is None else seat_limit_max
        self.unit_price_max_cents = (
            settings.UNIT_PRICE_MAX_CENTS if unit_price_max_cents is None else unit_price_max_cents
        )

    def validate_input(
        self,
        *,
        action: str | SeatChangeAction,
        new_limit: object,
        unit_price_cents: object,
        currency_code: str,
    ) -> SeatChangeRejection | None:
        """Checks that need no persisted state."""
        if action not in (SeatChangeAction.UPGRADE, SeatChangeAction.DOWNGRADE, "upgrade", "downgrade"):
            return SeatChangeRejection(
                "invalid_action",
                "action must be 'upgrade' or 'downgrade'.",
                {"action": str(action)},
            )
        if not _is_int(new_limit) or not 0 <= new_limit <= self.seat_limit_max:  # type: ignore[operator]
            return SeatChangeRejection(
                "invalid_seat_limit",
                f"new_limit must be an integer between 0 and {self.seat_limit_max}.",
                {"new_limit": new_limit, "max": self.seat_limit_max},
            )
        if not _is_int(unit_price_cents) or not 0 <= unit_price_cents <= self.unit_price_max_cents:  # type: ignore[operator]
            return SeatChangeRejection(
                "invalid_unit_price",
                f"unit_price_cents must be an integer between 0 and {self.unit_price_max_cents}.",
                {"unit_price_cents": unit_price_cents, "max": self.unit_price_max_cents},
            )
        if not CURRENCY_CODE_RE.match(currency_code or ""):
            return SeatChangeRejection(
                "invalid_currency",
                "currency_code must be a 3-letter ISO code.",
                {"currency_code": currency_code},
            )
        return None

    def validate(
        self,
        *,
        action: str | SeatChangeAction,
        current_limit: int,
        new_limit: int,
        usage: SeatUsageSnapshot,
        unit_price_cents: int,
        currency_code: str,
        scheduled_downgrade_id: str | None = None,
    ) -> SeatChangeRejection | None:
        """Return None when the change may proceed, otherwise the first rejection."""
        rejection = self.validate_input(
            action=action,
            new_limit=new_limit,
            unit_price_cents=unit_price_cents,
            currency_code=currency_code,
        )
        if rejection:
            return rejection

        if SeatChangeAction(action) is SeatChangeAction.UPGRADE:
            if new_limit <= current_limit:
                return SeatChangeRejection(
                    "invalid_upgrade_target",
                    "Upgrade requires a new limit greater than the current limit.",
                    {"current_limit": current_limit, "new_limit": new_limit},
                )
            return None

        if new_limit >= current_limit:
            return SeatChangeRejection(
                "invalid_downgrade_target",
                "Downgrade requires a new limit lower than the current limit.",
                {"current_limit": current_limit, "new_limit": new_limit},
            )
        if usage.used > new_limit:
            return SeatChangeRejection(
                "downgrade_below_active_usage",
                f"There are {usage.used} active brokers. Reduce to at most {new_limit} before downgrading.",
                {"used": usage.used, "new_limit": new_limit},
            )
        if scheduled_downgrade_id:
            return SeatChangeRejection(
                "downgrade_already_scheduled",
                "A downgrade is already scheduled for this billing cycle.",
                {"change_id": scheduled_downgrade_id},
            )
        return None
