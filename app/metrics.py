"""Metrics facade.

Service code should ONLY call the semantic helpers here so we can change
backend freely. Counters live in the default Prometheus registry and are
exposed by ``GET /metrics``.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter

logger = logging.getLogger("metrics")

_SEAT_UPGRADES_APPLIED = Counter("seat_upgrades_applied_total", "Seat upgrades applied immediately")
_SEAT_UPGRADE_PRORATED_CENTS = Counter(
    "seat_upgrade_prorated_cents_total", "Prorated minor units owed for seat upgrades", ["currency"]
)
_SEAT_DOWNGRADES_SCHEDULED = Counter(
    "seat_downgrades_scheduled_total", "Seat downgrades scheduled for the next cycle"
)
_SEAT_DOWNGRADES_APPLIED = Counter(
    "seat_downgrades_applied_total", "Scheduled seat downgrades applied at rollover"
)
_SEAT_DOWNGRADES_BLOCKED = Counter(
    "seat_downgrades_blocked_total", "Due seat downgrades held back because usage exceeds the new limit"
)
_SEAT_BILLING_ERRORS = Counter(
    "seat_billing_errors_total", "Seat billing requests answered with an error", ["code"]
)


def seat_upgrade_applied(prorated_amount_cents: int, currency_code: str) -> None:
    _SEAT_UPGRADES_APPLIED.inc()
    if prorated_amount_cents > 0:
        _SEAT_UPGRADE_PRORATED_CENTS.labels(currency=currency_code).inc(prorated_amount_cents)


def seat_downgrade_scheduled() -> None:
    _SEAT_DOWNGRADES_SCHEDULED.inc()


def seat_downgrade_applied() -> None:
    _SEAT_DOWNGRADES_APPLIED.inc()


def seat_downgrade_blocked() -> None:
    _SEAT_DOWNGRADES_BLOCKED.inc()


def billing_error(code: str) -> None:
    _SEAT_BILLING_ERRORS.labels(code=code).inc()
