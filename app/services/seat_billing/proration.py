"""Mid-cycle upgrade proration.

Rounding policy: round half up on exact integer arithmetic, with a floor of
one minor unit whenever the exact amount is positive. The result is the
amount owed in minor currency units (cents).
"""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UpgradeProration:
    seats_delta: int
    unit_price_cents: int
    total_days: int
    remaining_days: int
    prorated_amount_cents: int


def round_half_up_div(numerator: int, denominator: int) -> int:
    """``round(numerator / denominator)`` with halves rounded up, for non-negative ints."""
    return (2 * numerator + denominator) // (2 * denominator)


def calculate_upgrade_proration(
    *,
    old_limit: int,
    new_limit: int,
    unit_price_cents: int,
    cycle_total_days: int,
    cycle_remaining_days: int,
) -> UpgradeProration:
    """Charge for raising the seat limit from ``old_limit`` to ``new_limit`` now.

    ``unit_price_cents`` is the price of one seat for a full cycle. The caller
    guarantees ``new_limit > old_limit``.
    """
    seats_delta = new_limit - old_limit
    total_days = max(0, cycle_total_days)
    remaining_days = max(0, min(total_days, cycle_remaining_days))

    numerator = unit_price_cents * max(0, seats_delta) * remaining_days
    if total_days == 0 or numerator <= 0:
        amount = 0
    else:
        # An owed charge is never rounded away to nothing
        amount = max(1, round_half_up_div(numerator, total_days))

    return UpgradeProration(
        seats_delta=seats_delta,
        unit_price_cents=unit_price_cents,
        total_days=total_days,
        remaining_days=remaining_days,
        prorated_amount_cents=amount,
    )
