import random
from datetime import datetime, timedelta, timezone

import pytest

from app.models.billing_models import BillingInterval
from app.services.seat_billing.cycle import compute_billing_cycle, cycle_boundary, ensure_utc, normalize_interval


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestMonthlyCycle:
    def test_mid_cycle(self):
        cycle = compute_billing_cycle(utc(2026, 1, 1), "monthly", utc(2026, 1, 16))
        assert cycle.start == utc(2026, 1, 1)
        assert cycle.end == utc(2026, 2, 1)
        assert cycle.total_days == 31
        assert cycle.remaining_days == 16
        assert cycle.interval is BillingInterval.MONTHLY

    def test_now_on_boundary_belongs_to_new_cycle(self):
        cycle = compute_billing_cycle(utc(2026, 1, 1), BillingInterval.MONTHLY, utc(2026, 2, 1))
        assert cycle.start == utc(2026, 2, 1)
        assert cycle.end == utc(2026, 3, 1)
        assert cycle.total_days == 28
        assert cycle.remaining_days == 28

    def test_partial_day_counts_as_remaining(self):
        cycle = compute_billing_cycle(utc(2026, 1, 1), "monthly", utc(2026, 1, 31, 23, 0))
        assert cycle.remaining_days == 1

    def test_anchor_time_of_day_is_kept(self):
        cycle = compute_billing_cycle(utc(2026, 1, 1, 10), "monthly", utc(2026, 1, 31, 11))
        assert cycle.start == utc(2026, 1, 1, 10)
        assert cycle.end == utc(2026, 2, 1, 10)
        assert cycle.total_days == 31
        assert cycle.remaining_days == 1

    def test_now_before_anchor_walks_backwards(self):
        cycle = compute_billing_cycle(utc(2026, 3, 15), "monthly", utc(2026, 3, 1))
        assert cycle.start == utc(2026, 2, 15)
        assert cycle.end == utc(2026, 3, 15)
        assert cycle.total_days == 28
        assert cycle.remaining_days == 14

    def test_far_future_now(self):
        cycle = compute_billing_cycle(utc(2020, 6, 10), "monthly", utc(2026, 10, 19, 8))
        assert cycle.start == utc(2026, 10, 10)
        assert cycle.end == utc(2026, 11, 10)
        assert cycle.start <= utc(2026, 10, 19, 8) < cycle.end


class TestMonthEndAnchor:
    def test_boundaries_are_derived_from_anchor(self):
        anchor = utc(2026, 1, 31)
        boundaries = [cycle_boundary(anchor, BillingInterval.MONTHLY, k) for k in range(1, 5)]
        assert boundaries == [utc(2026, 2, 28), utc(2026, 3, 31), utc(2026, 4, 30), utc(2026, 5, 31)]

    def test_short_month_cycle(self):
        cycle = compute_billing_cycle(utc(2026, 1, 31), "monthly", utc(2026, 2, 28, 12))
        assert cycle.start == utc(2026, 2, 28)
        assert cycle.end == utc(2026, 3, 31)
        assert cycle.total_days == 31

    def test_cycle_after_clamped_month_returns_to_anchor_day(self):
        cycle = compute_billing_cycle(utc(2026, 1, 31), "monthly", utc(2026, 4, 15))
        assert cycle.start == utc(2026, 3, 31)
        assert cycle.end == utc(2026, 4, 30)
        assert cycle.total_days == 30


class TestYearlyCycle:
    def test_leap_day_anchor(self):
        cycle = compute_billing_cycle(utc(2024, 2, 29), "yearly", utc(2025, 3, 1))
        assert cycle.start == utc(2025, 2, 28)
        assert cycle.end == utc(2026, 2, 28)
        assert cycle.total_days == 365

    def test_mid_year(self):
        cycle = compute_billing_cycle(utc(2025, 7, 1), BillingInterval.YEARLY, utc(2026, 1, 1))
        assert cycle.start == utc(2025, 7, 1)
        assert cycle.end == utc(2026, 7, 1)
        assert cycle.total_days == 365
        assert cycle.remaining_days == 181


class TestTimezones:
    def test_naive_values_are_treated_as_utc(self):
        cycle = compute_billing_cycle(datetime(2026, 1, 1), "monthly", datetime(2026, 1, 16))
        assert cycle.start == utc(2026, 1, 1)
        assert cycle.start.tzinfo is not None

    def test_offset_now_is_converted(self):
        sao_paulo = timezone(timedelta(hours=-3))
        # 2026-01-31 22:00 -03:00 is already Feb 1st in UTC
        cycle = compute_billing_cycle(utc(2026, 1, 1), "monthly", datetime(2026, 1, 31, 22, tzinfo=sao_paulo))
        assert cycle.start == utc(2026, 2, 1)
        assert cycle.end == utc(2026, 3, 1)

    def test_ensure_utc(self):
        assert ensure_utc(datetime(2026, 1, 1)).tzinfo == timezone.utc
        aware = datetime(2026, 1, 1, 3, tzinfo=timezone(timedelta(hours=3)))
        assert ensure_utc(aware) == utc(2026, 1, 1)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("monthly", BillingInterval.MONTHLY),
        ("YEARLY", BillingInterval.YEARLY),
        (None, BillingInterval.MONTHLY),
        ("weekly", BillingInterval.MONTHLY),
        (BillingInterval.YEARLY, BillingInterval.YEARLY),
    ],
)
def test_normalize_interval(value, expected):
    assert normalize_interval(value) is expected


def test_to_dict_serializes_iso_dates():
    cycle = compute_billing_cycle(utc(2026, 1, 1), "monthly", utc(2026, 1, 16))
    data = cycle.to_dict()
    assert data["start"] == "2026-01-01T00:00:00+00:00"
    assert data["interval"] == "monthly"


@pytest.mark.parametrize("interval", [BillingInterval.MONTHLY, BillingInterval.YEARLY])
def test_now_always_falls_inside_its_cycle(interval):
    rng = random.Random(20260101)
    epoch = utc(2000, 1, 1)
    span_seconds = 40 * 365 * 24 * 60 * 60
    for _ in range(500):
        anchor = epoch + timedelta(seconds=rng.randrange(span_seconds))
        now = epoch + timedelta(seconds=rng.randrange(span_seconds))

        cycle = compute_billing_cycle(anchor, interval, now)

        assert cycle.start <= now < cycle.end, (anchor, now)
        assert 0 <= cycle.remaining_days <= cycle.total_days, (anchor, now)


@pytest.mark.parametrize("anchor_day", [1, 15, 28, 29, 30, 31])
def test_month_end_anchors_cover_every_day_of_the_year(anchor_day):
    anchor = utc(2024, 1, anchor_day, 9, 30)
    now = utc(2024, 1, 1)
    while now < utc(2025, 1, 1):
        cycle = compute_billing_cycle(anchor, "monthly", now)
        assert cycle.start <= now < cycle.end
        assert 0 <= cycle.remaining_days <= cycle.total_days
        assert 28 <= cycle.total_days <= 31
        now += timedelta(hours=13)
