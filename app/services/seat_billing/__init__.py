"""Broker seat plan billing: cycles, proration, validation and rollover."""
from app.services.seat_billing.cycle import BillingCycle, compute_billing_cycle
from app.services.seat_billing.proration import UpgradeProration, calculate_upgrade_proration
from app.services.seat_billing.reconciler import CycleRolloverReconciler, RolloverResult
from app.services.seat_billing.service import BillingState, SeatBillingService, SeatChangeOutcome
from app.services.seat_billing.usage import (
    SeatCapacityAlert,
    SeatUsageSnapshot,
    SqlRoleLookup,
    SqlSeatUsageProvider,
    get_seat_capacity_alert,
)
from app.services.seat_billing.validator import SeatChangeRejection, SeatPlanChangeValidator

__all__ = [
    "BillingCycle",
    "BillingState",
    "CycleRolloverReconciler",
    "RolloverResult",
    "SeatBillingService",
    "SeatCapacityAlert",
    "SeatChangeOutcome",
    "SeatChangeRejection",
    "SeatPlanChangeValidator",
    "SeatUsageSnapshot",
    "SqlRoleLookup",
    "SqlSeatUsageProvider",
    "UpgradeProration",
    "calculate_upgrade_proration",
    "compute_billing_cycle",
    "get_seat_capacity_alert",
]
