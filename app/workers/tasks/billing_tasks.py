"""
Seat Billing Tasks.

Periodic rollover of scheduled seat downgrades.
"""
from __future__ import annotations

import logging

from celery import Task

from app.db.session import session_scope
from app.services.seat_billing import CycleRolloverReconciler
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="billing.apply_due_seat_downgrades",
    autoretry_for=(Exception,),
    retry_backoff=60,
    retry_jitter=True,
    retry_kwargs={"max_retries": 3},
)
def apply_due_seat_downgrades(self: Task, limit: int | None = None, organization_id: str | None = None) -> dict[str, int]:
    """Apply every scheduled downgrade whose effective time has passed.

    Per-change failures are counted in the result and do not fail the task;
    only a failure to scan at all triggers a retry.
    """
    with session_scope() as db:
        result = CycleRolloverReconciler(db).apply_due(organization_id=organization_id, limit=limit)
    summary = result.to_dict()
    if summary["failed"]:
        logger.warning("Seat rollover finished with failures: %s", summary)
    return summary
