from __future__ import annotations

from celery import Celery

from app.core.config import settings


def _create_celery() -> Celery:
    celery = Celery(
        "seat_billing",
        broker=settings.REDIS_URL,
        backend=settings.REDIS_URL,
        include=["app.workers.tasks"],
    )
    celery.conf.update(
        task_default_queue="billing",
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_always_eager=settings.ENV.lower() in {"test"},
        task_eager_propagates=settings.ENV.lower() in {"test"},
    )
    # Beat schedule (only active outside test env)
    if settings.ENV.lower() not in {"test"}:
        celery.conf.beat_schedule = {
            "apply-due-seat-downgrades": {
                "task": "billing.apply_due_seat_downgrades",
                "schedule": max(1, settings.SEAT_ROLLOVER_INTERVAL_MINUTES) * 60.0,
            }
        }
    return celery


celery_app = _create_celery()
