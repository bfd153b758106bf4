"""
Celery Tasks Module.

Sub-modules:
- billing_tasks: seat plan cycle rollover
"""
from __future__ import annotations

from .billing_tasks import apply_due_seat_downgrades

__all__ = ["apply_due_seat_downgrades"]
