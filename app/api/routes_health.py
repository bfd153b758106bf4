from __future__ import annotations

import time
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])


def _check_db(db: Session) -> bool:
    db.execute(text("SELECT 1"))
    return True


def _check_celery() -> bool:
    try:
        insp = celery_app.control.inspect(timeout=1)
        active = insp.ping() if insp else None
        return bool(active)
    except Exception:  # noqa: BLE001
        return False


@router.get("/healthz")
def healthz(db: Annotated[Session, Depends(get_db)]) -> dict[str, str]:
    """Basic liveness probe (cheap)."""
    try:
        _check_db(db)
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=503, detail="Database connectivity check failed") from exc
    return {"status": "ok"}


@router.get("/live")
def live() -> dict[str, str]:
    """Kubernetes-style liveness endpoint (no dependencies)."""
    return {"status": "alive"}


@router.get("/ready")
def ready(db: Annotated[Session, Depends(get_db)]) -> dict[str, object]:
    """Readiness probe. The rollover worker is reported but does not gate traffic."""
    start = time.time()
    try:
        db_ok = _check_db(db)
    except Exception:  # noqa: BLE001
        db_ok = False
    celery_ok = _check_celery()
    duration_ms = int((time.time() - start) * 1000)
    body = {"db": db_ok, "celery": celery_ok, "latency_ms": duration_ms}
    if not db_ok:
        raise HTTPException(status_code=503, detail=body)
    return {"status": "ready", **body}
