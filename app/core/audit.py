"""Audit logging utilities.

Writes structured JSON lines to a dedicated audit log file and standard logger.
Each event describes a billing-relevant action taken on an organization's seat
plan. Persistence of audit events beyond this log is owned by another system.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Protocol

_AUDIT_LOG_PATH = os.getenv("AUDIT_LOG_FILE", "storage/audit.log")
_logger = logging.getLogger("audit")


class AuditSink(Protocol):
    def __call__(
        self,
        action: str,
        organization_id: str | None = None,
        actor_id: str | None = None,
        level: str = "info",
        message: str = "",
        **metadata: Any,
    ) -> None: ...


def log_audit_event(
    action: str,
    organization_id: str | None = None,
    actor_id: str | None = None,
    level: str = "info",
    message: str = "",
    **metadata: Any,
) -> None:
    """Record an audit event.

    Parameters:
        action: A machine-readable action key (e.g. 'seat_upgrade_applied').
        organization_id: Organization whose plan was touched.
        actor_id: The acting profile's ID (if available).
        level: 'info' | 'warning' | 'error'.
        message: Human-readable summary.
        **metadata: Additional context fields (limits, amounts, change ids).
    """
    event = {
        "ts": int(time.time()),
        "action": action,
        "organization_id": organization_id,
        "actor_id": actor_id,
        "level": level,
        "message": message,
        "metadata": metadata,
    }
    line = json.dumps(event, separators=(",", ":"), default=str)
    # Append to file (best effort)
    try:
        os.makedirs(os.path.dirname(_AUDIT_LOG_PATH) or ".", exist_ok=True)
        with open(_AUDIT_LOG_PATH, "a", encoding="utf-8") as f:
            f.write(line + "\n")
    except OSError:
        _logger.debug("Failed to write audit event to file: %s", event)
    # Emit via logger for aggregation
    if level == "warning":
        _logger.warning(line)
    else:
        _logger.info(line)


def log_denied(action: str, organization_id: str | None = None, actor_id: str | None = None, reason: str | None = None, **extra: Any) -> None:
    log_audit_event(action, organization_id=organization_id, actor_id=actor_id, level="warning", message="denied", reason=reason, **extra)
