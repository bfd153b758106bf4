"""Exception hierarchy for seat billing.

Every error raised by the billing core derives from SeatBillingException so
the API layer can render it with a single handler. The caller must be able to
tell three situations apart:

- "fix your input and resubmit": ValidationError, StateConflictError (400/409)
- "try again later": StorageError, StorageUnavailableError (500/503)
- "not allowed": AuthenticationError, AuthorizationError (401/403)

``code`` is the stable machine-readable wire code. ``reason`` narrows it down
where one wire code covers several situations (e.g. every ``validation_error``
carries the specific validator reason).
"""

from __future__ import annotations

from typing import Any


class SeatBillingException(Exception):
    """Base exception for all seat billing errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
        reason: str | None = None,
    ):
        """Initialize exception with a displayable message and metadata.

        Args:
            message: Message safe to show in the billing UI
            code: Stable error code (e.g. "validation_error")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
            reason: Optional sub-reason for the code
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        body: dict[str, Any] = {
            "ok": False,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }
        if self.reason:
            body["reason"] = self.reason
        return body


# ============================================================================
# AUTH ERRORS
# ============================================================================

class AuthenticationError(SeatBillingException):
    """No identity could be resolved from the request."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message, code="unauthenticated", status_code=401)


class AuthorizationError(SeatBillingException):
    """Caller is identified but lacks the required organization role."""

    def __init__(self, action: str | None = None, role: str | None = None):
        message = "You are not allowed to manage billing seats"
        if action:
            message = f"Not allowed: {action}"
        super().__init__(
            message=message,
            code="forbidden",
            status_code=403,
            details={"required_roles": ["owner", "manager"], "current_role": role},
        )


# ============================================================================
# INPUT / STATE ERRORS
# ============================================================================

class ValidationError(SeatBillingException):
    """Malformed or out-of-range input. ``reason`` holds the validator sub-reason."""

    def __init__(self, reason: str, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            code="validation_error",
            status_code=400,
            details=details,
            reason=reason,
        )


class StateConflictError(SeatBillingException):
    """Request conflicts with the current persisted state."""

    def __init__(
        self,
        message: str,
        code: str = "state_conflict",
        details: dict[str, Any] | None = None,
        reason: str | None = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=409,
            details=details,
            reason=reason or code,
        )


class DowngradeBelowActiveUsageError(StateConflictError):
    """Requested downgrade target is below the number of active brokers."""

    def __init__(self, used: int, new_limit: int):
        message = (
            f"There are {used} active brokers. "
            f"Reduce to at most {new_limit} before downgrading."
        )
        super().__init__(
            message=message,
            code="downgrade_below_active_brokers",
            details={"used": used, "new_limit": new_limit},
            reason="downgrade_below_active_usage",
        )


class DowngradeAlreadyScheduledError(StateConflictError):
    """A scheduled downgrade already exists for the organization."""

    def __init__(self, change_id: str | None = None):
        super().__init__(
            message="A downgrade is already scheduled for this billing cycle.",
            code="downgrade_already_scheduled",
            details={"change_id": change_id} if change_id else {},
        )


class NotFoundError(SeatBillingException):
    """Organization or seat plan does not exist."""

    def __init__(self, resource: str = "Seat plan", identifier: str | None = None):
        message = f"{resource} not found" if not identifier else f"{resource} {identifier} not found"
        super().__init__(
            message=message,
            code="not_found",
            status_code=404,
            details={"id": identifier} if identifier else {},
        )


# ============================================================================
# STORAGE ERRORS
# ============================================================================

class StorageError(SeatBillingException):
    """Read or write against durable storage failed.

    The message is deliberately generic; the driver error goes to the log only.
    """

    def __init__(self, operation: str, status_code: int = 500, code: str = "storage_error"):
        super().__init__(
            message="Billing storage failed. Re-fetch the current state and try again.",
            code=code,
            status_code=status_code,
            details={"operation": operation},
        )


class StorageUnavailableError(StorageError):
    """Storage is unreachable or timed out; the outcome may be unknown."""

    def __init__(self, operation: str):
        super().__init__(operation, status_code=503, code="storage_unavailable")
        self.message = "Billing storage is temporarily unavailable. Re-fetch the current state before retrying."
