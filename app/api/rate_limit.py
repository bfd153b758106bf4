import logging

from prometheus_client import Counter
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.config import settings

logger = logging.getLogger(__name__)

_PROM_RATE_LIMIT = Counter("seat_billing_rate_limit_exceeded_events", "Rate limit exceeded events (handler invocations)")


def get_user_identifier(request: Request) -> str:
    """Rate limit key: client IP plus a short token fingerprint when authenticated.

    Distinct profiles behind one NAT do not share a bucket, while unauthenticated
    callers fall back to the IP alone.
    """
    ip_address = get_remote_address(request)
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer ") and len(auth_header) > 7:
        return f"{ip_address}:{auth_header[-16:]}"
    return ip_address


def _storage_uri() -> str:
    if settings.ENV.lower() != "prod":
        logger.info("Rate limiter using in-memory storage (dev/test mode)")
        return "memory://"
    return settings.RATE_LIMIT_STORAGE_URI or "memory://"


limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=_storage_uri(),
    enabled=settings.ENV.lower() != "test",
)

RATE_LIMITS = {
    "seat_change": settings.BILLING_SEAT_CHANGE_RATE_LIMIT,
    "seat_apply_due": "12/minute",
}


def increment_rate_limit_exceeded() -> None:
    _PROM_RATE_LIMIT.inc()
