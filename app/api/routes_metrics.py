import hmac
from typing import Annotated

from fastapi import APIRouter, Header, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.core.config import settings
from app.core.exceptions import AuthenticationError

router = APIRouter()


def _require_scrape_secret(authorization: str | None) -> None:
    """In prod the scrape endpoint shares the job bearer secret; elsewhere it is open."""
    if settings.ENV.lower() != "prod":
        return
    secret = settings.BILLING_SEATS_CRON_SECRET or ""
    token = authorization[7:] if authorization and authorization.startswith("Bearer ") else ""
    if not secret or not hmac.compare_digest(token.encode(), secret.encode()):
        raise AuthenticationError()


@router.get("/metrics")
def metrics_endpoint(authorization: Annotated[str | None, Header()] = None) -> Response:
    _require_scrape_secret(authorization)
    # Native counters are incremented at event points; just expose registry.
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
