import logging
import uuid

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app import metrics
from app.core.exceptions import SeatBillingException

logger = logging.getLogger("app.errors")


def register_error_handlers(app):
    @app.exception_handler(SeatBillingException)
    async def seat_billing_exception(request: Request, exc: SeatBillingException):
        metrics.billing_error(exc.code)
        if exc.status_code >= 500:
            logger.warning("Billing failure code=%s path=%s details=%s", exc.code, request.url.path, exc.details)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception(request: Request, exc: RequestValidationError):
        metrics.billing_error("validation_error")
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "ok": False,
                "code": "validation_error",
                "reason": "invalid_request",
                "message": "Request body is invalid.",
                "details": {"errors": errors},
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):  # noqa: BLE001
        correlation_id = uuid.uuid4().hex
        logger.exception("Unhandled error cid=%s path=%s method=%s", correlation_id, request.url.path, request.method)
        return JSONResponse(
            status_code=500,
            content={"ok": False, "code": "internal_error", "message": "Internal server error", "cid": correlation_id},
        )

    return app
