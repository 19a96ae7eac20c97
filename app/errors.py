"""Structured error handlers with request_id correlation.

Every error response includes a consistent envelope:
    {
        "code": "error_code",
        "message": "Human-readable message",
        "details": null | object,
        "request_id": "uuid"
    }

Billing errors carry their own ``code`` and HTTP status. Webhook rejections
use the same envelope; any non-2xx answer makes Stripe redeliver the event.
"""
from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.services.billing.errors import BillingError

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str:
    """Extract request_id set by ObservabilityMiddleware."""
    return getattr(request.state, "request_id", "unknown")


def _respond(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: object = None,
) -> JSONResponse:
    request_id = _get_request_id(request)
    return JSONResponse(
        status_code=status_code,
        content={
            "code": code,
            "message": message,
            "details": details,
            "request_id": request_id,
        },
        headers={"x-request-id": request_id},
    )


def _http_error_parts(exc: HTTPException) -> tuple[str, str, object]:
    detail = exc.detail
    if isinstance(detail, dict):
        return (
            detail.get("code", f"http_{exc.status_code}"),
            detail.get("message", "Request failed"),
            detail.get("details"),
        )
    if isinstance(detail, str):
        return f"http_{exc.status_code}", detail, None
    return f"http_{exc.status_code}", "Request failed", detail


def register_error_handlers(app: object) -> None:
    @app.exception_handler(BillingError)  # type: ignore[arg-type]
    async def billing_exception_handler(
        request: Request, exc: BillingError
    ) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            "Billing error on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            extra={"request_id": _get_request_id(request), "reason": exc.code},
            exc_info=exc.status_code >= 500,
        )
        return _respond(request, exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(HTTPException)  # type: ignore[arg-type]
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        code, message, details = _http_error_parts(exc)
        return _respond(request, exc.status_code, code, message, details)

    @app.exception_handler(RequestValidationError)  # type: ignore[arg-type]
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
            extra={"request_id": _get_request_id(request)},
        )
        return _respond(
            request, 422, "validation_error", "Validation error", exc.errors()
        )

    @app.exception_handler(Exception)  # type: ignore[arg-type]
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled exception on %s %s",
            request.method,
            request.url.path,
            extra={"request_id": _get_request_id(request)},
        )
        return _respond(request, 500, "internal_error", "Internal server error")
