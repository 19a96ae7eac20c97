import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.logging import bind_request_id, reset_request_id
from app.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

logger = logging.getLogger(__name__)


def _request_path(request: Request) -> str:
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return request.url.path


def _billing_context(request: Request) -> dict[str, str]:
    """Customer and account ids named in the matched route, if any."""
    params = request.scope.get("path_params") or {}
    return {
        key: str(params[key]) for key in ("customer_id", "account_id") if key in params
    }


def _record(request: Request, request_id: str, status_code: int, start: float) -> dict:
    duration_ms = (time.monotonic() - start) * 1000.0
    path = _request_path(request)
    labels = (request.method, path, str(status_code))
    REQUEST_COUNT.labels(*labels).inc()
    REQUEST_LATENCY.labels(*labels).observe(duration_ms / 1000.0)
    if status_code >= 500:
        REQUEST_ERRORS.labels(*labels).inc()
    return {
        "request_id": request_id,
        "path": path,
        "method": request.method,
        "status": status_code,
        "duration_ms": round(duration_ms, 2),
        **_billing_context(request),
    }


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = bind_request_id(request_id)
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed", extra=_record(request, request_id, 500, start))
            raise
        finally:
            reset_request_id(token)
        extra = _record(request, request_id, response.status_code, start)
        log = logger.warning if response.status_code >= 500 else logger.info
        log("request_completed", extra=extra)
        response.headers["x-request-id"] = request_id
        return response
