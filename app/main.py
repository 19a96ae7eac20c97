from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import JSONResponse, Response

from app.api.billing import router as billing_router
from app.api.webhooks import router as webhooks_router
from app.config import settings, validate_settings
from app.db import SessionLocal
from app.errors import register_error_handlers
from app.logging import configure_logging
from app.observability import ObservabilityMiddleware
from app.services.billing.errors import CacheError
from app.services.cache import CacheStore
from app.telemetry import setup_otel

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # type: ignore[arg-type]
    # ── Startup ──────────────────────────────────────────
    for w in validate_settings(settings):
        logger.warning("Config warning: %s", w)
    logger.info(
        "Application started (pid=%s, webhook events=%s)",
        os.getpid(),
        ",".join(settings.stripe_webhook_events),
    )
    yield

    # ── Shutdown ─────────────────────────────────────────
    logger.info("Application shutting down")


app = FastAPI(title="Paysync API", lifespan=lifespan)

configure_logging()
setup_otel(app)
register_error_handlers(app)

# ── Middleware (last added = first executed) ─────────────
cors_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
app.add_middleware(ObservabilityMiddleware)

# Billing routes are served unversioned and under /api/v1. The webhook URL is
# registered with Stripe and stays unversioned.
app.include_router(billing_router)
app.include_router(billing_router, prefix="/api/v1")
app.include_router(webhooks_router)


# ── Health Checks ────────────────────────────────────────


def _check_database() -> str:
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return f"error: {e.__class__.__name__}"
    return "ok"


def _check_cache() -> str:
    try:
        CacheStore().ping()
    except CacheError as e:
        return f"error: {e.__cause__ or e}"
    return "ok"


def _check_provider() -> str:
    if not settings.stripe_secret_key:
        return "error: STRIPE_SECRET_KEY not set"
    return "ok"


@app.get("/health")
def health_check() -> dict[str, str]:
    """Liveness probe, ok whenever the process is running."""
    return {"status": "ok"}


@app.get("/health/ready")
def readiness_check() -> JSONResponse:
    """Readiness probe: database, snapshot cache and provider credentials."""
    checks = {
        "database": _check_database(),
        "redis": _check_cache(),
        "stripe": _check_provider(),
    }
    all_ok = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ok" if all_ok else "degraded", "checks": checks},
    )


@app.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
