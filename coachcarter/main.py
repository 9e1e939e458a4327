"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response, status
from sqlalchemy import text

from coachcarter.core.config import get_settings
from coachcarter.core.database import SessionLocal, close_engine
from coachcarter.core.metrics import build_metrics_response, instrument_http_request
from coachcarter.modules.audit.router import router as outbox_router
from coachcarter.modules.availability.router import router as availability_router
from coachcarter.modules.booking.router import router as booking_router
from coachcarter.modules.booking.router import webhook_router
from coachcarter.modules.payments.router import router as checkout_router
from coachcarter.shared.exceptions import register_exception_handlers
from coachcarter.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


def _warn_missing_integrations() -> None:
    missing = [
        name
        for name, value in (
            ("STRIPE_WEBHOOK_SECRET", settings.stripe_webhook_secret),
            ("STRIPE_SECRET_KEY", settings.stripe_secret_key),
            ("RESEND_API_KEY", settings.resend_api_key),
            ("STAFF_EMAIL", settings.staff_email),
        )
        if not value
    ]
    if missing:
        logger.warning("Integrations not configured: %s", ", ".join(missing))
    if not settings.slack_webhook_url:
        logger.info("SLACK_WEBHOOK_URL not set; chat alerts will be skipped")


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Application startup and shutdown hooks."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info("Starting %s (%s)", settings.app_name, settings.app_env)
    _warn_missing_integrations()

    yield

    logger.info("Shutting down %s", settings.app_name)
    await close_engine()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)
app.middleware("http")(instrument_http_request)

register_exception_handlers(app)

app.include_router(webhook_router, prefix=settings.api_prefix)
app.include_router(booking_router, prefix=settings.api_prefix)
app.include_router(checkout_router, prefix=settings.api_prefix)
app.include_router(availability_router, prefix=settings.api_prefix)
app.include_router(outbox_router, prefix=settings.api_prefix)


@app.get("/health")
async def healthcheck() -> dict[str, str]:
    """Liveness probe endpoint."""
    return {"status": "ok"}


async def _is_database_ready() -> bool:
    """Return True if DB accepts basic queries."""
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database readiness check failed")
        return False


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness probe endpoint with DB dependency check."""
    if not await _is_database_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not ready",
        )
    return {
        "status": "ready",
        "database": "ok",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(_: Request) -> Response:
    """Prometheus metrics endpoint."""
    return build_metrics_response()
