"""
MedSnap Backend — Health Check Route
======================================

What:  Health check endpoint for monitoring and load balancer probes.
Why:   Load balancers route away from instances that cannot serve requests.
How:   Checks the database and blob storage; reports whether Stripe is
       configured (no network call to Stripe on every probe).

Status levels:
    healthy:   database and storage reachable, Stripe configured
    degraded:  storage unreachable or Stripe not configured (HTTP 200)
    unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text

from medsnap import __version__
from medsnap.config import settings
from medsnap.database import engine
from medsnap.dependencies import build_blob_storage
from medsnap.exceptions import ConfigurationError
from medsnap.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    storage_status = "available"
    payments_status = "configured"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Blob Storage ────────────────────────────────────────────────
    try:
        if not await build_blob_storage().health_check():
            storage_status = "unavailable"
    except ConfigurationError:
        storage_status = "not_configured"
    if storage_status != "available" and overall == "healthy":
        overall = "degraded"

    # ── Check Stripe Configuration ────────────────────────────────────────
    if not (settings.stripe_secret_key and settings.stripe_webhook_secret):
        payments_status = "not_configured"
        if overall == "healthy":
            overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage=storage_status,
        payments=payments_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
