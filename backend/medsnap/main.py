"""
MedSnap Backend — FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes app configuration, middleware registration, route mounting,
       and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn medsnap.main:app).

Application Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │                       FastAPI App                         │
    │                                                           │
    │  Middleware Chain:                                        │
    │  ┌────────────┐ ┌──────────┐ ┌─────────┐ ┌─────────────┐  │
    │  │ Rate Limit │→│  Req ID  │→│ Logging │→│ GZip / CORS │  │
    │  └────────────┘ └──────────┘ └─────────┘ └─────────────┘  │
    │                                                           │
    │  Routes:                                                  │
    │  ┌──────────┐ ┌───────────┐ ┌─────────┐ ┌──────┐ ┌──────┐ │
    │  │ billing  │ │ documents │ │ profile │ │files │ │health│ │
    │  └──────────┘ └───────────┘ └─────────┘ └──────┘ └──────┘ │
    │                                                           │
    │  Exception Handlers:                                      │
    │  ┌─────────────────────────────────────────────────────┐  │
    │  │ MedSnapError → its status_code │ Exception → 500    │  │
    │  └─────────────────────────────────────────────────────┘  │
    └───────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → configuration warnings → storage directory
    Shutdown: dispose database engine → close the storage HTTP client
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from medsnap import __version__
from medsnap.config import settings
from medsnap.database import dispose_engine
from medsnap.dependencies import build_blob_storage
from medsnap.exceptions import MedSnapError, RateLimitExceededError
from medsnap.middleware.logging import RequestLoggingMiddleware
from medsnap.middleware.rate_limit import RateLimitMiddleware
from medsnap.middleware.request_id import RequestIDMiddleware, request_id_var
from medsnap.routes import billing, documents, files, health, profile
from medsnap.services.supabase_storage import SupabaseBlobStorage

logger = logging.getLogger(__name__)

# Context keys safe to echo back to the client
_PUBLIC_DETAIL_KEYS = {"field", "document_count", "limit", "retry_after", "resource", "resource_id"}


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s to stdout.
    Third-party loggers that chatter on every call are raised to WARNING.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx", "stripe"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("MedSnap Backend %s starting up...", __version__)

    # Missing secrets do not stop the server; the endpoints that need them
    # answer 500 "... not configured" instead.
    for warning in settings.startup_warnings():
        logger.warning("Configuration: %s", warning)

    if settings.storage_backend == "local":
        storage = Path(settings.storage_root)
        storage.mkdir(parents=True, exist_ok=True)
        logger.info("Storage directory: %s", storage.resolve())
    else:
        logger.info("Storage bucket: %s", settings.storage_bucket)

    logger.info("Free upload limit: %d", settings.free_upload_limit)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("MedSnap Backend shutting down...")
    await dispose_engine()
    if build_blob_storage.cache_info().currsize:
        storage_client = build_blob_storage()
        if isinstance(storage_client, SupabaseBlobStorage):
            await storage_client.aclose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(exc: MedSnapError, rid: str) -> dict:
    body = {"error": exc.message, "code": exc.code, "request_id": rid}
    details = {k: v for k, v in exc.context.items() if k in _PUBLIC_DETAIL_KEYS}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to JSON error responses.

    Every MedSnapError carries its own status_code and code, so one handler
    covers the hierarchy:
        ValidationError / WebhookSignatureError → 400
        AuthenticationError                     → 401
        UploadLimitError                        → 403
        NotFoundError                           → 404
        RateLimitExceededError                  → 429 (+ Retry-After)
        Configuration / FileStorage / Payment / Database errors → 500

    Response body: {"error": message, "code": code, "details"?, "request_id"}.
    Full context is logged server-side; only whitelisted keys reach the client.
    """

    @app.exception_handler(MedSnapError)
    async def handle_medsnap_error(request: Request, exc: MedSnapError):
        rid = request_id_var.get("")
        if exc.status_code >= 500:
            logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        else:
            logger.warning("[%s] %s: %s", rid, type(exc).__name__, exc.message)

        headers = {}
        if isinstance(exc, RateLimitExceededError):
            headers["Retry-After"] = str(exc.retry_after)

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc, rid),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: stack trace to the log, generic message to the client."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "An unexpected error occurred. Please try again or contact support.",
                "code": "internal_server_error",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="MedSnap API",
        description=(
            "Personal clinical guideline library: upload PDFs, images, and Word "
            "documents, organize them by category and tags, and search them. "
            "Free accounts have an upload quota; Pro subscriptions are billed through Stripe."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in reverse order of addition: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        # Browsers reject credentials with a wildcard origin
        allow_credentials=settings.cors_origins_list != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(billing.router)
    app.include_router(documents.router)
    app.include_router(profile.router)
    app.include_router(files.router)
    app.include_router(health.router)

    return app


app = create_app()
