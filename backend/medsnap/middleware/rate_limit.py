"""
MedSnap Backend — Rate Limiting Middleware
============================================

What:  Per-IP sliding window rate limiter.
Why:   Bounds how hard one client can hit uploads, signing, and Stripe calls.
How:   Keeps each IP's request timestamps in memory; timestamps older than
       the window are dropped on every request.

Algorithm: Sliding Window Log
    1. Drop the IP's timestamps older than now - window
    2. If the remaining count >= limit, reject with 429
    3. Otherwise record now and let the request through

Excluded paths:
    /health and the API docs, and the Stripe webhook: Stripe delivers from a
    small pool of IPs and a 429 there would only cause redelivery storms.

Single-process only. Multiple workers each keep their own window.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from medsnap.config import settings
from medsnap.exceptions import RateLimitExceededError
from medsnap.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Configuration (from settings):
        rate_limit_requests: Max requests per window
        rate_limit_window:   Window length in seconds

    Rejections use the same JSON error shape as the exception handlers,
    with a Retry-After header.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc", "/api/stripe-webhook"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        now = time.time()
        window_start = now - settings.rate_limit_window

        # ── Slide the window ──────────────────────────────────────────────
        self._requests[client_ip] = [
            ts for ts in self._requests[client_ip] if ts > window_start
        ]

        # ── Check the limit ───────────────────────────────────────────────
        if len(self._requests[client_ip]) >= settings.rate_limit_requests:
            oldest = self._requests[client_ip][0]
            retry_after = int(oldest + settings.rate_limit_window - now) + 1
            exc = RateLimitExceededError(retry_after=retry_after)

            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(self._requests[client_ip]),
                settings.rate_limit_window,
            )

            return JSONResponse(
                status_code=exc.status_code,
                content={
                    "error": exc.message,
                    "code": exc.code,
                    "details": {"retry_after": retry_after},
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        self._requests[client_ip].append(now)

        # Every 1000th recorded request, forget IPs that went quiet
        if sum(len(v) for v in self._requests.values()) % 1000 == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
