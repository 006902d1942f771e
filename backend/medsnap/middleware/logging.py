"""
MedSnap Backend — Request Logging Middleware
==============================================

What:  One access-log line per HTTP request with status and duration.
Why:   Ties every response to its request ID and shows slow uploads and
       Stripe calls at a glance.
How:   Times the downstream call and logs at a level chosen by status:
       5xx → ERROR, 4xx → WARNING, everything else → INFO.

Logged:     method, path, status, duration, request ID, client IP
Not logged: bodies (uploaded clinical documents), query strings (signed URL
            signatures), X-User-ID
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from medsnap.middleware.request_id import request_id_var

logger = logging.getLogger("medsnap.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access logging with request-ID correlation; /health is not logged."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path == "/health":
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )

        return response
