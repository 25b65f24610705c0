"""
AutismCad Backend — Request Logging Middleware
===============================================

What:  One access log line per HTTP request with status and duration.
How:   Measures with perf_counter around call_next; level follows the status
       class (5xx → ERROR, 4xx → WARNING, else INFO).

What we log vs what we DON'T log (privacy):
    ✅ method, path, status, duration, IP, request ID
    ❌ request bodies (patient data, passwords), Authorization headers
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from autismcad.middleware.request_id import client_ip, request_id_var

logger = logging.getLogger("autismcad.access")

# Polled every few seconds by the orchestrator
QUIET_PATHS = {"/health", "/api/health"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration for every request except health checks."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method
        ip = client_ip(request)

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        rid = request_id_var.get("")
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
            method,
            path,
            status,
            duration_ms,
            rid,
            ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": ip,
            },
        )
        return response
