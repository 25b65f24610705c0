"""
AutismCad Backend — Request ID Middleware
==========================================

What:  Assigns a short correlation ID to each request and echoes it back.
Why:   Error bodies carry `request_id`, so staff reports can be matched to log lines.
How:   Reuses the client's X-Request-ID header when present, else an 8-char
       UUID prefix; stored in a ContextVar (for handlers and loggers) and in
       request.state.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Sets `request_id_var`, `request.state.request_id` and the X-Request-ID response header."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())[:8]
        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response


def client_ip(request: Request) -> str:
    """
    First hop of X-Forwarded-For when the API sits behind a proxy, else the
    socket peer. Used by the rate limiter, the access log middleware and the
    login access log.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return getattr(request.client, "host", "unknown") if request.client else "unknown"
