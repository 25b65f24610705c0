"""
AutismCad Backend — Rate Limiting Middleware
=============================================

What:  Per-IP sliding window limits, with a tighter bucket for the login route.
Why:   POST /api/auth/login is the brute-force target; everything else only
       needs a ceiling that keeps one client from starving the clinic.
How:   Each (bucket, IP) pair keeps its request timestamps. Timestamps older
       than the bucket window are dropped on every hit; at the bucket limit the
       request is rejected with 429 RATE_LIMITED and a Retry-After header.

Single-process only: the counters live in this worker's memory.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from autismcad.config import settings
from autismcad.exceptions import RateLimitExceededError
from autismcad.middleware.request_id import client_ip

logger = logging.getLogger(__name__)

LOGIN_PATH = "/api/auth/login"


class SlidingWindow:
    """Timestamps per key inside a moving `window` seconds; at most `limit` of them."""

    def __init__(self, limit: int, window: int, clock: Callable[[], float] = time.time):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._hits: Dict[str, List[float]] = defaultdict(list)
        self._since_sweep = 0

    def hit(self, key: str) -> Optional[int]:
        """Record a hit for `key`. Returns None when allowed, else the Retry-After seconds."""
        now = self._clock()
        window_start = now - self.window
        hits = [ts for ts in self._hits[key] if ts > window_start]

        if len(hits) >= self.limit:
            self._hits[key] = hits
            return int(hits[0] + self.window - now) + 1

        hits.append(now)
        self._hits[key] = hits

        self._since_sweep += 1
        if self._since_sweep >= 1000:
            self.sweep(window_start)
        return None

    def sweep(self, window_start: float) -> int:
        """Forget keys with no hits after `window_start`."""
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in stale:
            del self._hits[key]
        self._since_sweep = 0
        if stale:
            logger.debug("Rate limiter forgot %d idle clients", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._hits)


class RateLimitMiddleware(BaseHTTPMiddleware):

    EXCLUDED_PATHS = {"/health", "/api/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self.general = SlidingWindow(settings.rate_limit_requests, settings.rate_limit_window)
        self.login = SlidingWindow(settings.login_rate_limit_requests, settings.login_rate_limit_window)

    def bucket_for(self, request: Request) -> Optional[SlidingWindow]:
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return None
        if path == LOGIN_PATH and request.method == "POST":
            return self.login
        return self.general

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        bucket = self.bucket_for(request)
        if bucket is None:
            return await call_next(request)

        ip = client_ip(request)
        retry_after = bucket.hit(ip)
        if retry_after is None:
            return await call_next(request)

        logger.warning(
            "Rate limit exceeded for IP %s on %s: %d requests in %ds",
            ip,
            request.url.path,
            bucket.limit,
            bucket.window,
        )
        # Runs before RequestIDMiddleware and outside the exception handlers
        exc = RateLimitExceededError(retry_after=retry_after)
        content = exc.to_payload()
        content["request_id"] = request.headers.get("X-Request-ID", "")
        return JSONResponse(
            status_code=exc.status,
            content=content,
            headers={"Retry-After": str(retry_after)},
        )
