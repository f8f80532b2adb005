"""
Screenshot Manager API - Rate Limiting Middleware
=================================================

What:  Per-IP sliding window rate limiter.
How:   Keeps each IP's request timestamps in memory; once the window holds
       `max_requests` entries further requests get a 429 envelope with a
       Retry-After header until the oldest one ages out.

Algorithm: Sliding Window Log
    1. Drop the IP's timestamps older than `window_seconds`
    2. If the remaining count >= `max_requests`, reject with 429
    3. Otherwise record the current timestamp and pass the request on

Scope:
    Counters live in this process only. Several uvicorn workers each keep
    their own window, so the effective limit is multiplied by the worker count.
"""

import logging
import time
from collections import defaultdict
from typing import Callable, Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from screenshot_manager.exceptions import RateLimitExceededError
from screenshot_manager.middleware.request_id import request_id_var
from screenshot_manager.schemas.screenshot import ErrorResponse

logger = logging.getLogger(__name__)

CLEANUP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        max_requests:   Requests allowed per IP inside one window.
        window_seconds: Window length.
        clock:          Time source, replaceable in tests.

    Health checks, API docs and CORS preflights are never limited.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(
        self,
        app,
        max_requests: int = 300,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method == "OPTIONS" or request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = self._clock()
        window_start = now - self.window_seconds

        history = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = history

        if len(history) >= self.max_requests:
            retry_after = int(history[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip, len(history), self.window_seconds,
            )
            return self._reject(RateLimitExceededError(retry_after=retry_after))

        history.append(now)

        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    @staticmethod
    def _reject(exc: RateLimitExceededError) -> JSONResponse:
        body = ErrorResponse(
            error=exc.message,
            details={"retry_after": exc.retry_after},
            request_id=request_id_var.get("") or None,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(),
            headers={"Retry-After": str(exc.retry_after)},
        )

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        """Forget IPs with no requests inside the current window."""
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
