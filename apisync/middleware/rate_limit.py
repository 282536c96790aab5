"""
API Sync Backend - Rate Limiting Middleware
============================================

What:  Per-client sliding-window limit of `rate_limit_requests` requests per
       `rate_limit_window` seconds.
How:   Keeps a deque of request timestamps per client IP. Expired stamps are
       popped from the left on each request; a full deque means 429 with a
       `Retry-After` header.

State is per process. Multi-worker deployments get one budget per worker.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from apisync.config import settings
from apisync.exceptions import RateLimitExceededError
from apisync.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Args:
        max_requests / window_seconds: override the configured limits
            (tests use small values).
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)

    def check(self, client: str, now: Optional[float] = None) -> None:
        """
        Record one request for `client`.

        Raises:
            RateLimitExceededError: the window is already full.
        """
        now = time.monotonic() if now is None else now
        stamps = self._requests[client]
        window_start = now - self.window_seconds
        while stamps and stamps[0] <= window_start:
            stamps.popleft()

        if len(stamps) >= self.max_requests:
            retry_after = int(stamps[0] + self.window_seconds - now) + 1
            raise RateLimitExceededError(retry_after=retry_after)

        stamps.append(now)

    def forget_idle(self, now: Optional[float] = None) -> int:
        """Drop clients with no request inside the window. Returns how many."""
        now = time.monotonic() if now is None else now
        window_start = now - self.window_seconds
        idle = [c for c, stamps in self._requests.items() if not stamps or stamps[-1] <= window_start]
        for client in idle:
            del self._requests[client]
        return len(idle)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        try:
            self.check(client)
        except RateLimitExceededError as exc:
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds",
                client,
                self.max_requests,
                self.window_seconds,
            )
            # Exception handlers do not see errors raised in middleware.
            return JSONResponse(
                status_code=429,
                content={
                    "error": exc.error_code,
                    "message": exc.message,
                    "details": exc.context,
                    "request_id": request_id_var.get("") or None,
                },
                headers={"Retry-After": str(exc.retry_after)},
            )

        if len(self._requests) > 1000:
            self.forget_idle()

        return await call_next(request)
