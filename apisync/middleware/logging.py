"""
API Sync Backend - Access Logging Middleware
=============================================

What:  One log line per request on the `apisync.access` logger:
           PUT /api/endpoints/<id>/specs/backend 200 12.4ms [3f9a0c1d2e4b] from 10.0.0.7
How:   Level follows the status: 5xx → ERROR, 4xx → WARNING, else INFO.
       The same values are attached as `extra` fields for JSON formatters.

Request bodies are never logged; specs can carry internal API details.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from apisync.middleware.request_id import request_id_var

logger = logging.getLogger("apisync.access")

# Probe and docs traffic
QUIET_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        client_ip = request.client.host if request.client else "unknown"
        rid = request_id_var.get("")
        status = response.status_code
        logger.log(
            _level_for(status),
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
