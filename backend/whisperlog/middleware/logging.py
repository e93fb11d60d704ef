"""
WhisperLog Backend — Access Log Middleware
============================================

What:  One log line per request: method, path, status, duration, client.
Why:   Processing latency is dominated by vendor calls; the access log is
       where slow or failing requests show up first.

Bodies are never logged. They carry user notes, base64 recordings and
passwords. /health is skipped because probes hit it constantly.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("whisperlog.access")

QUIET_PATHS = frozenset({"/health"})


def _level_for(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        client_ip = request.client.host if request.client else "unknown"
        logger.log(
            _level_for(response.status_code),
            "%s %s %d %.1fms from %s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            client_ip,
            extra={
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
