"""
WhisperLog Backend — Rate Limiting Middleware
===============================================

What:  Per-IP sliding-window limit on API requests.
Why:   Every processing request can turn into several paid vendor calls;
       an unthrottled client can exhaust the provider quota for everyone.
How:   A deque of request timestamps per client IP. Entries older than the
       window are dropped on each request; a full deque means 429.

State is in process memory, so the limit applies per worker.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from whisperlog.config import settings
from whisperlog.exceptions import RateLimitExceededError
from whisperlog.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Sweep idle clients every N tracked requests
SWEEP_INTERVAL = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})

    def __init__(self, app, max_requests: Optional[int] = None, window_seconds: Optional[int] = None):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._since_sweep = 0

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        hits = self._hits[client_ip]
        while hits and hits[0] <= now - self.window_seconds:
            hits.popleft()

        if len(hits) >= self.max_requests:
            retry_after = int(hits[0] + self.window_seconds - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds",
                client_ip,
                len(hits),
                self.window_seconds,
            )
            error = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content={
                    "error": error.error_code,
                    "message": error.message,
                    "details": error.context,
                    "request_id": request_id_var.get("") or None,
                },
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)
        self._since_sweep += 1
        if self._since_sweep >= SWEEP_INTERVAL:
            self._sweep(now)
        return await call_next(request)

    def _sweep(self, now: float) -> None:
        cutoff = now - self.window_seconds
        idle = [ip for ip, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for ip in idle:
            del self._hits[ip]
        self._since_sweep = 0
        if idle:
            logger.debug("Dropped rate-limit state for %d idle clients", len(idle))
