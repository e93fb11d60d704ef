"""
WhisperLog Backend — Request ID Middleware
============================================

What:  Assigns a correlation ID to every request and echoes it back in the
       X-Request-ID response header.
Why:   Processing requests fan out into several vendor calls and retries;
       one ID ties all of their log lines to the request the user reports.
How:   The ID lives in a ContextVar, so concurrent requests on one event loop
       never see each other's value. RequestIdLogFilter copies it onto every
       log record for the `%(request_id)s` format field.

A client-supplied X-Request-ID is reused when it is short and made of safe
characters; anything else is replaced with a fresh ID.
"""

import logging
import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex[:12]


class RequestIdLogFilter(logging.Filter):
    """Adds `request_id` to each record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        supplied = request.headers.get(REQUEST_ID_HEADER, "")
        rid = supplied if _SAFE_REQUEST_ID.match(supplied) else new_request_id()

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
