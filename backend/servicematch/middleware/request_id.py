"""
ServiceMatch Backend - Request ID Middleware
=============================================

What:  Assigns a correlation ID to each request and returns it in X-Request-ID.
Why:   Error responses carry the ID, so a client report can be matched to the
       server log lines of the same request.
How:   Accepts a well-formed client-supplied X-Request-ID, otherwise generates
       a short UUID. The ID lives in a ContextVar for the duration of the
       request and is reset afterwards.

Note:
    Background work started by a request (the notification fan-out) inherits
    a copy of the context, so its log lines carry the same ID.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_VALID_ID = re.compile(r"[A-Za-z0-9._-]{1,64}")


def resolve_request_id(header_value: str | None) -> str:
    """Client ID if it is short and log-safe, else a fresh 8-char ID."""
    if header_value and _VALID_ID.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get("X-Request-ID"))
        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers["X-Request-ID"] = rid
        return response
