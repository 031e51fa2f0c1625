"""
AiNote Backend — Request ID Middleware
========================================

What:  Assigns an ID to every request and echoes it in the X-Request-ID
       response header.
How:   A client-supplied X-Request-ID is reused when it is a short token of
       letters, digits, '.', '_' or '-'; anything else (empty, too long,
       spaces, control characters) is replaced by a short UUID so it cannot
       break log lines. The ID is kept in a ContextVar for log lines and
       error bodies of the same request.
When:  Outermost application middleware (runs before request logging).
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

_CLIENT_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")

# Coroutine-local: concurrent requests on the same thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def resolve_request_id(header_value: str | None) -> str:
    """Return the client's ID if it is usable, otherwise a fresh one."""
    if header_value and _CLIENT_ID_PATTERN.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware that assigns a correlation ID to each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))

        request_id_var.set(rid)
        request.state.request_id = rid

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
