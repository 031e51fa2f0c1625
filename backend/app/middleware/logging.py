"""
AiNote Backend — Request Logging Middleware
=============================================

What:  One access-log line per HTTP request.
How:   Measures the time spent below this middleware and logs method, path,
       status and duration on the "ainote.access" logger. Requests rejected
       by the AdmissionGate also name the dependencies that were not ready
       (the 503 handler leaves them in request.state).
When:  Runs inside RequestIDMiddleware, so the request ID is already set.

Levels:
    5xx → ERROR, except admission rejections (503), which are WARNING: the
          service is degraded, not broken, and each one is already explained
          by the startup log
    4xx → WARNING, everything else → INFO
    GET / is polled by the UI and health checks and is logged at DEBUG.

Request bodies are never logged (note content is user data).
"""

import logging
import time
from typing import Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("ainote.access")

QUIET_PATHS = frozenset({"/"})

# Set by the ServiceUnavailableError handler in main.py
UNAVAILABLE_STATE_KEY = "unavailable_dependencies"


def access_log_level(path: str, status: int, rejected: bool) -> int:
    if rejected:
        return logging.WARNING
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path in QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status, duration and admission outcome per request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        rid = request_id_var.get("")
        status = response.status_code
        unavailable: Sequence[str] = getattr(request.state, UNAVAILABLE_STATE_KEY, ())
        rejected = status == 503 and bool(unavailable)

        message = "%s %s %d %.1fms [%s]"
        args = [request.method, request.url.path, status, duration_ms, rid]
        if rejected:
            message += " unavailable=%s"
            args.append(",".join(unavailable))

        logger.log(
            access_log_level(request.url.path, status, rejected),
            message,
            *args,
            extra={
                "request_id": rid,
                "path": request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "unavailable": list(unavailable),
            },
        )
        return response
