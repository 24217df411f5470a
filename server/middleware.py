"""HTTP middleware for request/response logging."""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

# Slow request threshold in milliseconds
SLOW_REQUEST_THRESHOLD_MS = 1000

# Long-lived streams are logged on open only
STREAMING_PATHS = frozenset({"/global/event"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every HTTP request with its status and duration.

    4xx responses and slow requests log at WARNING, 5xx at ERROR.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path in STREAMING_PATHS:
            logger.info("%s %s stream opened", request.method, path)
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            level, suffix = logging.ERROR, ""
        elif status >= 400:
            level, suffix = logging.WARNING, ""
        elif duration_ms > SLOW_REQUEST_THRESHOLD_MS:
            level, suffix = logging.WARNING, " SLOW"
        else:
            level, suffix = logging.INFO, ""
        logger.log(level, "%s %s -> %d (%.1fms)%s", request.method, path, status, duration_ms, suffix)
        return response
