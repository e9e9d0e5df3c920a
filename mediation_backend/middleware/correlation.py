"""
Correlation ID Middleware
=========================

Tags every request with an X-Correlation-ID (taken from the client or
generated) so log lines of one HTTP call can be grouped.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        # Consent tokens live in the path; log the route prefix only
        path = request.url.path
        if path.startswith("/api/v1/public/consent/"):
            path = "/api/v1/public/consent/<token>"

        logger.info(
            f"{request.method} {path} -> {response.status_code} "
            f"({elapsed_ms:.1f}ms) [{correlation_id}]"
        )
        response.headers["X-Correlation-ID"] = correlation_id
        return response
