"""
Access log middleware.

One line per request with status and latency. Health check, docs and Socket.IO
paths are skipped. Only method and path are logged, so API keys in headers
or the ``api_key`` query parameter never reach the logs.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from wagate.core.config.settings import settings
from wagate.core.logging.logger import get_logger

QUIET_PREFIXES = ("/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico", "/socket.io")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each API call at a level derived from its status code."""

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        if settings.is_development:
            response.headers["X-Process-Time"] = str(elapsed_ms)

        path = request.url.path
        if not path.startswith(QUIET_PREFIXES):
            status = response.status_code
            logger = get_logger(__name__)
            line = f"{request.method} {path} -> {status} ({elapsed_ms}ms)"
            if status >= 500:
                logger.error(line)
            elif status >= 400:
                logger.warning(line)
            else:
                logger.info(line)
        return response
