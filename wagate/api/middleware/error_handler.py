"""
Global error handling middleware.

Turns anything the routes did not translate into a structured 500 response;
debug details are only included in development.
"""

import time
import traceback
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from wagate.api.utils.error_helpers import map_error_to_status
from wagate.core.config.settings import settings
from wagate.core.exceptions import GatewayError
from wagate.core.logging.logger import get_logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions and returns a JSON error body."""

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except HTTPException as http_exc:
            get_logger(__name__).warning(
                f"HTTP {http_exc.status_code} - {request.method} {request.url.path} - "
                f"Detail: {http_exc.detail}"
            )
            raise

        except GatewayError as exc:
            # domain error that a route did not translate
            status_code = map_error_to_status(exc)
            get_logger(__name__).warning(
                f"{type(exc).__name__} in {request.method} {request.url.path}: {exc}"
            )
            return JSONResponse(
                status_code=status_code,
                content={"detail": str(exc), "type": type(exc).__name__},
            )

        except Exception as exc:
            return self._handle_unexpected_exception(request, exc)

    def _handle_unexpected_exception(self, request: Request, exc: Exception) -> JSONResponse:
        get_logger(__name__).error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )

        error_response: dict[str, Any] = {
            "detail": "Internal server error",
            "type": "internal_error",
            "timestamp": time.time(),
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc().split("\n"),
            }
        return JSONResponse(status_code=500, content=error_response)
