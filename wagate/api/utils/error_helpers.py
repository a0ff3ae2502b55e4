"""
Error handling utilities for API routes.

Maps domain exceptions raised by the session core to HTTP status codes so
route handlers share one translation.
"""

from fastapi import HTTPException

from wagate.core.exceptions import (
    CredentialStoreError,
    GatewayError,
    SessionAccessDeniedError,
    SessionNotFoundError,
    SessionNotReadyError,
    UnsupportedActionError,
)

# Exception class to HTTP status code
ERROR_STATUS_MAPPING: dict[type[GatewayError], int] = {
    SessionNotFoundError: 404,
    SessionAccessDeniedError: 403,
    SessionNotReadyError: 409,
    UnsupportedActionError: 400,
    CredentialStoreError: 500,
}


def map_error_to_status(exc: GatewayError, default_status: int = 500) -> int:
    for error_type, status_code in ERROR_STATUS_MAPPING.items():
        if isinstance(exc, error_type):
            return status_code
    return default_status


def http_error_for(exc: GatewayError) -> HTTPException:
    """
    Build the HTTPException for a domain error.

    Example:
        try:
            manager.stop(session_id, mode, auth=auth)
        except GatewayError as e:
            raise http_error_for(e) from e
    """
    status_code = map_error_to_status(exc)
    if isinstance(exc, SessionNotFoundError):
        detail = "Session not found"
    elif isinstance(exc, SessionAccessDeniedError):
        detail = "Forbidden"
    else:
        detail = str(exc)
    return HTTPException(status_code=status_code, detail=detail)
