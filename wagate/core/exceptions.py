"""
Domain exceptions raised by the session gateway core.

Routes translate these into HTTP status codes; background tasks log them.
"""


class GatewayError(Exception):
    """Base class for all gateway errors."""

    pass


class SessionNotFoundError(GatewayError):
    """Raised when an operation targets a session id that is not known."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionAccessDeniedError(GatewayError):
    """Raised when the caller does not own the session it addresses."""

    def __init__(self, session_id: str):
        super().__init__(f"Forbidden: {session_id}")
        self.session_id = session_id


class SessionNotReadyError(GatewayError):
    """Raised when a send is attempted while no adapter connection is live."""

    def __init__(self, session_id: str, status: str):
        super().__init__(f"Session {session_id} is not connected (status={status})")
        self.session_id = session_id
        self.status = status


class CredentialStoreError(GatewayError):
    """Raised when credential material cannot be read or written."""

    pass


class UnsupportedActionError(GatewayError):
    """Raised for outbound operations the gateway does not know how to build."""

    pass
