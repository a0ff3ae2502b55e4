from .auth_dependencies import (
    extract_api_key,
    get_session_manager,
    require_auth,
)
from .limit_dependencies import anti_spam, rate_limit

__all__ = [
    "anti_spam",
    "extract_api_key",
    "get_session_manager",
    "rate_limit",
    "require_auth",
]
