"""
HMAC signing helpers for webhook envelopes.
"""

import hashlib
import hmac


def sign_payload(body: str | bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest of the exact body bytes."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: str | bytes, secret: str, signature: str) -> bool:
    """Constant-time comparison of a received signature."""
    return hmac.compare_digest(sign_payload(body, secret), signature or "")
