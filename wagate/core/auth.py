"""
Caller identity resolved from an API key.

Authentication happens once per request (or socket connection) and produces
an AuthContext that is threaded into every lifecycle manager call needing
authorization.
"""

import hashlib
import hmac
from dataclasses import dataclass

from wagate.core.types import Role


def owner_id_from_key(api_key: str) -> str:
    """Stable, non-reversible owner id for a user key."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:32]


@dataclass(frozen=True)
class AuthContext:
    """Role and ownership of the current caller."""

    role: Role
    owner_id: str | None = None
    key: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_access(self, owner_id: str | None) -> bool:
        """Admins see everything, users only what they own."""
        return self.is_admin or (owner_id is not None and owner_id == self.owner_id)

    def __repr__(self) -> str:
        # never leak the raw key into logs
        return f"AuthContext(role={self.role.value}, owner_id={self.owner_id})"


def resolve_api_key(
    api_key: str | None, admin_key: str | None, user_keys: list[str]
) -> AuthContext | None:
    """
    Map an API key to an AuthContext.

    Returns:
        The caller context, or None if the key is missing or unknown
    """
    if not api_key:
        return None
    if admin_key and hmac.compare_digest(api_key, admin_key):
        return AuthContext(role=Role.ADMIN, owner_id=None, key=api_key)
    if any(hmac.compare_digest(api_key, key) for key in user_keys if key):
        return AuthContext(role=Role.USER, owner_id=owner_id_from_key(api_key), key=api_key)
    return None
