"""
Identity types for the admin side.

An AdminSession is created once from a magic-link callback and passed
explicitly to every admin operation.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass
class CallbackTokens:
    """Tokens carried in the URL fragment of a magic-link redirect."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str | None = None
    link_type: str | None = None  # "magiclink", "signup", "recovery"


@dataclass
class AdminSession:
    """Signed-in admin session.

    This is the single capability object for admin operations. Whether the
    holder is actually an admin is decided by the record store, not here.
    """

    email: str
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def is_authenticated(self, now: datetime | None = None) -> bool:
        """Check that the access token has not expired."""
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return (now or datetime.now(UTC)) < self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "email": self.email,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "can_refresh": self.can_refresh,
            # Tokens are never serialized
        }
