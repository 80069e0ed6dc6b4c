"""Decision types for admin access checks."""

from dataclasses import dataclass
from enum import Enum

# Reasons an AccessDecision can carry
REASON_ADMIN = "admin"
REASON_NOT_AUTHENTICATED = "not_authenticated"
REASON_NOT_ADMIN = "not_admin"


class Permission(Enum):
    """Admin console operations. Every admin holds all of them."""

    VIEW_LOGS = "view_logs"
    MANAGE_DOCUMENTS = "manage_documents"


@dataclass
class AccessDecision:
    """Outcome of an admin check, with the email it was made for."""

    allowed: bool
    reason: str
    permission: Permission
    email: str | None = None
