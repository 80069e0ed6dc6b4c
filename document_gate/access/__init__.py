"""Visitor gate controller and admin access checks."""

from .admin import AdminGuard
from .controller import (
    AccessSessionController,
    DisplayState,
    GateState,
    Notice,
    NoticeLevel,
    is_valid_email,
)
from .permissions import AccessDecision, Permission

__all__ = [
    "AccessSessionController",
    "GateState",
    "DisplayState",
    "Notice",
    "NoticeLevel",
    "is_valid_email",
    "AdminGuard",
    "AccessDecision",
    "Permission",
]
