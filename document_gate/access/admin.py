"""Admin authorization against the record store's admin lookup."""

import logging

from ..exceptions import AuthenticationRequiredError, PermissionDeniedError
from ..identity.types import AdminSession
from ..protocol import RecordStore
from .permissions import (
    REASON_ADMIN,
    REASON_NOT_ADMIN,
    REASON_NOT_AUTHENTICATED,
    AccessDecision,
    Permission,
)

logger = logging.getLogger(__name__)


class AdminGuard:
    """Decides whether a session may use the admin console.

    The only rule is "has a row in the admin table". Every check goes to
    the record store; nothing is cached and the visitor gate token is
    never consulted.
    """

    def __init__(self, records: RecordStore):
        self.records = records

    async def check(
        self,
        session: AdminSession | None,
        required: Permission = Permission.MANAGE_DOCUMENTS,
    ) -> AccessDecision:
        """Check if a session holds the admin role.

        Args:
            session: Signed-in session (None when signed out)
            required: Operation being attempted

        Returns:
            AccessDecision with allowed status and reason
        """
        if session is None or not session.is_authenticated():
            return AccessDecision(False, REASON_NOT_AUTHENTICATED, required)

        if await self.records.is_admin(session.email):
            return AccessDecision(True, REASON_ADMIN, required, email=session.email)

        logger.warning(
            f"Non-admin attempted {required.value}", extra={"email": session.email}
        )
        return AccessDecision(False, REASON_NOT_ADMIN, required, email=session.email)

    async def require(
        self,
        session: AdminSession | None,
        required: Permission = Permission.MANAGE_DOCUMENTS,
    ) -> AdminSession:
        """Like ``check`` but raises instead of returning a refusal.

        Raises:
            AuthenticationRequiredError: If the session is missing or expired
            PermissionDeniedError: If the email is not in the admin table
        """
        decision = await self.check(session, required)
        if decision.allowed and session is not None:
            return session
        if decision.reason == REASON_NOT_AUTHENTICATED:
            raise AuthenticationRequiredError()
        raise PermissionDeniedError(decision.email or "", decision.reason)
