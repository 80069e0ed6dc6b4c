"""
Magic-link provider abstract interface.

Defines the contract for the hosted authentication service that emails
sign-in links to admins and resolves the resulting tokens.
"""

from abc import ABC, abstractmethod

from .types import AdminSession


class MagicLinkProvider(ABC):
    """Abstract magic-link authentication provider.

    The provider is responsible for:
    - Emailing a one-time sign-in link
    - Resolving an access token to the signed-in email
    - Revoking a session on sign out
    """

    @abstractmethod
    async def send_magic_link(self, email: str, redirect_to: str) -> None:
        """Email a sign-in link that redirects to ``redirect_to``.

        Raises:
            AuthenticationError: If the provider rejects the request
        """
        ...

    @abstractmethod
    async def get_user_email(self, access_token: str) -> str:
        """Resolve the email address that owns an access token.

        Raises:
            AuthenticationError: If the token is invalid or expired
        """
        ...

    @abstractmethod
    async def sign_out(self, session: AdminSession) -> None:
        """Revoke the session at the provider."""
        ...
