"""
Magic-link login flow for the admin console.

1. ``request_magic_link`` asks the hosted provider to email a link that
   redirects back to the dashboard.
2. The redirect carries tokens in the URL fragment
   (``#access_token=...&refresh_token=...&expires_in=3600&type=magiclink``).
3. ``establish_session`` parses the fragment, resolves the email through
   the provider and returns an AdminSession.
"""

from __future__ import annotations

import logging
import urllib.parse
from datetime import UTC, datetime, timedelta

from ..exceptions import AuthenticationRequiredError, ValidationError
from .provider import MagicLinkProvider
from .types import AdminSession, CallbackTokens

logger = logging.getLogger(__name__)


def parse_callback_fragment(fragment: str) -> CallbackTokens | None:
    """Extract tokens from a magic-link redirect fragment.

    Accepts the fragment with or without the leading ``#``, or a full URL.

    Returns:
        CallbackTokens, or None when no access token is present
    """
    if "#" in fragment:
        fragment = fragment.split("#", 1)[1]
    params = urllib.parse.parse_qs(fragment, keep_blank_values=True)

    access_token = _first(params, "access_token")
    if not access_token:
        return None

    expires_in = _first(params, "expires_in")
    return CallbackTokens(
        access_token=access_token,
        # An empty refresh token is reported as absent, not as ""
        refresh_token=_first(params, "refresh_token") or None,
        expires_in=int(expires_in) if expires_in and expires_in.isdigit() else None,
        token_type=_first(params, "token_type"),
        link_type=_first(params, "type"),
    )


def _first(params: dict[str, list[str]], key: str) -> str | None:
    values = params.get(key)
    return values[0] if values else None


async def request_magic_link(provider: MagicLinkProvider, email: str, redirect_to: str) -> None:
    """Send an admin sign-in link."""
    email = (email or "").strip()
    if "@" not in email:
        raise ValidationError("email", "not an email address", email)
    await provider.send_magic_link(email, redirect_to)
    logger.info("Magic link requested", extra={"email": email})


async def establish_session(
    provider: MagicLinkProvider,
    fragment: str,
    now: datetime | None = None,
) -> AdminSession:
    """Build an AdminSession from a magic-link redirect.

    A callback without a refresh token still yields a session; it stays
    valid until the access token expires and cannot be refreshed.

    Raises:
        AuthenticationRequiredError: If the fragment carries no access token
        AuthenticationError: If the provider rejects the token
    """
    tokens = parse_callback_fragment(fragment)
    if tokens is None:
        raise AuthenticationRequiredError("Magic-link callback carried no access token")

    if tokens.refresh_token is None:
        logger.warning("Magic-link callback had no refresh token; session cannot be refreshed")

    email = await provider.get_user_email(tokens.access_token)

    expires_at = None
    if tokens.expires_in is not None:
        expires_at = (now or datetime.now(UTC)) + timedelta(seconds=tokens.expires_in)

    return AdminSession(
        email=email,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=expires_at,
    )
