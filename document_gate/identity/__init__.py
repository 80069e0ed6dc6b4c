"""
Admin identity.

Magic-link sign-in through a hosted auth provider, producing an explicit
AdminSession that is passed to admin operations.
"""

from .http_provider import HttpMagicLinkProvider
from .login import establish_session, parse_callback_fragment, request_magic_link
from .provider import MagicLinkProvider
from .types import AdminSession, CallbackTokens

__all__ = [
    # Types
    "AdminSession",
    "CallbackTokens",
    # Providers
    "MagicLinkProvider",
    "HttpMagicLinkProvider",
    # Login flow
    "request_magic_link",
    "parse_callback_fragment",
    "establish_session",
]
