"""
HTTP magic-link provider.

Talks to a GoTrue-style hosted auth REST API:
- POST {auth_url}/otp        send a sign-in link
- GET  {auth_url}/user       resolve an access token
- POST {auth_url}/logout     revoke a session
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from ..exceptions import AuthenticationError, StorageConnectionError
from .provider import MagicLinkProvider
from .types import AdminSession

logger = logging.getLogger(__name__)


class HttpMagicLinkProvider(MagicLinkProvider):
    """Magic-link provider backed by the hosted auth REST endpoint."""

    def __init__(
        self,
        auth_url: str,
        api_key: str,
        timeout: float = 10.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            auth_url: Auth endpoint root, e.g. https://xyz.example.co/auth/v1
            api_key: Public API key of the project
            timeout: Request timeout in seconds
            session: Optional shared client session (owned by the caller)
        """
        self.auth_url = auth_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    @classmethod
    def from_config(cls, config: Any) -> "HttpMagicLinkProvider":
        """Create a provider from a GateConfig."""
        if not config.auth_url or not config.auth_api_key:
            raise AuthenticationError("auth", "auth_url and auth_api_key must be configured")
        return cls(config.auth_url, config.auth_api_key)

    def _headers(self, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer or self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        bearer: str | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        url = f"{self.auth_url}{path}"
        try:
            if self._session is not None:
                return await self._send(self._session, method, url, bearer, json_body, params)
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                return await self._send(session, method, url, bearer, json_body, params)
        except aiohttp.ClientError as e:
            raise StorageConnectionError(self.auth_url, e) from e

    async def _send(
        self,
        session: aiohttp.ClientSession,
        method: str,
        url: str,
        bearer: str | None,
        json_body: dict[str, Any] | None,
        params: dict[str, str] | None,
    ) -> dict[str, Any]:
        async with session.request(
            method, url, headers=self._headers(bearer), json=json_body, params=params
        ) as response:
            if response.status in (401, 403):
                raise AuthenticationError(self.auth_url, f"HTTP {response.status}")
            if response.status >= 400:
                body = await response.text()
                raise AuthenticationError(self.auth_url, f"HTTP {response.status}: {body}")
            if response.content_type == "application/json":
                return await response.json() or {}
            return {}

    async def send_magic_link(self, email: str, redirect_to: str) -> None:
        await self._request(
            "POST",
            "/otp",
            json_body={"email": email, "create_user": False},
            params={"redirect_to": redirect_to},
        )

    async def get_user_email(self, access_token: str) -> str:
        user = await self._request("GET", "/user", bearer=access_token)
        email = user.get("email")
        if not email:
            raise AuthenticationError(self.auth_url, "token has no associated email")
        return email

    async def sign_out(self, session: AdminSession) -> None:
        await self._request("POST", "/logout", bearer=session.access_token)
        logger.info("Admin signed out", extra={"email": session.email})
