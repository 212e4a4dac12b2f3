"""Bearer token lifecycle for the OpenDock MCP Server.

This module handles:
- Holding the single bearer token used for every API call
- Deciding from the token's ``exp`` claim when it must be renewed
- Renewing via /auth/refresh, falling back to a full /auth/login
"""
import httpx
import json
import time
from typing import Optional
import logging

from jwt.utils import base64url_decode

from .config import REQUEST_TIMEOUT_SECONDS, TOKEN_REFRESH_BUFFER_SECONDS
from .models import LoginRequest, OpendockConfig, TokenResponse

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when a token cannot be obtained from the auth endpoints."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TokenRefreshError(AuthenticationError):
    """Raised when /auth/refresh does not return a new token."""
    pass


class AuthManager:
    """Owns the bearer token for one credential configuration.

    The token is seeded from the static token in the configuration (if any)
    and otherwise obtained lazily. ``get_token`` returns the cached token
    while its ``exp`` claim is more than a minute away, refreshes it when it
    is about to expire, and logs in with username/password when there is no
    token or the refresh fails.

    Concurrent callers are not serialized; a race only costs redundant auth
    calls since each call replaces the cached token with a fresh one.
    """

    def __init__(
        self,
        config: OpendockConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the auth manager.

        Args:
            config: API URL and credentials
            http_client: Shared HTTP client (one is created lazily if omitted)
        """
        self._config = config
        self._api_url = config.api_url.rstrip("/")
        self._token: Optional[str] = config.token
        self._http_client = http_client
        self._owns_http_client = http_client is None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
            self._owns_http_client = True
        return self._http_client

    async def close(self):
        """Close the HTTP client if this manager created it."""
        if self._owns_http_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @property
    def http_client(self) -> Optional[httpx.AsyncClient]:
        return self._http_client

    @property
    def has_token(self) -> bool:
        """Whether a token is currently cached."""
        return self._token is not None

    # ==========================================================================
    # Token Access
    # ==========================================================================

    async def get_token(self) -> str:
        """Return a usable bearer token, renewing it if needed.

        Returns:
            The current (or freshly obtained) bearer token

        Raises:
            AuthenticationError: If no credentials are configured or login fails
        """
        if self._token and not self.is_expiring_soon(self._token):
            return self._token

        if self._token:
            try:
                self._token = await self._refresh(self._token)
                return self._token
            except (AuthenticationError, httpx.HTTPError) as e:
                logger.warning(f"[AuthManager] Token refresh failed, falling back to login: {e}")

        self._token = await self._login()
        return self._token

    def clear_token(self) -> None:
        """Drop the cached token; the next ``get_token`` logs in."""
        self._token = None

    @staticmethod
    def is_expiring_soon(token: str) -> bool:
        """Check whether a token's ``exp`` claim falls within the refresh buffer.

        Only the payload segment is decoded and the signature is never
        verified; the server is the authority on validity. Tokens that are
        not three segments, whose payload is not a JSON object, or that carry
        no numeric ``exp`` are reported as not expiring.
        """
        parts = token.split(".")
        if len(parts) != 3:
            return False

        try:
            claims = json.loads(base64url_decode(parts[1]))
        except (ValueError, TypeError):
            return False
        if not isinstance(claims, dict):
            return False

        exp = claims.get("exp")
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return False
        return exp - time.time() < TOKEN_REFRESH_BUFFER_SECONDS

    # ==========================================================================
    # Auth Endpoints
    # ==========================================================================

    async def _login(self) -> str:
        """Obtain a new token with username/password credentials."""
        if not self._config.username or not self._config.password:
            raise AuthenticationError("No credentials available for login")

        client = await self._get_http_client()
        payload = LoginRequest(email=self._config.username, password=self._config.password)

        response = await client.post(
            f"{self._api_url}/auth/login",
            json=payload.model_dump(),
            headers={"Content-Type": "application/json"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

        if not response.is_success:
            raise AuthenticationError(
                f"Login failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        try:
            token_data = TokenResponse.model_validate(response.json())
        except ValueError as e:
            raise AuthenticationError(f"Login response did not contain an access token: {e}")

        logger.info("[AuthManager] Login successful")
        return token_data.access_token

    async def _refresh(self, current_token: str) -> str:
        """Exchange the current token for a new one."""
        client = await self._get_http_client()

        response = await client.get(
            f"{self._api_url}/auth/refresh",
            headers={"Authorization": f"Bearer {current_token}"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

        if not response.is_success:
            raise TokenRefreshError(
                f"Token refresh failed ({response.status_code})",
                status_code=response.status_code,
            )

        try:
            token_data = TokenResponse.model_validate(response.json())
        except ValueError as e:
            raise TokenRefreshError(f"Token refresh response did not contain an access token: {e}")

        logger.debug("[AuthManager] Token refreshed")
        return token_data.access_token
