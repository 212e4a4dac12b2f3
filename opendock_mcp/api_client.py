"""API Client for the OpenDock scheduling API.

Every request carries a bearer token from the AuthManager. The client
recovers from three transient conditions with a single retry each:

- 401: the cached token is dropped and the request is sent again
- 429: the request is sent again after the Retry-After delay
- 502/503/504: the request is sent again after a fixed delay

Whatever the retry returns is final. Transport errors are never retried.
"""
import asyncio
import httpx
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional
import logging

from .config import (
    REQUEST_TIMEOUT_SECONDS,
    RETRY_DELAY_SECONDS,
    MAX_RETRY_DELAY_SECONDS,
    RETRYABLE_STATUS_CODES,
)
from .models import QueryParams
from .token_manager import AuthManager

logger = logging.getLogger(__name__)

LEADING_SECONDS_RE = re.compile(r"\s*([+-]?\d+)")


class APIError(Exception):
    """Raised when an API request ends with a non-2xx response."""
    def __init__(self, status_code: int, body: str):
        super().__init__(f"API error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


def parse_retry_after(header: Optional[str], now: Optional[datetime] = None) -> float:
    """Convert a Retry-After header into a delay in seconds.

    Accepts either a number of seconds (only the leading integer is read,
    so "5.5" and "5s" mean 5) or an HTTP date. Missing or
    unparseable values give the default retry delay; the result never
    exceeds MAX_RETRY_DELAY_SECONDS.
    """
    if not header:
        return RETRY_DELAY_SECONDS

    match = LEADING_SECONDS_RE.match(header)
    if match:
        return min(max(0.0, float(int(match.group(1)))), MAX_RETRY_DELAY_SECONDS)

    try:
        retry_at = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return RETRY_DELAY_SECONDS

    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    delay = (retry_at - now).total_seconds()
    return min(max(0.0, delay), MAX_RETRY_DELAY_SECONDS)


def build_query(query: Optional[QueryParams]) -> list[tuple[str, str]]:
    """Flatten query parameters into ordered key/value pairs.

    Scalars appear once per key, sequences become repeated keys in order,
    and ``None`` values are left out entirely.
    """
    if not query:
        return []

    params: list[tuple[str, str]] = []
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            params.extend((key, str(item)) for item in value)
        elif isinstance(value, bool):
            params.append((key, "true" if value else "false"))
        else:
            params.append((key, str(value)))
    return params


class ApiClient:
    """Client for the OpenDock REST API.

    This client:
    - Gets a bearer token from the AuthManager before each request
    - Retries once on 401 (fresh token), 429 (Retry-After) and 502/503/504
    - Decodes JSON responses and raises APIError for anything else
    """

    def __init__(
        self,
        base_url: str,
        auth: AuthManager,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the API client.

        Args:
            base_url: API root; trailing slashes are ignored
            auth: Token source for the Authorization header
            http_client: Shared HTTP client (one is created lazily if omitted)
            sleep: Coroutine used to wait between attempts
        """
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._sleep = sleep

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
            self._owns_http_client = True
        return self._http_client

    async def close(self):
        """Close the HTTP client if this client created it."""
        if self._owns_http_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @property
    def http_client(self) -> Optional[httpx.AsyncClient]:
        return self._http_client

    @property
    def auth(self) -> AuthManager:
        return self._auth

    def build_url(self, path: str) -> str:
        """Join the base URL and a request path."""
        return f"{self._base_url}{path}"

    async def request(
        self,
        path: str,
        method: str = "GET",
        query: Optional[QueryParams] = None,
        body: Any = None,
    ) -> Any:
        """Make an authenticated request to the API.

        Args:
            path: API path starting with "/" (e.g. "/warehouse")
            method: HTTP method
            query: Query parameters; sequences become repeated keys
            body: JSON-serializable request body

        Returns:
            Parsed JSON response, or None for 204 No Content

        Raises:
            AuthenticationError: If no token can be obtained
            APIError: If the final response is not 2xx
            httpx.HTTPError: On network failures or timeouts
        """
        method = method.upper()
        response = await self._send(path, method, query, body)

        if response.status_code == 401:
            logger.warning(f"[ApiClient] Got 401 on {method} {path}, retrying with fresh token")
            self._auth.clear_token()
            response = await self._send(path, method, query, body)

        elif response.status_code == 429:
            delay = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"[ApiClient] Got 429 on {method} {path}, retrying in {delay:.1f}s")
            await self._sleep(delay)
            response = await self._send(path, method, query, body)

        elif response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(
                f"[ApiClient] Got {response.status_code} on {method} {path}, "
                f"retrying in {RETRY_DELAY_SECONDS:.1f}s"
            )
            await self._sleep(RETRY_DELAY_SECONDS)
            response = await self._send(path, method, query, body)

        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> Any:
        """Decode a final response or raise APIError."""
        if not response.is_success:
            raise APIError(response.status_code, response.text)
        if response.status_code == 204:
            return None
        return response.json()

    async def _send(
        self,
        path: str,
        method: str,
        query: Optional[QueryParams],
        body: Any,
    ) -> httpx.Response:
        """Issue a single attempt on the wire."""
        token = await self._auth.get_token()
        client = await self._get_http_client()

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        logger.debug(f"[ApiClient] {method} {path}")

        return await client.request(
            method,
            self.build_url(path),
            params=build_query(query) or None,
            json=body,
            headers=headers,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
