"""Test helpers: JWT builders and a recording HTTP transport."""
import time

import httpx
import jwt

from opendock_mcp.models import OpendockConfig

API_URL = "https://api.test"
SIGNING_KEY = "opendock-test-signing-key-0123456789abcdef"


def make_token(exp_in: float | None = None, **claims) -> str:
    """Build a signed JWT whose ``exp`` is ``exp_in`` seconds from now."""
    payload = dict(claims)
    if exp_in is not None:
        payload["exp"] = int(time.time() + exp_in)
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


class RecordingTransport:
    """Serves queued responses and records every request it receives.

    Queue entries are ``httpx.Response`` objects, exceptions to raise, or
    callables taking the request and returning a response.
    """

    def __init__(self, *responses):
        self.queue = list(responses)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.queue:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


def config_with_token(token: str, with_credentials: bool = True) -> OpendockConfig:
    if with_credentials:
        return OpendockConfig(
            api_url=API_URL, token=token, username="user@example.com", password="pass"
        )
    return OpendockConfig(api_url=API_URL, token=token)
