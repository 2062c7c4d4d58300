"""
Pytest configuration and shared fixtures for social-queue tests.

This module provides common fixtures used across all test files:
- Environment defaults for settings
- A scripted fake of the platform HTTP APIs behind httpx.MockTransport
- A recording replacement for the backoff sleep
- Token and adapter factories
"""

import os
import sys
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

# Environment setup before any imports
os.environ["ENVIRONMENT"] = "development"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENCRYPTION_KEY"] = "0123456789abcdef0123456789abcdef"

# Ensure project root is in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from social_queue.social.encryption import TokenCipher  # noqa: E402
from social_queue.social.platforms import (  # noqa: E402
    FacebookPlatform,
    LinkedInPlatform,
    TwitterPlatform,
)
from social_queue.types.social import PlatformToken, SocialPlatform, utcnow  # noqa: E402

TEST_KEY = os.environ["ENCRYPTION_KEY"]

ResponseFactory = Callable[[httpx.Request], httpx.Response]


def reply(
    status: int,
    json: Optional[dict] = None,
    text: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> ResponseFactory:
    """Build a factory producing a fresh response for every matching request."""

    def factory(request: httpx.Request) -> httpx.Response:
        if text is not None:
            return httpx.Response(status, text=text, headers=headers)
        return httpx.Response(status, json=json, headers=headers)

    return factory


def timeout(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


def connect_error(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


class FakePlatformAPI:
    """
    Scripted platform endpoints.

    Responses registered for a route are served in order; the last one
    repeats for any further request.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[ResponseFactory]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, *responses: ResponseFactory) -> None:
        self.routes.setdefault((method, url), []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": f"no route for {key}"})
        factory = queue.pop(0) if len(queue) > 1 else queue[0]
        return factory(request)

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method
            and f"{r.url.scheme}://{r.url.host}{r.url.path}" == url
        ]


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_api():
    return FakePlatformAPI()


@pytest.fixture
def http_client(fake_api):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def cipher():
    return TokenCipher(TEST_KEY)


@pytest.fixture
def linkedin(http_client, sleep):
    return LinkedInPlatform("li-client", "li-secret", http_client, sleep=sleep)


@pytest.fixture
def twitter(http_client, sleep):
    return TwitterPlatform("tw-client", "tw-secret", http_client, sleep=sleep)


@pytest.fixture
def facebook(http_client, sleep):
    return FacebookPlatform("fb-app", "fb-secret", http_client, sleep=sleep)


@pytest.fixture
def make_token():
    """Factory for plaintext tokens with sensible defaults."""

    def _make(
        platform: SocialPlatform = SocialPlatform.LINKEDIN,
        access_token: str = "AT1",
        refresh_token: Optional[str] = None,
        expires_in: Optional[timedelta] = timedelta(days=30),
        **kwargs,
    ) -> PlatformToken:
        return PlatformToken(
            principal_id=kwargs.pop("principal_id", "user-1"),
            platform=platform,
            platform_user_id=kwargs.pop("platform_user_id", "acct-1"),
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=utcnow() + expires_in if expires_in is not None else None,
            **kwargs,
        )

    return _make
