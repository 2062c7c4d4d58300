"""
Base class for social media platform integrations.

Defines the contract every platform adapter implements and the publish
state machine they all share:

    validate -> resolve author -> upload media -> build payload
             -> create post (bounded retry on 429 / timeout) -> result

Concrete adapters fill in the per-platform hooks and never touch the loop.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from social_queue.types.social import (
    AccountInfo,
    OAuthTokenResponse,
    PlatformCapabilities,
    PlatformToken,
    PostAnalytics,
    PostContent,
    PublishResult,
    RateLimitInfo,
    SocialPlatform,
    get_platform_capabilities,
    utcnow,
)
from social_queue.utils.logging import Timer

from ..errors import (
    AttemptsExhaustedError,
    AuthenticationError,
    DecodeError,
    OAuthExchangeError,
    PlatformError,
    RateLimitedError,
    RefreshUnsupportedError,
    SocialError,
    TransientNetworkError,
    ValidationError,
)

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 5.0
DEFAULT_REFRESH_WINDOW = timedelta(minutes=5)


@dataclass
class PublishTarget:
    """The platform-side author a post is created for."""

    author_id: str
    username: str = ""
    # Set when the platform posts with a credential other than the user token
    access_token: Optional[str] = field(default=None, repr=False)


class BasePlatform(ABC):
    """
    Abstract base class for social media platform integrations.

    Adapters share one injected ``httpx.AsyncClient`` and never create
    clients of their own. ``sleep`` is awaited between rate-limited publish
    attempts.
    """

    platform: SocialPlatform
    supports_refresh: bool = False

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient,
        *,
        sleep: SleepFunc = asyncio.sleep,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        refresh_window: timedelta = DEFAULT_REFRESH_WINDOW,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._http = http_client
        self._sleep = sleep
        self.request_timeout = request_timeout
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.refresh_window = refresh_window
        self._logger = logging.getLogger(f"{__name__}.{self.platform.value}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(client_id={self._client_id!r})"

    # -------------------------------------------------------------------------
    # Introspection (no I/O)
    # -------------------------------------------------------------------------

    def get_platform_name(self) -> SocialPlatform:
        """
        Get the platform this adapter serves.

        Returns:
            The registry key for this adapter
        """
        return self.platform

    def get_capabilities(self) -> PlatformCapabilities:
        """
        Get the static limits used to validate content before publishing.

        Returns:
            Text length, media count and feature flags for the platform
        """
        return get_platform_capabilities(self.platform)

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    @abstractmethod
    async def auth_redirect(self, state: str, redirect_uri: str) -> str:
        """
        Build the authorization URL the end user is sent to.

        Args:
            state: Caller-supplied anti-CSRF value, echoed back on callback
            redirect_uri: Where the platform redirects after consent

        Returns:
            Authorization URL
        """

    @abstractmethod
    async def handle_oauth_callback(
        self,
        code: str,
        redirect_uri: str,
        state: Optional[str] = None,
    ) -> OAuthTokenResponse:
        """
        Exchange an authorization code for tokens and resolve the account.

        Raises:
            OAuthExchangeError: The token endpoint answered non-success
            DecodeError: The token response could not be parsed
        """

    async def refresh_token_if_needed(self, token: PlatformToken) -> PlatformToken:
        """
        Return ``token`` unchanged unless it expires within the refresh window,
        otherwise a copy carrying the rotated credentials.

        Raises:
            RefreshUnsupportedError: The platform never issues refresh tokens,
                or this connection has none. No request is made.
        """
        if not self.supports_refresh:
            raise RefreshUnsupportedError(
                f"{self.platform.value} does not support token refresh; re-authentication required",
                platform=self.platform,
            )
        if not token.has_refresh_token:
            raise RefreshUnsupportedError(
                "Token has no refresh token; re-authentication required",
                platform=self.platform,
            )
        if not token.expires_within(self.refresh_window):
            return token

        with Timer(f"{self.platform.value}.refresh", self._logger):
            response = await self._refresh(token)

        now = utcnow()
        self._logger.info(
            "Refreshed %s token",
            self.platform.value,
            extra={"token_id": token.id},
        )
        return token.model_copy(
            update={
                "access_token": response.access_token,
                # Keep the previous refresh token when the platform does not rotate it
                "refresh_token": response.refresh_token or token.refresh_token,
                "expires_at": response.expires_at,
                "scope": response.scope or token.scope,
                "last_validated": now,
                "updated_at": now,
            }
        )

    async def _refresh(self, token: PlatformToken) -> OAuthTokenResponse:
        """Perform the refresh exchange. Only called when ``supports_refresh``."""
        raise RefreshUnsupportedError(
            f"{self.platform.value} does not support token refresh",
            platform=self.platform,
        )

    # -------------------------------------------------------------------------
    # Probes (single request, never retried)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_account_info(self, token: PlatformToken) -> AccountInfo:
        """
        Fetch the profile of the account behind a token.

        Args:
            token: Token with a plaintext access token

        Returns:
            Normalized account profile

        Raises:
            AuthenticationError: The platform rejected the access token
            DecodeError: The profile response has no account id
        """

    async def validate_token(self, token: PlatformToken) -> bool:
        """
        Check the token against the platform.

        Returns False when the platform rejects the credential; any other
        failure is raised to the caller.
        """
        try:
            await self.get_account_info(token)
        except AuthenticationError:
            return False
        return True

    @abstractmethod
    async def revoke_token(self, token: PlatformToken) -> None:
        """
        Revoke the connection at the platform.

        Args:
            token: Token with a plaintext access token
        """

    @abstractmethod
    async def get_rate_limits(self, token: PlatformToken) -> RateLimitInfo:
        """
        Snapshot of the platform-reported rate limit for this token.

        Missing or unparseable headers fall back to the documented limits.

        Args:
            token: Token with a plaintext access token

        Returns:
            Limit, remaining calls and reset time
        """

    @abstractmethod
    async def get_post_analytics(
        self,
        token: PlatformToken,
        platform_post_id: str,
    ) -> PostAnalytics:
        """
        Engagement metrics for a published post.

        Args:
            token: Token with a plaintext access token
            platform_post_id: Id returned in ``PublishResult.platform_post_id``

        Returns:
            Normalized engagement counts plus the raw platform metrics
        """

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    def validate_content(self, content: PostContent) -> List[str]:
        """
        Check content against the platform capabilities.

        The length limit applies to the text only; media do not reserve
        characters.

        Returns:
            Validation error messages, empty when the content is acceptable
        """
        caps = self.get_capabilities()
        errors = []

        if len(content.text) > caps.max_text_length:
            errors.append(
                f"Text exceeds maximum length of {caps.max_text_length} characters "
                f"(got {len(content.text)})"
            )
        if len(content.media_urls) > caps.max_media_count:
            errors.append(f"Too many media attachments. Maximum is {caps.max_media_count}")
        if len(content.media_urls) > 1 and not caps.supports_multiple_media:
            errors.append(f"{self.platform.value} accepts a single media attachment")

        return errors

    async def post_content(self, token: PlatformToken, content: PostContent) -> PublishResult:
        """
        Publish ``content`` on behalf of ``token``.

        Raises:
            ValidationError: Content violates the capabilities; nothing was sent
            AttemptsExhaustedError: Every attempt was rate limited or timed out
            SocialError: Any other failure, surfaced from the first attempt
        """
        errors = self.validate_content(content)
        if errors:
            raise ValidationError(
                f"Content validation failed: {'; '.join(errors)}",
                platform=self.platform,
                details={"errors": errors},
            )

        target = await self._resolve_author(token)

        media_handles: List[str] = []
        if content.media_urls:
            media_handles = await self._upload_media(token, target, content)

        payload = self._build_payload(target, content, media_handles)

        last_error: Optional[SocialError] = None
        with Timer(f"{self.platform.value}.publish", self._logger):
            for attempt in range(self.max_attempts):
                try:
                    result = await self._create_post(token, target, payload)
                except RateLimitedError as e:
                    last_error = e
                except TransientNetworkError as e:
                    if not e.timed_out:
                        raise
                    last_error = e
                else:
                    self._logger.info(
                        "Published %s post %s",
                        self.platform.value,
                        result.platform_post_id,
                        extra={"token_id": token.id, "attempt": attempt + 1},
                    )
                    return result

                self._logger.warning(
                    "%s publish attempt %d/%d failed: %s",
                    self.platform.value,
                    attempt + 1,
                    self.max_attempts,
                    last_error.message,
                    extra={"token_id": token.id},
                )
                if attempt + 1 < self.max_attempts:
                    await self._sleep((attempt + 1) * self.backoff_seconds)

        raise AttemptsExhaustedError(self.max_attempts, last_error, platform=self.platform)

    @abstractmethod
    async def _resolve_author(self, token: PlatformToken) -> PublishTarget:
        """Resolve the platform-side author for the current credential."""

    async def _upload_media(
        self,
        token: PlatformToken,
        target: PublishTarget,
        content: PostContent,
    ) -> List[str]:
        """
        Upload ``content.media_urls`` and return platform media handles.

        Media upload is not wired for any platform yet; posts go out
        without attachments.
        """
        self._logger.debug(
            "Media upload not available for %s, skipping %d item(s)",
            self.platform.value,
            len(content.media_urls),
        )
        return []

    @abstractmethod
    def _build_payload(
        self,
        target: PublishTarget,
        content: PostContent,
        media_handles: List[str],
    ) -> BaseModel:
        """Construct the platform-native post body."""

    @abstractmethod
    async def _create_post(
        self,
        token: PlatformToken,
        target: PublishTarget,
        payload: BaseModel,
    ) -> PublishResult:
        """Issue one create-post request."""

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    def _bearer(self, access_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send one request under the overall per-call timeout.

        Timeouts and connection failures become TransientNetworkError.
        """
        try:
            return await asyncio.wait_for(
                self._http.request(method, url, **kwargs),
                timeout=self.request_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise TransientNetworkError(
                f"{self.platform.value} request timed out",
                platform=self.platform,
                timed_out=True,
            ) from e
        except httpx.TransportError as e:
            raise TransientNetworkError(
                f"{self.platform.value} connection failed: {e.__class__.__name__}",
                platform=self.platform,
            ) from e

    async def _request(
        self,
        method: str,
        url: str,
        *,
        expected: Iterable[int] = (200,),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send an authenticated API request and map failure statuses to errors."""
        response = await self._send(method, url, **kwargs)
        status = response.status_code

        if status in tuple(expected):
            return response

        if status == 429:
            retry_after = response.headers.get("retry-after")
            raise RateLimitedError(
                f"{self.platform.value} rate limit exceeded",
                body=response.text,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                platform=self.platform,
            )
        if status == 401:
            raise AuthenticationError(
                "Invalid or expired access token",
                platform=self.platform,
            )
        raise PlatformError(
            f"{self.platform.value} API error: {status}",
            status_code=status,
            body=response.text,
            platform=self.platform,
        )

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise DecodeError(
                f"Malformed {self.platform.value} response",
                platform=self.platform,
            ) from e
        if not isinstance(data, dict):
            raise DecodeError(
                f"Unexpected {self.platform.value} response shape",
                platform=self.platform,
            )
        return data

    async def _exchange(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        """
        Call an OAuth token endpoint.

        Raises:
            OAuthExchangeError: Non-200 answer, carrying status and body
            DecodeError: Body is not a JSON object with an access token
        """
        response = await self._send(method, url, **kwargs)
        if response.status_code != 200:
            self._logger.warning(
                "%s token exchange failed with status %d",
                self.platform.value,
                response.status_code,
            )
            raise OAuthExchangeError(
                f"{self.platform.value} token exchange failed: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
                platform=self.platform,
            )

        data = self._json(response)
        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise DecodeError(
                f"{self.platform.value} token response has no usable access_token",
                platform=self.platform,
            )
        return data

    def _token_response(self, data: Dict[str, Any], **identity: Any) -> OAuthTokenResponse:
        """
        Normalize a token endpoint body.

        Raises:
            DecodeError: A field has the wrong type or an unusable value
        """
        try:
            expires_in = int(data.get("expires_in") or 0)
            expires_at = utcnow() + timedelta(seconds=expires_in) if expires_in else None
        except (TypeError, ValueError, OverflowError) as e:
            raise DecodeError(
                f"{self.platform.value} token response has a malformed expires_in",
                platform=self.platform,
            ) from e
        if expires_in < 0:
            raise DecodeError(
                f"{self.platform.value} token response has a negative expires_in",
                platform=self.platform,
            )

        scope = data.get("scope") or ""
        if isinstance(scope, list):
            scope = " ".join(str(s) for s in scope)

        try:
            return OAuthTokenResponse(
                access_token=data["access_token"],
                refresh_token=data.get("refresh_token") or None,
                expires_in=expires_in,
                expires_at=expires_at,
                token_type=data.get("token_type") or "Bearer",
                scope=scope,
                **identity,
            )
        except PydanticValidationError as e:
            raise DecodeError(
                f"{self.platform.value} token response has malformed fields",
                platform=self.platform,
            ) from e
