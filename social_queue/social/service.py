"""
Social account service.

Implements the operations the web layer and the scheduler call: connect an
account through OAuth, publish, disconnect, read account info and post
analytics, and sweep tokens that are about to expire.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import httpx

from social_queue.config import Settings
from social_queue.types.social import (
    AccountInfo,
    PlatformToken,
    PostAnalytics,
    PostContent,
    PublishResult,
    SocialPlatform,
    utcnow,
)
from social_queue.utils.logging import set_operation_context

from .encryption import TokenCipher
from .errors import (
    ConfigurationError,
    IntegrityError,
    OAuthExchangeError,
    RefreshUnsupportedError,
    SocialError,
    TokenNotFoundError,
)
from .lifecycle import TokenLifecycleCoordinator
from .oauth_state import OAuthStateStore
from .registry import AdapterRegistry, create_default_registry
from .repository import InMemoryTokenRepository, TokenRepository

logger = logging.getLogger(__name__)


@dataclass
class RefreshSweepResult:
    """Outcome of one pass over expiring tokens."""

    refreshed: List[int] = field(default_factory=list)
    unchanged: List[int] = field(default_factory=list)
    invalidated: List[int] = field(default_factory=list)
    failed: Dict[int, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.refreshed) + len(self.unchanged) + len(self.invalidated) + len(self.failed)


class SocialService:
    """
    Entry point for connecting accounts and publishing to them.

    Every token leaving this service is encrypted; plaintext exists only
    inside a single adapter call.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        repository: TokenRepository,
        cipher: TokenCipher,
        state_store: Optional[OAuthStateStore] = None,
        default_redirect_uri: str = "",
        refresh_window: timedelta = timedelta(minutes=5),
        expiring_batch_limit: int = 100,
    ) -> None:
        self._registry = registry
        self._repository = repository
        self._cipher = cipher
        self._states = state_store or OAuthStateStore()
        self._lifecycle = TokenLifecycleCoordinator(cipher, repository, registry)
        self.default_redirect_uri = default_redirect_uri
        self.refresh_window = refresh_window
        self.expiring_batch_limit = expiring_batch_limit

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http_client: httpx.AsyncClient,
        repository: Optional[TokenRepository] = None,
    ) -> "SocialService":
        """
        Assemble a service from application settings.

        Raises:
            ConfigurationError: ENCRYPTION_KEY is missing or not 32 bytes
        """
        if not settings.security.has_encryption_key:
            raise ConfigurationError("ENCRYPTION_KEY is not set")

        http = settings.http
        return cls(
            registry=create_default_registry(settings, http_client),
            repository=repository or InMemoryTokenRepository(),
            cipher=TokenCipher(settings.security.encryption_key.get_secret_value()),
            state_store=OAuthStateStore(ttl=timedelta(seconds=http.oauth_state_ttl_seconds)),
            default_redirect_uri=settings.platforms.oauth_redirect_uri,
            refresh_window=http.refresh_window,
            expiring_batch_limit=http.social_expiring_batch_limit,
        )

    @property
    def lifecycle(self) -> TokenLifecycleCoordinator:
        return self._lifecycle

    async def _get_token(self, token_id: int) -> PlatformToken:
        token = await self._repository.get(token_id)
        if token is None:
            raise TokenNotFoundError(f"Token {token_id} not found")
        return token

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    async def initiate_oauth(
        self,
        principal_id: str,
        platform: SocialPlatform,
        redirect_uri: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Start an authorization flow.

        Returns:
            Tuple of (authorization_url, state)
        """
        adapter = self._registry.get(platform)
        redirect_uri = redirect_uri or self.default_redirect_uri
        state = self._states.issue(principal_id, platform, redirect_uri)

        url = await adapter.auth_redirect(state, redirect_uri)
        logger.info(
            "Initiated %s OAuth flow",
            platform.value,
            extra={"principal": principal_id},
        )
        return url, state

    async def complete_oauth(
        self,
        platform: SocialPlatform,
        code: str,
        state: str,
    ) -> PlatformToken:
        """
        Finish an authorization flow and store the connection.

        A valid connection to the same platform account is updated in place
        rather than duplicated.

        Returns:
            The stored token, secrets encrypted
        """
        pending = self._states.consume(state, platform)
        set_operation_context(principal_id=pending.principal_id, platform=platform.value)
        adapter = self._registry.get(platform)

        tokens = await adapter.handle_oauth_callback(code, pending.redirect_uri, state)

        now = utcnow()
        record = PlatformToken(
            principal_id=pending.principal_id,
            platform=platform,
            platform_user_id=tokens.platform_user_id,
            platform_username=tokens.platform_username,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            scope=tokens.scope,
            last_validated=now,
            extra=dict(tokens.extra),
        )
        self._cipher.encrypt_token(record)

        existing = await self._repository.get_by_platform_account(
            pending.principal_id, platform, tokens.platform_user_id
        )
        if existing is not None:
            record.id = existing.id
            stored = await self._repository.update(record)
        else:
            stored = await self._repository.create(record)

        logger.info(
            "Connected %s account %s",
            platform.value,
            stored.platform_username or stored.platform_user_id,
            extra={"token_id": stored.id},
        )
        return stored

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    async def publish(
        self,
        token_id: int,
        text: str,
        media_urls: Optional[List[str]] = None,
        options: Optional[Dict[str, Any]] = None,
        link: Optional[str] = None,
    ) -> PublishResult:
        """
        Publish on behalf of a stored connection.

        The token is refreshed first when it is close to expiry. A platform
        that cannot refresh is used with its current credential until that
        credential actually expires.

        Raises:
            TokenNotFoundError: No valid token with this id
            RefreshUnsupportedError: The token expired and cannot be refreshed
            ValidationError, AttemptsExhaustedError, SocialError: from the adapter
        """
        token = await self._get_token(token_id)
        set_operation_context(principal_id=token.principal_id, platform=token.platform.value)
        adapter = self._registry.get(token.platform)
        content = PostContent(
            text=text,
            media_urls=media_urls or [],
            link=link,
            options=options or {},
        )

        async def _publish(plain: PlatformToken) -> PublishResult:
            current = plain
            if plain.expires_within(self.refresh_window):
                try:
                    current = await adapter.refresh_token_if_needed(plain)
                except RefreshUnsupportedError:
                    if plain.is_expired():
                        raise
                    logger.info(
                        "Token %s cannot be refreshed, publishing with current credential",
                        token_id,
                    )

            if current is plain:
                return await adapter.post_content(current, content)

            try:
                await self._lifecycle.persist_rotated(current)
                return await adapter.post_content(current, content)
            finally:
                self._cipher.encrypt_token(current)

        return await self._lifecycle.with_decrypted_token(token, _publish)

    # -------------------------------------------------------------------------
    # Account management
    # -------------------------------------------------------------------------

    async def disconnect(self, token_id: int) -> None:
        """
        Revoke the connection at the platform and invalidate it locally.

        Revocation is best effort; the local record is invalidated even if
        the platform call fails.
        """
        token = await self._get_token(token_id)
        adapter = self._registry.get(token.platform)

        try:
            await self._lifecycle.with_decrypted_token(token, adapter.revoke_token)
        except IntegrityError:
            raise
        except SocialError as e:
            logger.warning(
                "Revoking %s token %s failed: %s",
                token.platform.value,
                token_id,
                e.message,
            )

        await self._repository.invalidate(token_id)

    async def get_account_info(self, token_id: int) -> AccountInfo:
        token = await self._get_token(token_id)
        adapter = self._registry.get(token.platform)
        return await self._lifecycle.with_decrypted_token(token, adapter.get_account_info)

    async def get_post_analytics(self, token_id: int, platform_post_id: str) -> PostAnalytics:
        token = await self._get_token(token_id)
        adapter = self._registry.get(token.platform)

        async def _fetch(plain: PlatformToken) -> PostAnalytics:
            return await adapter.get_post_analytics(plain, platform_post_id)

        return await self._lifecycle.with_decrypted_token(token, _fetch)

    # -------------------------------------------------------------------------
    # Refresh sweep
    # -------------------------------------------------------------------------

    async def refresh_expiring_tokens(
        self,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> RefreshSweepResult:
        """
        Refresh every token expiring at or before ``before``.

        Meant to be called periodically by an external scheduler. Tokens
        whose grant is rejected (400/401) or cannot be refreshed are
        invalidated so the principal is asked to reconnect. Rate limits,
        server errors and malformed answers leave the token as it was for
        the next pass.

        Args:
            before: Expiry cutoff, defaults to now plus the refresh window
            limit: Maximum tokens handled, defaults to the batch limit
        """
        before = before or utcnow() + self.refresh_window
        limit = limit or self.expiring_batch_limit
        result = RefreshSweepResult()

        for token in await self._lifecycle.select_expiring_soon(before, limit):
            try:
                refreshed = await self._lifecycle.refresh_token(token.id)
            except SocialError as e:
                if not _requires_reconnect(e):
                    logger.error(
                        "Refreshing %s token %s failed: %s",
                        token.platform.value,
                        token.id,
                        e.message,
                        extra={"error_code": e.error_code.value},
                    )
                    result.failed[token.id] = e.error_code.value
                    continue

                logger.warning(
                    "Invalidating %s token %s: %s",
                    token.platform.value,
                    token.id,
                    e.message,
                )
                await self._repository.invalidate(token.id)
                result.invalidated.append(token.id)
            else:
                # Ciphertext changes on every re-encryption; only a write moves updated_at
                if refreshed.updated_at != token.updated_at:
                    result.refreshed.append(token.id)
                else:
                    result.unchanged.append(token.id)

        logger.info(
            "Token refresh sweep finished",
            extra={
                "refreshed": len(result.refreshed),
                "invalidated": len(result.invalidated),
                "failed": len(result.failed),
            },
        )
        return result


def _requires_reconnect(error: SocialError) -> bool:
    """
    Whether a refresh failure means the stored grant is dead.

    Only an unsupported refresh or a 400/401 answer from the token endpoint
    (``invalid_grant``, revoked client) qualifies. Rate limits and server
    errors leave the token for the next sweep.
    """
    if isinstance(error, RefreshUnsupportedError):
        return True
    if isinstance(error, OAuthExchangeError):
        return error.status_code in (400, 401)
    return False
