"""
Token lifecycle coordination.

The coordinator is the only component that sees plaintext credentials
outside an adapter call: it decrypts a stored token, hands it to one
adapter operation, and encrypts it again before control returns, whether
the operation succeeded or not. Rotated credentials are encrypted before
they reach the repository.
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, List, TypeVar

from social_queue.types.social import PlatformToken
from social_queue.utils.logging import Timer

from .encryption import TokenCipher
from .errors import TokenNotFoundError
from .registry import AdapterRegistry
from .repository import TokenRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenLifecycleCoordinator:
    """Decrypt-on-use and encrypt-on-return around every adapter call."""

    def __init__(
        self,
        cipher: TokenCipher,
        repository: TokenRepository,
        registry: AdapterRegistry,
    ) -> None:
        self._cipher = cipher
        self._repository = repository
        self._registry = registry

    async def with_decrypted_token(
        self,
        token: PlatformToken,
        fn: Callable[[PlatformToken], Awaitable[T]],
    ) -> T:
        """
        Run ``fn`` with ``token`` decrypted in place.

        The token's secret fields are encrypted again before this returns or
        raises. When ``fn`` returns a different PlatformToken (rotated
        credentials), that token is returned encrypted as well.

        Raises:
            IntegrityError: The stored ciphertext cannot be decrypted; the
                token is left exactly as it was and ``fn`` is not called.
        """
        self._cipher.decrypt_token(token)
        try:
            result = await fn(token)
        finally:
            self._cipher.encrypt_token(token)

        if isinstance(result, PlatformToken) and result is not token:
            self._cipher.encrypt_token(result)
        return result

    async def persist_rotated(self, plaintext: PlatformToken) -> PlatformToken:
        """Encrypt a copy of a token holding rotated credentials and store it."""
        record = plaintext.model_copy()
        self._cipher.encrypt_token(record)
        return await self._repository.update(record)

    async def select_expiring_soon(self, before: datetime, limit: int) -> List[PlatformToken]:
        """
        Tokens that are valid, hold a refresh token and expire at or before
        ``before``, soonest first, at most ``limit``. Secrets stay encrypted.
        """
        return await self._repository.get_expiring(before, limit)

    async def refresh_token(self, token_id: int) -> PlatformToken:
        """
        Refresh the stored token ``token_id`` if it is close to expiry and
        persist the rotated credentials.

        Returns:
            The stored (encrypted) token, updated or unchanged

        Raises:
            TokenNotFoundError: No valid token with this id
            RefreshUnsupportedError: Re-authentication is required
            OAuthExchangeError: The platform refused the refresh
        """
        token = await self._repository.get(token_id)
        if token is None:
            raise TokenNotFoundError(f"Token {token_id} not found")

        adapter = self._registry.get(token.platform)
        with Timer(f"{token.platform.value}.refresh_token", logger):
            refreshed = await self.with_decrypted_token(token, adapter.refresh_token_if_needed)

        if refreshed is token:
            return token
        return await self._repository.update(refreshed)
