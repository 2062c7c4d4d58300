"""
Persistence boundary for platform tokens.

The database itself is an external collaborator; ``TokenRepository`` is
the contract it must satisfy. Records handed to a repository always carry
ciphertext in their secret fields.
"""

import itertools
import logging
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from social_queue.types.social import PlatformToken, SocialPlatform, utcnow

from .errors import InvalidTokenError, TokenNotFoundError

logger = logging.getLogger(__name__)


class TokenRepository(Protocol):
    """Storage operations the token lifecycle relies on."""

    async def create(self, token: PlatformToken) -> PlatformToken:
        """Insert a new record and return it with its id assigned."""
        ...

    async def get(self, token_id: int) -> Optional[PlatformToken]:
        """Return the valid token with this id, or None."""
        ...

    async def get_by_platform_account(
        self,
        principal_id: str,
        platform: SocialPlatform,
        platform_user_id: str,
    ) -> Optional[PlatformToken]:
        """
        Find the valid connection of a principal to one platform account.

        Args:
            principal_id: Owner of the connection
            platform: Platform of the account
            platform_user_id: Account id on the platform

        Returns:
            The matching token, or None
        """
        ...

    async def list_by_principal(self, principal_id: str) -> List[PlatformToken]:
        """Valid tokens owned by ``principal_id``."""
        ...

    async def update(self, token: PlatformToken) -> PlatformToken:
        """
        Overwrite a stored record.

        Raises:
            TokenNotFoundError: No record with this id
            InvalidTokenError: The stored record has been invalidated
        """
        ...

    async def invalidate(self, token_id: int) -> None:
        """
        Mark a token as no longer usable.

        Invalidation is permanent; the record stays for auditing but is
        skipped by every lookup and refused by ``update``.

        Args:
            token_id: Id of the token to invalidate

        Raises:
            TokenNotFoundError: No record with this id
        """
        ...

    async def delete(self, token_id: int) -> bool:
        """
        Remove a record entirely.

        Returns:
            True if a record was removed
        """
        ...

    async def get_expiring(self, before: datetime, limit: int) -> List[PlatformToken]:
        """
        Valid tokens with a refresh token whose expiry is at or before
        ``before``, ordered by expiry ascending, at most ``limit`` of them.
        """
        ...


class InMemoryTokenRepository:
    """
    Dict-backed TokenRepository for tests and local development.

    Stores and returns copies so callers never share state with the store.
    """

    def __init__(self) -> None:
        self._tokens: Dict[int, PlatformToken] = {}
        self._ids = itertools.count(1)

    async def create(self, token: PlatformToken) -> PlatformToken:
        now = utcnow()
        stored = token.model_copy(
            update={"id": next(self._ids), "created_at": now, "updated_at": now},
            deep=True,
        )
        self._tokens[stored.id] = stored
        logger.debug("Stored %s token %s", stored.platform.value, stored.id)
        return stored.model_copy(deep=True)

    async def get(self, token_id: int) -> Optional[PlatformToken]:
        token = self._tokens.get(token_id)
        if token is None or not token.is_valid:
            return None
        return token.model_copy(deep=True)

    async def get_by_platform_account(
        self,
        principal_id: str,
        platform: SocialPlatform,
        platform_user_id: str,
    ) -> Optional[PlatformToken]:
        for token in self._tokens.values():
            if (
                token.is_valid
                and token.principal_id == principal_id
                and token.platform == platform
                and token.platform_user_id == platform_user_id
            ):
                return token.model_copy(deep=True)
        return None

    async def list_by_principal(self, principal_id: str) -> List[PlatformToken]:
        return [
            token.model_copy(deep=True)
            for token in self._tokens.values()
            if token.is_valid and token.principal_id == principal_id
        ]

    async def update(self, token: PlatformToken) -> PlatformToken:
        current = self._tokens.get(token.id) if token.id is not None else None
        if current is None:
            raise TokenNotFoundError(f"Token {token.id} not found", platform=token.platform)
        if not current.is_valid:
            raise InvalidTokenError(
                f"Token {token.id} has been invalidated and cannot be modified",
                platform=token.platform,
            )

        stored = token.model_copy(
            update={"created_at": current.created_at, "updated_at": utcnow()},
            deep=True,
        )
        self._tokens[stored.id] = stored
        return stored.model_copy(deep=True)

    async def invalidate(self, token_id: int) -> None:
        current = self._tokens.get(token_id)
        if current is None:
            raise TokenNotFoundError(f"Token {token_id} not found")
        if not current.is_valid:
            return
        self._tokens[token_id] = current.model_copy(
            update={"is_valid": False, "updated_at": utcnow()}
        )
        logger.info("Invalidated %s token %s", current.platform.value, token_id)

    async def delete(self, token_id: int) -> bool:
        return self._tokens.pop(token_id, None) is not None

    async def get_expiring(self, before: datetime, limit: int) -> List[PlatformToken]:
        candidates = [
            token
            for token in self._tokens.values()
            if token.is_valid
            and token.has_refresh_token
            and token.expires_at is not None
            and token.expires_at <= before
        ]
        candidates.sort(key=lambda t: t.expires_at)
        return [token.model_copy(deep=True) for token in candidates[:limit]]
