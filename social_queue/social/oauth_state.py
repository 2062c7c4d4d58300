"""
Anti-CSRF state for OAuth authorization flows.

In-memory store; a multi-process deployment needs a shared backend with
the same issue/consume semantics.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from social_queue.types.social import SocialPlatform, utcnow

from .errors import OAuthStateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingAuthorization:
    """What a state value was issued for."""

    principal_id: str
    platform: SocialPlatform
    redirect_uri: str
    expires_at: datetime


class OAuthStateStore:
    """Issues single-use state values bound to one authorization attempt."""

    def __init__(self, ttl: timedelta = timedelta(minutes=10)) -> None:
        self.ttl = ttl
        self._pending: Dict[str, PendingAuthorization] = {}

    def issue(
        self,
        principal_id: str,
        platform: SocialPlatform,
        redirect_uri: str,
        now: Optional[datetime] = None,
    ) -> str:
        now = now or utcnow()
        self._purge(now)

        state = secrets.token_urlsafe(32)
        self._pending[state] = PendingAuthorization(
            principal_id=principal_id,
            platform=platform,
            redirect_uri=redirect_uri,
            expires_at=now + self.ttl,
        )
        return state

    def consume(
        self,
        state: str,
        platform: SocialPlatform,
        now: Optional[datetime] = None,
    ) -> PendingAuthorization:
        """
        Validate and remove ``state``.

        Raises:
            OAuthStateError: Unknown, already used, expired, or issued for
                another platform
        """
        pending = self._pending.pop(state, None)
        if pending is None:
            raise OAuthStateError("Unknown or already used OAuth state", platform=platform)
        if pending.expires_at <= (now or utcnow()):
            raise OAuthStateError("OAuth state expired", platform=platform)
        if pending.platform != platform:
            raise OAuthStateError(
                f"OAuth state was issued for {pending.platform.value}",
                platform=platform,
            )
        return pending

    def _purge(self, now: datetime) -> None:
        expired = [state for state, p in self._pending.items() if p.expires_at <= now]
        for state in expired:
            del self._pending[state]
        if expired:
            logger.debug("Purged %d expired OAuth states", len(expired))

    def __len__(self) -> int:
        return len(self._pending)
