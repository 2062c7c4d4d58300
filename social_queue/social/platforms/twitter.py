"""
Twitter/X API v2 integration.

OAuth 2.0 with PKCE for user authentication, refreshable tokens
(``offline.access``) and the v2 tweets endpoint for posting.
"""

import base64
import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlencode

from pydantic import BaseModel

from social_queue.types.social import (
    AccountInfo,
    OAuthTokenResponse,
    PlatformToken,
    PostAnalytics,
    PostContent,
    PublishResult,
    RateLimitInfo,
    SocialPlatform,
    utcnow,
)

from ..errors import DecodeError, OAuthStateError
from .base import BasePlatform, PublishTarget

DEFAULT_SCOPES = ["tweet.read", "tweet.write", "users.read", "offline.access"]

# Fallback when the API omits x-rate-limit headers
DEFAULT_WINDOW_LIMIT = 300
DEFAULT_WINDOW = timedelta(minutes=15)

# Matches the OAuth state lifetime; an abandoned flow must not keep its verifier
DEFAULT_PKCE_TTL = timedelta(minutes=10)


class TweetMedia(BaseModel):
    media_ids: List[str]


class TweetPayload(BaseModel):
    text: str
    media: Optional[TweetMedia] = None

    def to_request(self) -> dict:
        return self.model_dump(exclude_none=True)


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate a PKCE code verifier and its S256 challenge.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    verifier = secrets.token_urlsafe(32)
    digest = hashlib.sha256(verifier.encode()).digest()
    challenge = base64.urlsafe_b64encode(digest).decode().rstrip("=")
    return verifier, challenge


class TwitterPlatform(BasePlatform):
    """Twitter/X integration using OAuth 2.0 PKCE and API v2."""

    platform = SocialPlatform.TWITTER
    supports_refresh = True

    AUTHORIZATION_URL = "https://twitter.com/i/oauth2/authorize"
    TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
    REVOKE_URL = "https://api.twitter.com/2/oauth2/revoke"

    API_BASE = "https://api.twitter.com/2"
    USER_FIELDS = "profile_image_url,public_metrics,verified,description"

    def __init__(self, *args, pkce_ttl: timedelta = DEFAULT_PKCE_TTL, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.pkce_ttl = pkce_ttl
        # state -> (verifier, expires_at), kept between redirect and callback
        self._pkce_verifiers: Dict[str, Tuple[str, datetime]] = {}

    def _api_headers(self, token: PlatformToken) -> Dict[str, str]:
        return {**self._bearer(token.access_token), "Content-Type": "application/json"}

    @property
    def _basic_auth(self) -> Tuple[str, str]:
        return (self._client_id, self._client_secret)

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    async def auth_redirect(self, state: str, redirect_uri: str) -> str:
        now = utcnow()
        self._purge_verifiers(now)

        verifier, challenge = generate_pkce_pair()
        self._pkce_verifiers[state] = (verifier, now + self.pkce_ttl)

        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(DEFAULT_SCOPES),
            "state": state,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    async def handle_oauth_callback(
        self,
        code: str,
        redirect_uri: str,
        state: Optional[str] = None,
    ) -> OAuthTokenResponse:
        entry = self._pkce_verifiers.pop(state, None) if state else None
        if entry is None or entry[1] <= utcnow():
            raise OAuthStateError(
                "No PKCE verifier for this OAuth state",
                platform=self.platform,
            )
        verifier = entry[0]

        data = await self._exchange(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self._client_id,
                "code_verifier": verifier,
            },
            auth=self._basic_auth,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        tokens = self._token_response(data)

        account = await self.get_account_info(
            PlatformToken(
                principal_id="",
                platform=self.platform,
                access_token=tokens.access_token,
            )
        )
        return tokens.model_copy(
            update={
                "platform_user_id": account.platform_user_id,
                "platform_username": account.username,
            }
        )

    def _purge_verifiers(self, now: datetime) -> None:
        expired = [state for state, (_, expires_at) in self._pkce_verifiers.items() if expires_at <= now]
        for state in expired:
            del self._pkce_verifiers[state]
        if expired:
            self._logger.debug("Purged %d expired PKCE verifiers", len(expired))

    @property
    def pending_verifiers(self) -> int:
        """Number of authorization flows still waiting for their callback."""
        return len(self._pkce_verifiers)

    async def _refresh(self, token: PlatformToken) -> OAuthTokenResponse:
        data = await self._exchange(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": token.refresh_token,
                "client_id": self._client_id,
            },
            auth=self._basic_auth,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        return self._token_response(
            data,
            platform_user_id=token.platform_user_id,
            platform_username=token.platform_username,
        )

    async def revoke_token(self, token: PlatformToken) -> None:
        await self._request(
            "POST",
            self.REVOKE_URL,
            data={
                "token": token.access_token,
                "token_type_hint": "access_token",
                "client_id": self._client_id,
            },
            auth=self._basic_auth,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def _users_me(self, token: PlatformToken):
        response = await self._request(
            "GET",
            f"{self.API_BASE}/users/me",
            params={"user.fields": self.USER_FIELDS},
            headers=self._api_headers(token),
        )
        user = self._json(response).get("data")
        if not isinstance(user, dict) or not user.get("id"):
            raise DecodeError("Twitter user response has no id", platform=self.platform)
        return response, user

    async def get_account_info(self, token: PlatformToken) -> AccountInfo:
        """
        Get the authenticated user from /users/me.

        Args:
            token: Token with a plaintext access token

        Returns:
            Profile including follower counts and verification
        """
        _, user = await self._users_me(token)
        metrics = user.get("public_metrics") or {}
        return AccountInfo(
            platform_user_id=user["id"],
            username=user.get("username", ""),
            display_name=user.get("name", ""),
            profile_image_url=user.get("profile_image_url", ""),
            followers_count=metrics.get("followers_count", 0),
            following_count=metrics.get("following_count", 0),
            is_verified=bool(user.get("verified", False)),
            bio=user.get("description"),
        )

    async def get_rate_limits(self, token: PlatformToken) -> RateLimitInfo:
        """Read the x-rate-limit-* headers of a /users/me call."""
        response, _ = await self._users_me(token)
        headers = response.headers

        limit = headers.get("x-rate-limit-limit")
        remaining = headers.get("x-rate-limit-remaining")
        reset = headers.get("x-rate-limit-reset")

        limit_value = int(limit) if limit and limit.isdigit() else DEFAULT_WINDOW_LIMIT
        return RateLimitInfo(
            limit=limit_value,
            remaining=int(remaining) if remaining and remaining.isdigit() else limit_value,
            reset_at=(
                datetime.fromtimestamp(int(reset), tz=timezone.utc)
                if reset and reset.isdigit()
                else utcnow() + DEFAULT_WINDOW
            ),
        )

    async def get_post_analytics(
        self,
        token: PlatformToken,
        platform_post_id: str,
    ) -> PostAnalytics:
        response = await self._request(
            "GET",
            f"{self.API_BASE}/tweets/{platform_post_id}",
            params={"tweet.fields": "public_metrics"},
            headers=self._api_headers(token),
        )
        tweet = self._json(response).get("data") or {}
        metrics = tweet.get("public_metrics") or {}

        likes = metrics.get("like_count", 0)
        shares = metrics.get("retweet_count", 0) + metrics.get("quote_count", 0)
        comments = metrics.get("reply_count", 0)
        return PostAnalytics(
            platform=self.platform,
            platform_post_id=platform_post_id,
            impressions=metrics.get("impression_count", 0),
            engagements=likes + shares + comments,
            likes=likes,
            shares=shares,
            comments=comments,
            raw_data=metrics,
        )

    # -------------------------------------------------------------------------
    # Publishing hooks
    # -------------------------------------------------------------------------

    async def _resolve_author(self, token: PlatformToken) -> PublishTarget:
        _, user = await self._users_me(token)
        return PublishTarget(author_id=user["id"], username=user.get("username", ""))

    def _build_payload(
        self,
        target: PublishTarget,
        content: PostContent,
        media_handles: List[str],
    ) -> TweetPayload:
        return TweetPayload(
            text=content.text,
            media=TweetMedia(media_ids=media_handles) if media_handles else None,
        )

    async def _create_post(
        self,
        token: PlatformToken,
        target: PublishTarget,
        payload: TweetPayload,
    ) -> PublishResult:
        response = await self._request(
            "POST",
            f"{self.API_BASE}/tweets",
            expected=(201,),
            json=payload.to_request(),
            headers=self._api_headers(token),
        )
        tweet = self._json(response).get("data") or {}
        tweet_id = tweet.get("id")
        if not tweet_id:
            raise DecodeError("Twitter post response has no id", platform=self.platform)

        return PublishResult(
            platform_post_id=tweet_id,
            url=f"https://twitter.com/{target.username}/status/{tweet_id}",
            published_at=utcnow(),
        )
