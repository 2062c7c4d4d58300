"""
Facebook Graph API integration.

Posts are published to a Facebook Page on the user's behalf, using the
page access token returned by ``/me/accounts``. User tokens are exchanged
for long-lived tokens (about 60 days) and cannot be refreshed.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional
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

from ..errors import DecodeError, PlatformError
from .base import BasePlatform, PublishTarget

logger = logging.getLogger(__name__)

GRAPH_VERSION = "v18.0"
DEFAULT_SCOPES = ["pages_manage_posts", "pages_read_engagement", "pages_show_list"]


class FeedPost(BaseModel):
    message: str
    link: Optional[str] = None

    def to_form(self) -> Dict[str, str]:
        return self.model_dump(exclude_none=True)


class FacebookPlatform(BasePlatform):
    """Facebook Page publishing through the Graph API."""

    platform = SocialPlatform.FACEBOOK
    supports_refresh = False

    AUTHORIZATION_URL = f"https://www.facebook.com/{GRAPH_VERSION}/dialog/oauth"
    GRAPH_URL = f"https://graph.facebook.com/{GRAPH_VERSION}"
    TOKEN_URL = f"{GRAPH_URL}/oauth/access_token"

    JSON_HEADERS = {"Content-Type": "application/json"}

    def _graph(self, path: str) -> str:
        return f"{self.GRAPH_URL}/{path.lstrip('/')}"

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    async def auth_redirect(self, state: str, redirect_uri: str) -> str:
        params = {
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "scope": ",".join(DEFAULT_SCOPES),
            "state": state,
            "response_type": "code",
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    async def handle_oauth_callback(
        self,
        code: str,
        redirect_uri: str,
        state: Optional[str] = None,
    ) -> OAuthTokenResponse:
        short_lived = await self._exchange(
            "GET",
            self.TOKEN_URL,
            params={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "redirect_uri": redirect_uri,
                "code": code,
            },
            headers=self.JSON_HEADERS,
        )
        long_lived = await self._exchange(
            "GET",
            self.TOKEN_URL,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "fb_exchange_token": short_lived["access_token"],
            },
            headers=self.JSON_HEADERS,
        )
        tokens = self._token_response(long_lived)

        probe = PlatformToken(
            principal_id="",
            platform=self.platform,
            access_token=tokens.access_token,
        )
        account = await self.get_account_info(probe)
        pages = await self._pages(tokens.access_token)

        extra: Dict[str, Any] = {}
        if pages:
            extra = {"page_id": pages[0]["id"], "page_name": pages[0].get("name", "")}

        return tokens.model_copy(
            update={
                "platform_user_id": account.platform_user_id,
                "platform_username": account.display_name,
                "extra": extra,
            }
        )

    async def revoke_token(self, token: PlatformToken) -> None:
        await self._request(
            "DELETE",
            self._graph("me/permissions"),
            params={"access_token": token.access_token},
            headers=self.JSON_HEADERS,
        )

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def get_account_info(self, token: PlatformToken) -> AccountInfo:
        """
        Get the user profile behind a token.

        Args:
            token: Token with a plaintext user access token

        Returns:
            Profile with name and picture; pages are resolved separately
        """
        response = await self._request(
            "GET",
            self._graph("me"),
            params={"fields": "id,name,picture", "access_token": token.access_token},
            headers=self.JSON_HEADERS,
        )
        data = self._json(response)
        if not data.get("id"):
            raise DecodeError("Facebook profile has no id", platform=self.platform)

        picture = (data.get("picture") or {}).get("data") or {}
        return AccountInfo(
            platform_user_id=data["id"],
            display_name=data.get("name", ""),
            profile_image_url=picture.get("url", ""),
        )

    async def get_rate_limits(self, token: PlatformToken) -> RateLimitInfo:
        """
        Derive a snapshot from the ``x-app-usage`` header, which reports
        usage as a percentage of the hourly allowance.
        """
        response = await self._request(
            "GET",
            self._graph("me"),
            params={"fields": "id", "access_token": token.access_token},
            headers=self.JSON_HEADERS,
        )
        usage_header = response.headers.get("x-app-usage")
        used = 0
        if usage_header:
            try:
                used = int(json.loads(usage_header).get("call_count", 0))
            except (ValueError, AttributeError):
                logger.debug("Unparseable x-app-usage header: %s", usage_header)

        return RateLimitInfo(
            limit=100,
            remaining=max(0, 100 - used),
            reset_at=utcnow() + timedelta(hours=1),
        )

    async def get_post_analytics(
        self,
        token: PlatformToken,
        platform_post_id: str,
    ) -> PostAnalytics:
        response = await self._request(
            "GET",
            self._graph(platform_post_id),
            params={
                "fields": "likes.summary(true),comments.summary(true),shares",
                "access_token": token.access_token,
            },
            headers=self.JSON_HEADERS,
        )
        data = self._json(response)

        likes = ((data.get("likes") or {}).get("summary") or {}).get("total_count", 0)
        comments = ((data.get("comments") or {}).get("summary") or {}).get("total_count", 0)
        shares = (data.get("shares") or {}).get("count", 0)
        return PostAnalytics(
            platform=self.platform,
            platform_post_id=platform_post_id,
            likes=likes,
            comments=comments,
            shares=shares,
            engagements=likes + comments + shares,
            raw_data=data,
        )

    # -------------------------------------------------------------------------
    # Publishing hooks
    # -------------------------------------------------------------------------

    async def _pages(self, access_token: str) -> List[Dict[str, Any]]:
        response = await self._request(
            "GET",
            self._graph("me/accounts"),
            params={"access_token": access_token},
            headers=self.JSON_HEADERS,
        )
        pages = self._json(response).get("data")
        if not isinstance(pages, list):
            raise DecodeError("Facebook pages response has no data", platform=self.platform)
        return pages

    async def _resolve_author(self, token: PlatformToken) -> PublishTarget:
        pages = await self._pages(token.access_token)
        if not pages:
            raise PlatformError("No Facebook pages found for this account", platform=self.platform)

        wanted = token.extra.get("page_id")
        page = next((p for p in pages if p.get("id") == wanted), None) if wanted else pages[0]
        if page is None:
            raise PlatformError(
                f"Facebook page {wanted} is no longer managed by this account",
                platform=self.platform,
            )
        return PublishTarget(
            author_id=page["id"],
            username=page.get("name", ""),
            access_token=page.get("access_token"),
        )

    def _build_payload(
        self,
        target: PublishTarget,
        content: PostContent,
        media_handles: List[str],
    ) -> FeedPost:
        # Without uploaded photos the first media URL is shared as a link
        link = content.link or (content.media_urls[0] if content.media_urls else None)
        return FeedPost(message=content.text, link=link)

    async def _create_post(
        self,
        token: PlatformToken,
        target: PublishTarget,
        payload: FeedPost,
    ) -> PublishResult:
        response = await self._request(
            "POST",
            self._graph(f"{target.author_id}/feed"),
            params={"access_token": target.access_token or token.access_token},
            data=payload.to_form(),
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        post_id = self._json(response).get("id")
        if not post_id:
            raise DecodeError("Facebook post response has no id", platform=self.platform)

        return PublishResult(
            platform_post_id=post_id,
            url=f"https://www.facebook.com/{post_id}",
            published_at=utcnow(),
            extra={"page_id": target.author_id},
        )
