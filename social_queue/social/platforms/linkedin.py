"""
LinkedIn API integration.

OAuth 2.0 authorization-code flow and the UGC Posts API. LinkedIn issues
no refresh tokens to regular apps, so every refresh request ends in
re-authentication.
"""

from datetime import timedelta
from typing import List, Literal, Optional
from urllib.parse import quote, urlencode

from pydantic import BaseModel, ConfigDict, Field

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

from ..errors import DecodeError
from .base import BasePlatform, PublishTarget

DEFAULT_SCOPES = ["r_liteprofile", "r_emailaddress", "w_member_social"]

# Member posting quota when the API does not report one
DEFAULT_DAILY_LIMIT = 100


# -----------------------------------------------------------------------------
# UGC post payload
# -----------------------------------------------------------------------------


class _UGCModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ShareCommentary(_UGCModel):
    text: str


class ShareMedia(_UGCModel):
    status: str = "READY"
    media: str


class ShareContent(_UGCModel):
    share_commentary: ShareCommentary = Field(alias="shareCommentary")
    share_media_category: Literal["NONE", "IMAGE"] = Field(
        default="NONE", alias="shareMediaCategory"
    )
    media: Optional[List[ShareMedia]] = None


class SpecificContent(_UGCModel):
    share_content: ShareContent = Field(alias="com.linkedin.ugc.ShareContent")


class Visibility(_UGCModel):
    member_network_visibility: str = Field(
        default="PUBLIC", alias="com.linkedin.ugc.MemberNetworkVisibility"
    )


class UGCPost(_UGCModel):
    author: str
    lifecycle_state: str = Field(default="PUBLISHED", alias="lifecycleState")
    specific_content: SpecificContent = Field(alias="specificContent")
    visibility: Visibility = Field(default_factory=Visibility)

    def to_request(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class LinkedInPlatform(BasePlatform):
    """LinkedIn integration backed by the v2 REST API."""

    platform = SocialPlatform.LINKEDIN
    supports_refresh = False

    AUTHORIZATION_URL = "https://www.linkedin.com/oauth/v2/authorization"
    TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
    REVOKE_URL = "https://www.linkedin.com/oauth/v2/revoke"

    API_BASE = "https://api.linkedin.com/v2"
    POST_URL_TEMPLATE = "https://www.linkedin.com/feed/update/{post_id}"

    def _api_headers(self, token: PlatformToken) -> dict:
        return {
            **self._bearer(token.access_token),
            "Content-Type": "application/json",
            "X-Restli-Protocol-Version": "2.0.0",
        }

    # -------------------------------------------------------------------------
    # OAuth
    # -------------------------------------------------------------------------

    async def auth_redirect(self, state: str, redirect_uri: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "state": state,
            "scope": " ".join(DEFAULT_SCOPES),
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    async def handle_oauth_callback(
        self,
        code: str,
        redirect_uri: str,
        state: Optional[str] = None,
    ) -> OAuthTokenResponse:
        data = await self._exchange(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
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
                "platform_username": account.display_name,
            }
        )

    async def revoke_token(self, token: PlatformToken) -> None:
        await self._request(
            "POST",
            self.REVOKE_URL,
            data={
                "token": token.access_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def _me(self, token: PlatformToken) -> dict:
        response = await self._request(
            "GET", f"{self.API_BASE}/me", headers=self._api_headers(token)
        )
        data = self._json(response)
        if not data.get("id"):
            raise DecodeError("LinkedIn profile has no id", platform=self.platform)
        return data

    async def get_account_info(self, token: PlatformToken) -> AccountInfo:
        """
        Get the member profile from /v2/me.

        Args:
            token: Token with a plaintext access token

        Returns:
            Profile with the localized first and last name as display name
        """
        data = await self._me(token)
        name = " ".join(
            part for part in (data.get("localizedFirstName"), data.get("localizedLastName")) if part
        )
        return AccountInfo(
            platform_user_id=data["id"],
            username=data.get("vanityName", ""),
            display_name=name,
        )

    async def get_rate_limits(self, token: PlatformToken) -> RateLimitInfo:
        """
        Read the x-ratelimit-* headers of a /v2/me call.

        LinkedIn enforces daily limits; absent or non-numeric headers fall
        back to the default daily allowance.
        """
        response = await self._request(
            "GET", f"{self.API_BASE}/me", headers=self._api_headers(token)
        )
        headers = response.headers
        raw_limit = headers.get("x-ratelimit-limit")
        raw_remaining = headers.get("x-ratelimit-remaining")
        reset = headers.get("x-ratelimit-reset")

        limit = int(raw_limit) if raw_limit and raw_limit.isdigit() else DEFAULT_DAILY_LIMIT
        remaining = int(raw_remaining) if raw_remaining and raw_remaining.isdigit() else limit
        reset_at = (
            utcnow() + timedelta(seconds=int(reset)) if reset and reset.isdigit()
            else utcnow() + timedelta(hours=24)
        )
        return RateLimitInfo(limit=limit, remaining=remaining, reset_at=reset_at)

    async def get_post_analytics(
        self,
        token: PlatformToken,
        platform_post_id: str,
    ) -> PostAnalytics:
        response = await self._request(
            "GET",
            f"{self.API_BASE}/socialActions/{quote(platform_post_id, safe='')}/likes",
            headers=self._api_headers(token),
        )
        data = self._json(response)
        likes = int(data.get("paging", {}).get("total", 0))
        return PostAnalytics(
            platform=self.platform,
            platform_post_id=platform_post_id,
            likes=likes,
            engagements=likes,
            raw_data=data,
        )

    # -------------------------------------------------------------------------
    # Publishing hooks
    # -------------------------------------------------------------------------

    async def _resolve_author(self, token: PlatformToken) -> PublishTarget:
        data = await self._me(token)
        return PublishTarget(author_id=f"urn:li:person:{data['id']}")

    def _build_payload(
        self,
        target: PublishTarget,
        content: PostContent,
        media_handles: List[str],
    ) -> UGCPost:
        share = ShareContent(
            share_commentary=ShareCommentary(text=content.text),
            share_media_category="IMAGE" if media_handles else "NONE",
            media=[ShareMedia(media=handle) for handle in media_handles] or None,
        )
        return UGCPost(
            author=target.author_id,
            specific_content=SpecificContent(share_content=share),
        )

    async def _create_post(
        self,
        token: PlatformToken,
        target: PublishTarget,
        payload: UGCPost,
    ) -> PublishResult:
        response = await self._request(
            "POST",
            f"{self.API_BASE}/ugcPosts",
            expected=(201,),
            json=payload.to_request(),
            headers=self._api_headers(token),
        )
        data = self._json(response) if response.content else {}
        post_id = data.get("id") or response.headers.get("x-restli-id")
        if not post_id:
            raise DecodeError("LinkedIn post response has no id", platform=self.platform)

        return PublishResult(
            platform_post_id=post_id,
            url=self.POST_URL_TEMPLATE.format(post_id=post_id),
            published_at=utcnow(),
        )
