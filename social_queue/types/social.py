"""
Type definitions for social platform integrations.

Provides models for:
- Platform identifiers and static capability descriptors
- Stored platform tokens (encrypted credential pairs plus metadata)
- Post content, publish results, account info and analytics
- OAuth token responses and rate limit snapshots
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class SocialPlatform(str, Enum):
    """Supported social media platforms."""

    TWITTER = "twitter"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"


class MediaType(str, Enum):
    """Kinds of media that can be attached to a post."""

    IMAGE = "image"
    VIDEO = "video"
    GIF = "gif"


# -----------------------------------------------------------------------------
# Capabilities
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class PlatformCapabilities:
    """Static per-platform limits and feature flags."""

    max_text_length: int
    max_media_count: int
    supports_images: bool = True
    supports_videos: bool = True
    supports_multiple_media: bool = True
    supports_scheduling: bool = False
    supports_hashtags: bool = True
    max_video_size_mb: int = 0


PLATFORM_CAPABILITIES: Dict[SocialPlatform, PlatformCapabilities] = {
    SocialPlatform.TWITTER: PlatformCapabilities(
        max_text_length=280,
        max_media_count=4,
        max_video_size_mb=512,
    ),
    SocialPlatform.LINKEDIN: PlatformCapabilities(
        max_text_length=3000,
        max_media_count=9,
        max_video_size_mb=200,
    ),
    SocialPlatform.FACEBOOK: PlatformCapabilities(
        max_text_length=63206,
        max_media_count=10,
        supports_scheduling=True,
        max_video_size_mb=4096,
    ),
    SocialPlatform.INSTAGRAM: PlatformCapabilities(
        max_text_length=2200,
        max_media_count=10,
        max_video_size_mb=650,
    ),
    SocialPlatform.TIKTOK: PlatformCapabilities(
        max_text_length=2200,
        max_media_count=1,
        supports_images=False,
        supports_multiple_media=False,
        max_video_size_mb=4096,
    ),
    SocialPlatform.YOUTUBE: PlatformCapabilities(
        max_text_length=5000,
        max_media_count=1,
        supports_images=False,
        supports_multiple_media=False,
        supports_scheduling=True,
        max_video_size_mb=256000,
    ),
}


def get_platform_capabilities(platform: SocialPlatform) -> PlatformCapabilities:
    """Get the capability descriptor for a platform."""
    return PLATFORM_CAPABILITIES[platform]


# -----------------------------------------------------------------------------
# Token Models
# -----------------------------------------------------------------------------


class PlatformToken(BaseModel):
    """
    One authorized connection between a principal and an external account.

    The secret fields hold ciphertext whenever the record is at rest; they
    are excluded from serialization and from repr.
    """

    id: Optional[int] = None
    principal_id: str
    platform: SocialPlatform
    platform_user_id: str = ""
    platform_username: str = ""

    access_token: str = Field(default="", exclude=True, repr=False)
    refresh_token: Optional[str] = Field(default=None, exclude=True, repr=False)

    expires_at: Optional[datetime] = None
    scope: str = ""
    is_valid: bool = True
    last_validated: Optional[datetime] = None

    extra: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_refresh_token(self) -> bool:
        """Whether the platform issued a refresh token for this connection."""
        return bool(self.refresh_token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Tokens without an expiry never expire."""
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def expires_within(
        self,
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> bool:
        """Check whether the token expires before ``now + window``."""
        if self.expires_at is None:
            return False
        return self.expires_at - (now or utcnow()) <= window


class OAuthTokenResponse(BaseModel):
    """Tokens and identity returned by an authorization-code exchange."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_in: int = 0
    expires_at: Optional[datetime] = None
    token_type: str = "Bearer"
    scope: str = ""

    platform_user_id: str = ""
    platform_username: str = ""
    extra: Dict[str, Any] = Field(default_factory=dict, repr=False)


# -----------------------------------------------------------------------------
# Content and Results
# -----------------------------------------------------------------------------


class PostContent(BaseModel):
    """Content for a social media post."""

    text: str = ""
    media_urls: List[str] = Field(default_factory=list)
    media_type: Optional[MediaType] = None
    link: Optional[str] = None
    scheduled_at: Optional[datetime] = None

    # Platform-specific options
    options: Dict[str, Any] = Field(default_factory=dict)


class PublishResult(BaseModel):
    """Outcome of a publish attempt that reached the platform."""

    model_config = ConfigDict(frozen=True)

    platform_post_id: str
    url: str
    published_at: datetime = Field(default_factory=utcnow)
    success: bool = True
    error: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class AccountInfo(BaseModel):
    """Profile of the platform-side account behind a token."""

    model_config = ConfigDict(frozen=True)

    platform_user_id: str
    username: str = ""
    display_name: str = ""
    profile_image_url: str = ""
    followers_count: int = 0
    following_count: int = 0
    is_verified: bool = False
    bio: Optional[str] = None


class RateLimitInfo(BaseModel):
    """Rate limit snapshot as reported by the platform."""

    model_config = ConfigDict(frozen=True)

    limit: int
    remaining: int
    reset_at: datetime


class PostAnalytics(BaseModel):
    """Engagement metrics for a published post."""

    model_config = ConfigDict(frozen=True)

    platform: SocialPlatform
    platform_post_id: str
    impressions: int = 0
    engagements: int = 0
    likes: int = 0
    shares: int = 0
    comments: int = 0
    clicks: int = 0
    fetched_at: datetime = Field(default_factory=utcnow)
    raw_data: Dict[str, Any] = Field(default_factory=dict)
