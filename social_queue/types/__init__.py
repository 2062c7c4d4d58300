"""
Type definitions for the social-queue project.
"""

from .social import (
    AccountInfo,
    MediaType,
    OAuthTokenResponse,
    PLATFORM_CAPABILITIES,
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

__all__ = [
    "AccountInfo",
    "MediaType",
    "OAuthTokenResponse",
    "PLATFORM_CAPABILITIES",
    "PlatformCapabilities",
    "PlatformToken",
    "PostAnalytics",
    "PostContent",
    "PublishResult",
    "RateLimitInfo",
    "SocialPlatform",
    "get_platform_capabilities",
    "utcnow",
]
