"""
Centralized configuration management for social-queue.

Pydantic Settings groups loaded from the environment and an optional .env
file. The core components never read configuration themselves; they receive
values through their constructors, and this module only assembles them.

Usage:
    from social_queue.config import get_settings

    settings = get_settings()
    if settings.platforms.is_configured(SocialPlatform.LINKEDIN):
        ...
"""

import logging
from datetime import timedelta
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from social_queue.types.social import SocialPlatform

_ENV = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
)


# =============================================================================
# Security Settings
# =============================================================================


class SecuritySettings(BaseSettings):
    """Credential encryption and deployment environment."""

    model_config = _ENV

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    encryption_key: Optional[SecretStr] = Field(
        default=None,
        description="32-byte AES-256 key used to encrypt platform tokens at rest",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def has_encryption_key(self) -> bool:
        return bool(self.encryption_key and self.encryption_key.get_secret_value())


# =============================================================================
# HTTP / Retry Settings
# =============================================================================


class HTTPSettings(BaseSettings):
    """Outbound transport, publish retry and token refresh tuning."""

    model_config = _ENV

    social_http_timeout: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Overall per-call timeout in seconds for platform requests",
    )
    social_publish_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum create-post attempts per publish call",
    )
    social_retry_backoff_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Linear backoff step between rate-limited publish attempts",
    )
    social_refresh_window_minutes: int = Field(
        default=5,
        ge=0,
        description="Refresh tokens that expire within this many minutes",
    )
    social_expiring_batch_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum tokens handled by one refresh sweep",
    )
    oauth_state_ttl_seconds: int = Field(
        default=600,
        ge=1,
        description="Lifetime of an anti-CSRF OAuth state value",
    )

    @property
    def refresh_window(self) -> timedelta:
        return timedelta(minutes=self.social_refresh_window_minutes)


# =============================================================================
# Platform Credentials
# =============================================================================


class PlatformCredentialSettings(BaseSettings):
    """OAuth client credentials for each platform app."""

    model_config = _ENV

    twitter_client_id: Optional[str] = Field(default=None, description="Twitter OAuth 2.0 client ID")
    twitter_client_secret: Optional[SecretStr] = Field(default=None, description="Twitter OAuth 2.0 client secret")

    linkedin_client_id: Optional[str] = Field(default=None, description="LinkedIn app client ID")
    linkedin_client_secret: Optional[SecretStr] = Field(default=None, description="LinkedIn app client secret")

    facebook_app_id: Optional[str] = Field(default=None, description="Facebook app ID")
    facebook_app_secret: Optional[SecretStr] = Field(default=None, description="Facebook app secret")

    oauth_redirect_uri: str = Field(
        default="http://localhost:8080/api/v1/social/callback",
        description="Default redirect URI registered with every platform app",
    )

    def credentials_for(self, platform: SocialPlatform) -> Optional[tuple]:
        """Return ``(client_id, client_secret)`` or None when not configured."""
        pairs = {
            SocialPlatform.TWITTER: (self.twitter_client_id, self.twitter_client_secret),
            SocialPlatform.LINKEDIN: (self.linkedin_client_id, self.linkedin_client_secret),
            SocialPlatform.FACEBOOK: (self.facebook_app_id, self.facebook_app_secret),
        }
        client_id, secret = pairs.get(platform, (None, None))
        if not client_id or secret is None:
            return None
        return client_id, secret.get_secret_value()

    def is_configured(self, platform: SocialPlatform) -> bool:
        return self.credentials_for(platform) is not None

    @property
    def configured_platforms(self) -> List[str]:
        return [
            platform.value
            for platform in (SocialPlatform.TWITTER, SocialPlatform.LINKEDIN, SocialPlatform.FACEBOOK)
            if self.is_configured(platform)
        ]


# =============================================================================
# Logging Settings
# =============================================================================


class LoggingSettings(BaseSettings):
    """Configuration for logging."""

    model_config = _ENV

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format_json: bool = Field(
        default=False,
        description="Force JSON log format outside production",
    )

    @property
    def level(self) -> int:
        return logging.getLevelName(self.log_level)

    def use_json(self, environment: str) -> bool:
        return self.log_format_json or environment == "production"


# =============================================================================
# Main Settings Class
# =============================================================================


class Settings(BaseSettings):
    """Aggregate of every configuration group."""

    model_config = _ENV

    security: SecuritySettings = Field(default_factory=SecuritySettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)
    platforms: PlatformCredentialSettings = Field(default_factory=PlatformCredentialSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        return self.security.is_production

    def get_config_summary(self) -> dict:
        """
        Summarize configuration status for startup logging.

        No secret values are included.
        """
        return {
            "environment": self.security.environment,
            "encryption_key_configured": self.security.has_encryption_key,
            "configured_platforms": self.platforms.configured_platforms,
            "http_timeout_seconds": self.http.social_http_timeout,
            "publish_max_attempts": self.http.social_publish_max_attempts,
            "refresh_window_minutes": self.http.social_refresh_window_minutes,
            "log_level": self.logging.log_level,
        }


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Raises:
        pydantic.ValidationError: If a value is present but invalid
    """
    return Settings()


def reload_settings() -> Settings:
    """Clear the cache and load settings from the environment again."""
    get_settings.cache_clear()
    return get_settings()
