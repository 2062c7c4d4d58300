"""
Adapter registry and construction of the shared HTTP transport.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Dict, List, Optional, Type

import httpx

from social_queue.config import Settings
from social_queue.types.social import SocialPlatform

from .errors import AdapterNotFoundError, ConfigurationError
from .platforms import BasePlatform, FacebookPlatform, LinkedInPlatform, TwitterPlatform
from .platforms.base import SleepFunc

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: Dict[SocialPlatform, Type[BasePlatform]] = {
    SocialPlatform.TWITTER: TwitterPlatform,
    SocialPlatform.LINKEDIN: LinkedInPlatform,
    SocialPlatform.FACEBOOK: FacebookPlatform,
}


class AdapterRegistry:
    """Maps each platform to the adapter that serves it."""

    def __init__(self) -> None:
        self._adapters: Dict[SocialPlatform, BasePlatform] = {}

    def register(self, adapter: BasePlatform) -> None:
        """
        Add an adapter under the platform it reports.

        Raises:
            ConfigurationError: The platform already has an adapter
        """
        platform = adapter.get_platform_name()
        if platform in self._adapters:
            raise ConfigurationError(
                f"An adapter for {platform.value} is already registered",
                platform=platform,
            )
        self._adapters[platform] = adapter

    def get(self, platform: SocialPlatform) -> BasePlatform:
        """
        Look up the adapter for a platform.

        Raises:
            AdapterNotFoundError: No adapter is registered for it
        """
        try:
            return self._adapters[platform]
        except KeyError:
            raise AdapterNotFoundError(
                f"No adapter registered for {platform.value}",
                platform=platform,
            ) from None

    def platforms(self) -> List[SocialPlatform]:
        return list(self._adapters)

    def __contains__(self, platform: object) -> bool:
        return platform in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the connection pool shared by every adapter."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http.social_http_timeout),
        headers={"User-Agent": "social-queue/0.1"},
    )


def create_default_registry(
    settings: Settings,
    http_client: httpx.AsyncClient,
    sleep: Optional[SleepFunc] = None,
) -> AdapterRegistry:
    """
    Register an adapter for every platform whose client credentials are set.

    Args:
        settings: Application settings
        http_client: Shared transport, owned by the caller
        sleep: Backoff sleep override, mainly for tests
    """
    registry = AdapterRegistry()
    http = settings.http

    for platform, adapter_cls in ADAPTER_CLASSES.items():
        credentials = settings.platforms.credentials_for(platform)
        if credentials is None:
            logger.warning("%s credentials not configured, adapter skipped", platform.value)
            continue

        client_id, client_secret = credentials
        options = {}
        if adapter_cls is TwitterPlatform:
            options["pkce_ttl"] = timedelta(seconds=http.oauth_state_ttl_seconds)

        registry.register(
            adapter_cls(
                client_id,
                client_secret,
                http_client,
                sleep=sleep or asyncio.sleep,
                request_timeout=http.social_http_timeout,
                max_attempts=http.social_publish_max_attempts,
                backoff_seconds=http.social_retry_backoff_seconds,
                refresh_window=http.refresh_window,
                **options,
            )
        )

    logger.info(
        "Adapter registry ready",
        extra={"platforms": [p.value for p in registry.platforms()]},
    )
    return registry
