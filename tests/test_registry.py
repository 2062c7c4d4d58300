"""Tests for the adapter registry and its construction from settings."""

import httpx
import pytest

from social_queue.config import Settings
from social_queue.social.errors import AdapterNotFoundError, ConfigurationError
from social_queue.social.platforms import LinkedInPlatform, TwitterPlatform
from social_queue.social.registry import (
    AdapterRegistry,
    build_http_client,
    create_default_registry,
)
from social_queue.types.social import SocialPlatform


class TestAdapterRegistry:
    """Tests for register / get."""

    def test_register_and_get(self, linkedin):
        registry = AdapterRegistry()
        registry.register(linkedin)

        assert registry.get(SocialPlatform.LINKEDIN) is linkedin
        assert SocialPlatform.LINKEDIN in registry
        assert len(registry) == 1

    def test_unknown_platform(self):
        with pytest.raises(AdapterNotFoundError) as exc_info:
            AdapterRegistry().get(SocialPlatform.TIKTOK)
        assert exc_info.value.platform == SocialPlatform.TIKTOK

    def test_duplicate_registration(self, linkedin, http_client):
        registry = AdapterRegistry()
        registry.register(linkedin)

        with pytest.raises(ConfigurationError):
            registry.register(LinkedInPlatform("other", "secret", http_client))


class TestDefaultRegistry:
    """Tests for create_default_registry."""

    @pytest.fixture
    def settings(self, monkeypatch):
        for name in (
            "TWITTER_CLIENT_ID",
            "TWITTER_CLIENT_SECRET",
            "LINKEDIN_CLIENT_ID",
            "LINKEDIN_CLIENT_SECRET",
            "FACEBOOK_APP_ID",
            "FACEBOOK_APP_SECRET",
        ):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("TWITTER_CLIENT_ID", "tw-id")
        monkeypatch.setenv("TWITTER_CLIENT_SECRET", "tw-secret")
        monkeypatch.setenv("LINKEDIN_CLIENT_ID", "li-id")
        monkeypatch.setenv("LINKEDIN_CLIENT_SECRET", "li-secret")
        monkeypatch.setenv("SOCIAL_PUBLISH_MAX_ATTEMPTS", "4")
        monkeypatch.setenv("SOCIAL_REFRESH_WINDOW_MINUTES", "10")
        return Settings(_env_file=None)

    def test_only_configured_platforms_registered(self, settings, http_client):
        registry = create_default_registry(settings, http_client)

        assert set(registry.platforms()) == {SocialPlatform.TWITTER, SocialPlatform.LINKEDIN}
        assert isinstance(registry.get(SocialPlatform.TWITTER), TwitterPlatform)
        with pytest.raises(AdapterNotFoundError):
            registry.get(SocialPlatform.FACEBOOK)

    def test_adapters_receive_tuning(self, settings, http_client, sleep):
        registry = create_default_registry(settings, http_client, sleep=sleep)
        adapter = registry.get(SocialPlatform.LINKEDIN)

        assert adapter.max_attempts == 4
        assert adapter.refresh_window.total_seconds() == 600
        assert adapter._sleep is sleep
        assert adapter._http is http_client

    def test_pkce_lifetime_follows_oauth_state(self, settings, http_client):
        twitter = create_default_registry(settings, http_client).get(SocialPlatform.TWITTER)

        assert twitter.pkce_ttl.total_seconds() == settings.http.oauth_state_ttl_seconds

    @pytest.mark.asyncio
    async def test_build_http_client(self, settings):
        client = build_http_client(settings)
        try:
            assert isinstance(client, httpx.AsyncClient)
            assert client.timeout.read == settings.http.social_http_timeout
        finally:
            await client.aclose()
