"""
Tests for the Twitter/X adapter.

Verifies that:
- The authorization URL carries an S256 PKCE challenge bound to the state
- The callback requires the verifier issued for that state
- Tokens are refreshed only inside the refresh window
- Tweets are published through the shared retry loop
"""

import base64
import hashlib
import json
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from social_queue.social.errors import (
    AttemptsExhaustedError,
    OAuthExchangeError,
    OAuthStateError,
    RefreshUnsupportedError,
    ValidationError,
)
from social_queue.social.platforms.twitter import TwitterPlatform, generate_pkce_pair
from social_queue.types.social import PostContent, SocialPlatform

from conftest import reply

TOKEN_URL = "https://api.twitter.com/2/oauth2/token"
ME_URL = "https://api.twitter.com/2/users/me"
TWEETS_URL = "https://api.twitter.com/2/tweets"


def ok_me():
    return reply(
        200,
        json={
            "data": {
                "id": "42",
                "username": "ada",
                "name": "Ada",
                "verified": True,
                "public_metrics": {"followers_count": 10, "following_count": 3},
            }
        },
    )


@pytest.fixture
def tw_token(make_token):
    return make_token(
        platform=SocialPlatform.TWITTER,
        access_token="AT1",
        refresh_token="RT1",
        expires_in=timedelta(hours=2),
    )


class TestPKCE:
    """Tests for PKCE generation."""

    def test_challenge_is_s256_of_verifier(self):
        verifier, challenge = generate_pkce_pair()

        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")
        assert challenge == expected
        assert "=" not in challenge

    def test_pairs_are_unique(self):
        assert generate_pkce_pair()[0] != generate_pkce_pair()[0]


class TestTwitterOAuth:
    """Tests for the OAuth 2.0 PKCE flow."""

    @pytest.mark.asyncio
    async def test_auth_redirect_includes_challenge(self, twitter):
        url = await twitter.auth_redirect("state-1", "https://app.example/cb")

        params = parse_qs(urlparse(url).query)
        assert url.startswith(TwitterPlatform.AUTHORIZATION_URL)
        assert params["code_challenge_method"] == ["S256"]
        assert params["state"] == ["state-1"]
        assert "offline.access" in params["scope"][0]

    @pytest.mark.asyncio
    async def test_callback_sends_verifier_and_basic_auth(self, twitter, fake_api):
        url = await twitter.auth_redirect("state-1", "https://app.example/cb")
        challenge = parse_qs(urlparse(url).query)["code_challenge"][0]
        fake_api.add(
            "POST",
            TOKEN_URL,
            reply(200, json={"access_token": "AT", "refresh_token": "RT", "expires_in": 7200, "scope": "tweet.write"}),
        )
        fake_api.add("GET", ME_URL, ok_me())

        tokens = await twitter.handle_oauth_callback("code", "https://app.example/cb", state="state-1")

        assert tokens.refresh_token == "RT"
        assert tokens.platform_user_id == "42"
        assert tokens.platform_username == "ada"

        request = fake_api.calls("POST", TOKEN_URL)[0]
        assert request.headers["Authorization"].startswith("Basic ")
        assert fake_api.calls("GET", ME_URL)[0].headers["Content-Type"] == "application/json"
        verifier = parse_qs(request.content.decode())["code_verifier"][0]
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")
        assert expected == challenge

    @pytest.mark.asyncio
    async def test_callback_with_unknown_state(self, twitter, fake_api):
        with pytest.raises(OAuthStateError):
            await twitter.handle_oauth_callback("code", "https://app.example/cb", state="nope")
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_verifier_is_single_use(self, twitter, fake_api):
        await twitter.auth_redirect("state-1", "https://app.example/cb")
        fake_api.add("POST", TOKEN_URL, reply(400, json={"error": "invalid_request"}))

        with pytest.raises(OAuthExchangeError):
            await twitter.handle_oauth_callback("code", "https://app.example/cb", state="state-1")
        with pytest.raises(OAuthStateError):
            await twitter.handle_oauth_callback("code", "https://app.example/cb", state="state-1")

    @pytest.mark.asyncio
    async def test_abandoned_verifiers_are_purged(self, http_client, sleep):
        twitter = TwitterPlatform("tw-id", "tw-secret", http_client, sleep=sleep, pkce_ttl=timedelta(0))

        for i in range(50):
            await twitter.auth_redirect(f"state-{i}", "https://app.example/cb")

        # Each new flow drops the expired ones before storing its own
        assert twitter.pending_verifiers == 1

    @pytest.mark.asyncio
    async def test_expired_verifier_rejected(self, http_client, sleep, fake_api):
        twitter = TwitterPlatform("tw-id", "tw-secret", http_client, sleep=sleep, pkce_ttl=timedelta(0))
        await twitter.auth_redirect("state-1", "https://app.example/cb")

        with pytest.raises(OAuthStateError):
            await twitter.handle_oauth_callback("code", "https://app.example/cb", state="state-1")
        assert fake_api.requests == []
        assert twitter.pending_verifiers == 0


class TestTwitterRefresh:
    """Tests for token refresh."""

    @pytest.mark.asyncio
    async def test_not_expiring_is_returned_unchanged(self, twitter, fake_api, tw_token):
        result = await twitter.refresh_token_if_needed(tw_token)

        assert result is tw_token
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_expiring_token_is_refreshed(self, twitter, fake_api, make_token):
        token = make_token(
            platform=SocialPlatform.TWITTER,
            refresh_token="RT1",
            expires_in=timedelta(minutes=2),
        )
        fake_api.add(
            "POST",
            TOKEN_URL,
            reply(200, json={"access_token": "AT2", "refresh_token": "RT2", "expires_in": 7200}),
        )

        result = await twitter.refresh_token_if_needed(token)

        assert result is not token
        assert result.access_token == "AT2"
        assert result.refresh_token == "RT2"
        assert not result.expires_within(timedelta(minutes=5))
        assert token.access_token == "AT1"

        form = parse_qs(fake_api.requests[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["RT1"]

    @pytest.mark.asyncio
    async def test_refresh_keeps_previous_refresh_token(self, twitter, fake_api, make_token):
        token = make_token(platform=SocialPlatform.TWITTER, refresh_token="RT1", expires_in=timedelta(0))
        fake_api.add("POST", TOKEN_URL, reply(200, json={"access_token": "AT2", "expires_in": 7200}))

        result = await twitter.refresh_token_if_needed(token)

        assert result.refresh_token == "RT1"

    @pytest.mark.asyncio
    async def test_refused_refresh(self, twitter, fake_api, make_token):
        token = make_token(platform=SocialPlatform.TWITTER, refresh_token="RT1", expires_in=timedelta(0))
        fake_api.add("POST", TOKEN_URL, reply(400, json={"error": "invalid_grant"}))

        with pytest.raises(OAuthExchangeError):
            await twitter.refresh_token_if_needed(token)

    @pytest.mark.asyncio
    async def test_missing_refresh_token(self, twitter, fake_api, make_token):
        token = make_token(platform=SocialPlatform.TWITTER, refresh_token=None, expires_in=timedelta(0))

        with pytest.raises(RefreshUnsupportedError):
            await twitter.refresh_token_if_needed(token)
        assert fake_api.requests == []


class TestTwitterPublish:
    """Tests for tweeting."""

    @pytest.mark.asyncio
    async def test_publish(self, twitter, fake_api, tw_token):
        fake_api.add("GET", ME_URL, ok_me())
        fake_api.add("POST", TWEETS_URL, reply(201, json={"data": {"id": "1001", "text": "hi"}}))

        result = await twitter.post_content(tw_token, PostContent(text="hi"))

        assert result.platform_post_id == "1001"
        assert result.url == "https://twitter.com/ada/status/1001"
        assert json.loads(fake_api.calls("POST", TWEETS_URL)[0].content) == {"text": "hi"}

    @pytest.mark.asyncio
    async def test_280_limit(self, twitter, fake_api, tw_token):
        with pytest.raises(ValidationError):
            await twitter.post_content(tw_token, PostContent(text="x" * 281))
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_too_many_media(self, twitter, fake_api, tw_token):
        content = PostContent(text="pics", media_urls=[f"https://cdn.example/{i}.png" for i in range(5)])

        with pytest.raises(ValidationError):
            await twitter.post_content(tw_token, content)
        assert fake_api.requests == []

    @pytest.mark.asyncio
    async def test_rate_limited_publish(self, twitter, fake_api, sleep, tw_token):
        fake_api.add("GET", ME_URL, ok_me())
        fake_api.add("POST", TWEETS_URL, reply(429, json={"title": "Too Many Requests"}))

        with pytest.raises(AttemptsExhaustedError):
            await twitter.post_content(tw_token, PostContent(text="hi"))

        assert sleep.delays == [5, 10]
        assert len(fake_api.calls("POST", TWEETS_URL)) == 3


class TestTwitterProbes:
    """Tests for read operations."""

    @pytest.mark.asyncio
    async def test_account_info(self, twitter, fake_api, tw_token):
        fake_api.add("GET", ME_URL, ok_me())

        info = await twitter.get_account_info(tw_token)

        assert info.username == "ada"
        assert info.followers_count == 10
        assert info.is_verified

    @pytest.mark.asyncio
    async def test_rate_limits_from_headers(self, twitter, fake_api, tw_token):
        fake_api.add(
            "GET",
            ME_URL,
            reply(
                200,
                json={"data": {"id": "42", "username": "ada"}},
                headers={
                    "x-rate-limit-limit": "75",
                    "x-rate-limit-remaining": "70",
                    "x-rate-limit-reset": "1900000000",
                },
            ),
        )

        limits = await twitter.get_rate_limits(tw_token)

        assert (limits.limit, limits.remaining) == (75, 70)
        assert int(limits.reset_at.timestamp()) == 1900000000

    @pytest.mark.asyncio
    async def test_post_analytics(self, twitter, fake_api, tw_token):
        fake_api.add(
            "GET",
            f"{TWEETS_URL}/1001",
            reply(
                200,
                json={
                    "data": {
                        "id": "1001",
                        "public_metrics": {
                            "like_count": 5,
                            "retweet_count": 2,
                            "quote_count": 1,
                            "reply_count": 3,
                            "impression_count": 400,
                        },
                    }
                },
            ),
        )

        analytics = await twitter.get_post_analytics(tw_token, "1001")

        assert analytics.likes == 5
        assert analytics.shares == 3
        assert analytics.comments == 3
        assert analytics.impressions == 400
        assert analytics.engagements == 11
