"""
Tests for the in-memory token repository.

Verifies that:
- Lookups never return invalidated tokens
- Invalidated tokens reject further writes
- Expiring-token selection filters, orders and truncates
- Callers never share state with the store
"""

from datetime import timedelta

import pytest

from social_queue.social.errors import InvalidTokenError, TokenNotFoundError
from social_queue.social.repository import InMemoryTokenRepository
from social_queue.types.social import SocialPlatform, utcnow


@pytest.fixture
def repo():
    return InMemoryTokenRepository()


class TestTokenRepositoryBasics:
    """Tests for create, get and update."""

    @pytest.mark.asyncio
    async def test_create_assigns_ids(self, repo, make_token):
        first = await repo.create(make_token())
        second = await repo.create(make_token(platform_user_id="acct-2"))

        assert first.id == 1
        assert second.id == 2

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, repo, make_token):
        stored = await repo.create(make_token(access_token="cipher-1"))
        stored.access_token = "mutated"

        fetched = await repo.get(stored.id)

        assert fetched.access_token == "cipher-1"

    @pytest.mark.asyncio
    async def test_lookup_by_platform_account(self, repo, make_token):
        stored = await repo.create(make_token(platform=SocialPlatform.TWITTER, platform_user_id="42"))

        found = await repo.get_by_platform_account("user-1", SocialPlatform.TWITTER, "42")
        missing = await repo.get_by_platform_account("user-2", SocialPlatform.TWITTER, "42")

        assert found.id == stored.id
        assert missing is None

    @pytest.mark.asyncio
    async def test_update_overwrites_secrets(self, repo, make_token):
        stored = await repo.create(make_token(access_token="cipher-1"))
        stored.access_token = "cipher-2"

        await repo.update(stored)

        assert (await repo.get(stored.id)).access_token == "cipher-2"

    @pytest.mark.asyncio
    async def test_update_unknown_token(self, repo, make_token):
        token = make_token()
        token.id = 99

        with pytest.raises(TokenNotFoundError):
            await repo.update(token)

    @pytest.mark.asyncio
    async def test_delete(self, repo, make_token):
        stored = await repo.create(make_token())

        assert await repo.delete(stored.id)
        assert not await repo.delete(stored.id)
        assert await repo.get(stored.id) is None


class TestTokenInvalidation:
    """Tests for invalidated tokens."""

    @pytest.mark.asyncio
    async def test_invalidated_token_hidden_from_lookups(self, repo, make_token):
        stored = await repo.create(make_token())

        await repo.invalidate(stored.id)

        assert await repo.get(stored.id) is None
        assert await repo.list_by_principal("user-1") == []
        assert await repo.get_by_platform_account("user-1", SocialPlatform.LINKEDIN, "acct-1") is None

    @pytest.mark.asyncio
    async def test_invalidated_token_rejects_updates(self, repo, make_token):
        stored = await repo.create(make_token())
        await repo.invalidate(stored.id)

        with pytest.raises(InvalidTokenError):
            await repo.update(stored)

    @pytest.mark.asyncio
    async def test_invalidate_is_idempotent(self, repo, make_token):
        stored = await repo.create(make_token())

        await repo.invalidate(stored.id)
        await repo.invalidate(stored.id)

        assert await repo.get(stored.id) is None

    @pytest.mark.asyncio
    async def test_invalidate_unknown(self, repo):
        with pytest.raises(TokenNotFoundError):
            await repo.invalidate(7)


class TestExpiringSelection:
    """Tests for get_expiring."""

    @pytest.mark.asyncio
    async def test_filters_and_orders(self, repo, make_token):
        soon = await repo.create(make_token(refresh_token="r", expires_in=timedelta(minutes=3), platform_user_id="a"))
        sooner = await repo.create(make_token(refresh_token="r", expires_in=timedelta(minutes=1), platform_user_id="b"))
        await repo.create(make_token(refresh_token="r", expires_in=timedelta(days=1), platform_user_id="late"))
        await repo.create(make_token(refresh_token=None, expires_in=timedelta(minutes=1), platform_user_id="no-rt"))
        await repo.create(make_token(refresh_token="r", expires_in=None, platform_user_id="no-expiry"))
        invalid = await repo.create(make_token(refresh_token="r", expires_in=timedelta(minutes=2), platform_user_id="x"))
        await repo.invalidate(invalid.id)

        expiring = await repo.get_expiring(utcnow() + timedelta(minutes=5), limit=10)

        assert [t.id for t in expiring] == [sooner.id, soon.id]

    @pytest.mark.asyncio
    async def test_includes_already_expired(self, repo, make_token):
        expired = await repo.create(make_token(refresh_token="r", expires_in=timedelta(hours=-1)))

        expiring = await repo.get_expiring(utcnow(), limit=10)

        assert [t.id for t in expiring] == [expired.id]

    @pytest.mark.asyncio
    async def test_limit(self, repo, make_token):
        for minutes in (4, 1, 3, 2):
            await repo.create(
                make_token(refresh_token="r", expires_in=timedelta(minutes=minutes), platform_user_id=str(minutes))
            )

        expiring = await repo.get_expiring(utcnow() + timedelta(minutes=5), limit=2)

        assert [t.platform_user_id for t in expiring] == ["1", "2"]
