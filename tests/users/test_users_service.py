"""Identity resolver and profile service tests."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import func, select

from questline.db.models import User
from questline.exceptions import ConflictError, ValidationError
from questline.users.service import (
    get_leaderboard,
    get_platform_stats,
    get_user_by_address,
    resolve_or_create_user,
    update_profile,
)

WALLET = "0x" + "ab" * 20
OTHER_WALLET = "0x" + "cd" * 20


class TestResolveOrCreateUser:
    """First-contact creation and lookup."""

    @pytest.mark.asyncio
    async def test_creates_zeroed_user(self, db_session):
        user, created = await resolve_or_create_user(db_session, WALLET)

        assert created is True
        assert user.id is not None
        assert user.wallet_address == WALLET
        assert user.total_xp == 0
        assert user.username is None
        assert user.completed_quests == []
        assert user.achievements == []

    @pytest.mark.asyncio
    async def test_returns_existing_user(self, db_session):
        first, _ = await resolve_or_create_user(db_session, WALLET)
        second, created = await resolve_or_create_user(db_session, WALLET)

        assert created is False
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_address_is_case_insensitive(self, db_session):
        first, _ = await resolve_or_create_user(db_session, WALLET.upper().replace("0X", "0x"))
        second, created = await resolve_or_create_user(db_session, WALLET)

        assert first.wallet_address == WALLET
        assert created is False
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_rejects_malformed_address(self, db_session):
        with pytest.raises(ValidationError):
            await resolve_or_create_user(db_session, "not-a-wallet")

    @pytest.mark.asyncio
    async def test_concurrent_first_contact_creates_one_user(self, session_factory):
        async def resolve():
            async with session_factory() as session:
                user, created = await resolve_or_create_user(session, WALLET)
                return user.id, created

        results = await asyncio.gather(*(resolve() for _ in range(5)))

        assert len({user_id for user_id, _ in results}) == 1
        assert sum(1 for _, created in results if created) == 1
        async with session_factory() as session:
            count = (await session.execute(select(func.count(User.id)))).scalar()
        assert count == 1


class TestUpdateProfile:
    """Username set/clear and uniqueness."""

    @pytest.mark.asyncio
    async def test_sets_username(self, db_session):
        user, _ = await resolve_or_create_user(db_session, WALLET)
        await update_profile(db_session, user, "  satoshi  ")

        reloaded = await get_user_by_address(db_session, WALLET, refresh=True)
        assert reloaded.username == "satoshi"

    @pytest.mark.asyncio
    async def test_empty_username_clears(self, db_session):
        user, _ = await resolve_or_create_user(db_session, WALLET)
        await update_profile(db_session, user, "satoshi")
        await update_profile(db_session, user, "")

        assert user.username is None

    @pytest.mark.asyncio
    async def test_many_users_without_username(self, db_session):
        a, _ = await resolve_or_create_user(db_session, WALLET)
        b, _ = await resolve_or_create_user(db_session, OTHER_WALLET)
        await update_profile(db_session, a, None)
        await update_profile(db_session, b, None)

        assert a.username is None and b.username is None

    @pytest.mark.asyncio
    async def test_taken_username_conflicts(self, db_session):
        a, _ = await resolve_or_create_user(db_session, WALLET)
        b, _ = await resolve_or_create_user(db_session, OTHER_WALLET)
        await update_profile(db_session, a, "satoshi")

        with pytest.raises(ConflictError, match="already taken"):
            await update_profile(db_session, b, "satoshi")

    @pytest.mark.asyncio
    async def test_keeping_own_username_is_allowed(self, db_session):
        user, _ = await resolve_or_create_user(db_session, WALLET)
        await update_profile(db_session, user, "satoshi")
        await update_profile(db_session, user, "satoshi")

        assert user.username == "satoshi"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username", ["ab", "x" * 33])
    async def test_length_bounds(self, db_session, username):
        user, _ = await resolve_or_create_user(db_session, WALLET)
        with pytest.raises(ValidationError):
            await update_profile(db_session, user, username)


class TestLeaderboardAndStats:
    """Ranking and totals."""

    @pytest.mark.asyncio
    async def test_ranked_by_xp(self, db_session):
        a, _ = await resolve_or_create_user(db_session, WALLET)
        b, _ = await resolve_or_create_user(db_session, OTHER_WALLET)
        b.total_xp = 250
        await db_session.commit()
        await update_profile(db_session, b, "leader")

        entries, total = await get_leaderboard(db_session, limit=10)

        assert total == 2
        assert [e["wallet_address"] for e in entries] == [OTHER_WALLET, WALLET]
        assert entries[0]["rank"] == 1
        assert entries[0]["username"] == "leader"
        assert entries[1]["username"] == "Anonymous"
        assert entries[1]["completed_quests"] == 0

    @pytest.mark.asyncio
    async def test_offset_continues_ranks(self, db_session):
        await resolve_or_create_user(db_session, WALLET)
        await resolve_or_create_user(db_session, OTHER_WALLET)

        entries, _ = await get_leaderboard(db_session, limit=1, offset=1)

        assert len(entries) == 1
        assert entries[0]["rank"] == 2

    @pytest.mark.asyncio
    async def test_platform_stats_empty(self, db_session):
        assert await get_platform_stats(db_session) == {
            "total_users": 0,
            "total_xp": 0,
            "total_quests_completed": 0,
        }
