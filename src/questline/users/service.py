"""User identity resolution and profile management."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from questline.db.models import CompletedQuest, User, UserAchievement
from questline.exceptions import ConflictError, UserNotFoundError, ValidationError
from questline.users.address_validation import normalize_wallet_address

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 32


def normalize_address_or_raise(wallet_address: str | None) -> str:
    """Lowercase and validate a wallet address, mapping failures to ``ValidationError``."""
    try:
        return normalize_wallet_address(wallet_address)
    except ValueError as e:
        raise ValidationError(str(e)) from e


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_address(
    db: AsyncSession,
    wallet_address: str,
    *,
    refresh: bool = False,
) -> User | None:
    """Fetch a user by wallet address (case-insensitive).

    ``refresh`` overwrites any copy already in the session's identity map.
    """
    stmt = select(User).where(User.wallet_address == normalize_address_or_raise(wallet_address))
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def require_user(db: AsyncSession, wallet_address: str) -> User:
    user = await get_user_by_address(db, wallet_address)
    if user is None:
        raise UserNotFoundError(normalize_address_or_raise(wallet_address))
    return user


# ---------------------------------------------------------------------------
# Identity resolver: auto-create on first contact
# ---------------------------------------------------------------------------


async def resolve_or_create_user(db: AsyncSession, wallet_address: str) -> tuple[User, bool]:
    """
    Get the user for a wallet address, creating a zeroed one on first sight.

    The new row is committed immediately. When two first-contact requests race,
    the UNIQUE(wallet_address) constraint rejects the loser's insert; the loser
    rolls back and returns the winner's row instead of failing.

    Returns:
        Tuple of (user, created) where created is True if a new user was made.

    Raises:
        ValidationError: If the address is malformed.
        ConflictError: If the row vanished between the conflict and the re-read.
    """
    address = normalize_address_or_raise(wallet_address)
    user = await get_user_by_address(db, address)
    if user is not None:
        return user, False

    now = datetime.now(timezone.utc)
    user = User(
        wallet_address=address,
        username=None,
        total_xp=0,
        registered_at=now,
        last_active_at=now,
        completed_quests=[],
        achievements=[],
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await get_user_by_address(db, address, refresh=True)
        if existing is None:
            msg = "User creation conflict"
            raise ConflictError(msg, wallet_address=address) from None
        logger.info("user_create_race_resolved", user_id=existing.id, wallet_address=address)
        return existing, False

    logger.info("user_created", user_id=user.id, wallet_address=address)
    return user, True


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


def _normalize_username(username: str | None) -> str | None:
    if username is None:
        return None
    username = username.strip()
    if not username:
        return None
    if len(username) < USERNAME_MIN_LENGTH:
        msg = f"Username must be at least {USERNAME_MIN_LENGTH} characters"
        raise ValidationError(msg)
    if len(username) > USERNAME_MAX_LENGTH:
        msg = f"Username must be at most {USERNAME_MAX_LENGTH} characters"
        raise ValidationError(msg)
    return username


async def update_profile(
    db: AsyncSession,
    user: User,
    username: str | None = None,
) -> User:
    """
    Set or clear the user's username.

    An empty or missing username clears it (stored as NULL, so any number of
    users may have none).

    Raises:
        ValidationError: If the username is too short or too long.
        ConflictError: If another user already has the username.
    """
    normalized = _normalize_username(username)

    if normalized is not None:
        result = await db.execute(
            select(User.id)
            .where(User.username == normalized)
            .where(User.id != user.id)
        )
        if result.scalar_one_or_none() is not None:
            msg = "Username already taken"
            raise ConflictError(msg, username=normalized)

    user.username = normalized
    user.last_active_at = datetime.now(timezone.utc)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        msg = "Username already taken"
        raise ConflictError(msg, username=normalized) from None

    logger.info("profile_updated", user_id=user.id, username=normalized)
    return user


# ---------------------------------------------------------------------------
# Leaderboard & stats
# ---------------------------------------------------------------------------


async def get_leaderboard(
    db: AsyncSession,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """Users ranked by total XP. Returns (entries, total_users)."""
    quest_count = (
        select(func.count(CompletedQuest.id))
        .where(CompletedQuest.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )
    achievement_count = (
        select(func.count(UserAchievement.id))
        .where(UserAchievement.user_id == User.id)
        .correlate(User)
        .scalar_subquery()
    )
    result = await db.execute(
        select(
            User.wallet_address,
            User.username,
            User.total_xp,
            quest_count.label("completed_quests"),
            achievement_count.label("achievements"),
        )
        .order_by(User.total_xp.desc(), User.id.asc())
        .limit(limit)
        .offset(offset)
    )
    entries = [
        {
            "rank": offset + index + 1,
            "wallet_address": row.wallet_address,
            "username": row.username or "Anonymous",
            "total_xp": row.total_xp,
            "completed_quests": row.completed_quests,
            "achievements": row.achievements,
        }
        for index, row in enumerate(result)
    ]

    total = (await db.execute(select(func.count(User.id)))).scalar() or 0
    return entries, total


async def get_platform_stats(db: AsyncSession) -> dict[str, int]:
    """Totals across all users."""
    total_users = (await db.execute(select(func.count(User.id)))).scalar() or 0
    total_xp = (await db.execute(select(func.coalesce(func.sum(User.total_xp), 0)))).scalar() or 0
    total_completed = (await db.execute(select(func.count(CompletedQuest.id)))).scalar() or 0
    return {
        "total_users": total_users,
        "total_xp": total_xp,
        "total_quests_completed": total_completed,
    }
