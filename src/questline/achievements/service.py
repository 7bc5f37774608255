"""Achievement unlocking with duplicate prevention and notification."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questline.achievements.definitions import evaluate_achievements, get_achievement
from questline.db.models import CompletedQuest, User, UserAchievement
from questline.events import ACHIEVEMENT_UNLOCKED_CHANNEL, publish_event

logger = structlog.get_logger()

# A concurrent evaluator can win the UNIQUE race for one row of a batch
_MAX_PASSES = 2


async def get_unlocked_ids(db: AsyncSession, user_id: int) -> set[int]:
    result = await db.execute(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    )
    return set(result.scalars().all())


async def unlock_achievements(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
) -> list[dict]:
    """Persist every achievement the user now qualifies for.

    Returns the newly unlocked definitions (empty if nothing changed).
    Never removes an achievement, even if thresholds change later.
    """
    for _ in range(_MAX_PASSES):
        total_xp = (
            await db.execute(select(User.total_xp).where(User.id == user_id))
        ).scalar_one_or_none()
        if total_xp is None:
            return []

        quests_completed = (
            await db.execute(
                select(func.count(CompletedQuest.id)).where(CompletedQuest.user_id == user_id)
            )
        ).scalar() or 0

        unlocked = await get_unlocked_ids(db, user_id)
        newly_unlocked = evaluate_achievements(total_xp, quests_completed, unlocked)
        if not newly_unlocked:
            return []

        now = datetime.now(timezone.utc)
        for achievement in newly_unlocked:
            db.add(UserAchievement(user_id=user_id, achievement_id=achievement["id"], unlocked_at=now))

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            continue  # Race: another request recorded some of these first

        for achievement in newly_unlocked:
            logger.info("achievement_unlocked", user_id=user_id, achievement_id=achievement["id"])
            await publish_event(
                redis,
                ACHIEVEMENT_UNLOCKED_CHANNEL,
                {
                    "user_id": user_id,
                    "achievement_id": achievement["id"],
                    "name": achievement["name"],
                    "unlocked_at": now.isoformat(),
                },
            )
        return newly_unlocked

    return []


async def list_user_achievements(db: AsyncSession, user_id: int) -> list[dict]:
    """Unlocked achievements with their definitions, oldest first."""
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.unlocked_at.asc(), UserAchievement.achievement_id.asc())
    )
    items = []
    for row in result.scalars().all():
        definition = get_achievement(row.achievement_id) or {}
        items.append({
            "achievement_id": row.achievement_id,
            "name": definition.get("name", f"Achievement {row.achievement_id}"),
            "description": definition.get("description", ""),
            "unlocked_at": row.unlocked_at,
        })
    return items
