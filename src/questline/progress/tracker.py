"""
Per-user quest progress: start, step toggles and read models.

Progress rows are only ever moved to ``completed`` by the committer; this
module never reverts that state.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from questline.achievements.service import list_user_achievements, unlock_achievements
from questline.db.models import CompletedQuest, ProgressStep, QuestProgress, User
from questline.exceptions import (
    AlreadyCompletedError,
    ProgressNotFoundError,
    StepNotFoundError,
)
from questline.quests.catalog import get_quest, require_quest
from questline.users.service import get_user_by_address, normalize_address_or_raise

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

STATUS_IN_PROGRESS = "in_progress"
STATUS_READY = "ready_for_completion"
STATUS_COMPLETED = "completed"


async def get_progress(
    db: AsyncSession,
    user_id: int,
    quest_id: int,
    *,
    refresh: bool = False,
) -> QuestProgress | None:
    stmt = (
        select(QuestProgress)
        .where(QuestProgress.user_id == user_id, QuestProgress.quest_id == quest_id)
        .options(selectinload(QuestProgress.steps))
    )
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def _has_completed(db: AsyncSession, user_id: int, quest_id: int) -> bool:
    result = await db.execute(
        select(CompletedQuest.id).where(
            CompletedQuest.user_id == user_id,
            CompletedQuest.quest_id == quest_id,
        )
    )
    return result.scalar_one_or_none() is not None


# ---------------------------------------------------------------------------
# Start
# ---------------------------------------------------------------------------


async def start_quest(
    db: AsyncSession,
    user: User,
    quest_id: int,
) -> tuple[QuestProgress, bool]:
    """
    Create progress for a quest, or return the existing record unchanged.

    Returns:
        Tuple of (progress, created).

    Raises:
        UnknownQuestError: If the quest is not in the catalog.
        AlreadyCompletedError: If the user completed the quest and no progress exists.
    """
    quest = require_quest(quest_id)

    existing = await get_progress(db, user.id, quest_id)
    if existing is not None:
        return existing, False

    if await _has_completed(db, user.id, quest_id):
        raise AlreadyCompletedError(quest_id)

    now = datetime.now(timezone.utc)
    progress = QuestProgress(
        user_id=user.id,
        quest_id=quest_id,
        status=STATUS_IN_PROGRESS,
        started_at=now,
        updated_at=now,
        completed_at=None,
        transaction_hash=None,
        steps=[
            ProgressStep(step_id=step.id, position=position, completed=False, completed_at=None)
            for position, step in enumerate(quest.steps)
        ],
    )
    db.add(progress)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent start for the same (user, quest): keep the winner's row
        await db.rollback()
        winner = await get_progress(db, user.id, quest_id, refresh=True)
        if winner is None:
            raise
        return winner, False

    logger.info("quest_started", user_id=user.id, quest_id=quest_id)
    return progress, True


# ---------------------------------------------------------------------------
# Step toggles
# ---------------------------------------------------------------------------


async def update_step(
    db: AsyncSession,
    user: User,
    quest_id: int,
    step_id: str,
    completed: bool,
) -> QuestProgress:
    """
    Mark one step complete or incomplete and recompute the aggregate status.

    The step write targets a single ``progress_steps`` row, so concurrent
    toggles of different steps both survive. Same-step toggles are
    last-writer-wins.

    Raises:
        ProgressNotFoundError: If the quest was never started. Nothing is created.
        AlreadyCompletedError: If the progress is already completed.
        StepNotFoundError: If ``step_id`` is not a step of the quest.
    """
    progress = await get_progress(db, user.id, quest_id)
    if progress is None:
        raise ProgressNotFoundError(quest_id)
    if progress.status == STATUS_COMPLETED:
        raise AlreadyCompletedError(quest_id)

    quest = get_quest(quest_id)
    known_steps = quest.step_ids if quest is not None else [s.step_id for s in progress.steps]
    if step_id not in known_steps:
        raise StepNotFoundError(quest_id, step_id)

    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(ProgressStep)
        .where(ProgressStep.progress_id == progress.id, ProgressStep.step_id == step_id)
        .values(completed=completed, completed_at=now if completed else None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Catalog gained a step after this progress was created
        db.add(
            ProgressStep(
                progress_id=progress.id,
                step_id=step_id,
                position=known_steps.index(step_id),
                completed=completed,
                completed_at=now if completed else None,
            )
        )
        await db.flush()

    incomplete = (
        select(ProgressStep.id)
        .where(ProgressStep.progress_id == progress.id, ProgressStep.completed.is_(False))
        .exists()
    )
    await db.execute(
        update(QuestProgress)
        .where(QuestProgress.id == progress.id, QuestProgress.status != STATUS_COMPLETED)
        .values(
            status=case((~incomplete, STATUS_READY), else_=STATUS_IN_PROGRESS),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    refreshed = await get_progress(db, user.id, quest_id, refresh=True)
    if refreshed is None:
        raise ProgressNotFoundError(quest_id)
    logger.debug(
        "quest_step_updated",
        user_id=user.id,
        quest_id=quest_id,
        step_id=step_id,
        completed=completed,
        status=refreshed.status,
    )
    return refreshed


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


def serialize_progress(progress: QuestProgress) -> dict[str, Any]:
    return {
        "id": progress.id,
        "quest_id": progress.quest_id,
        "status": progress.status,
        "steps": [
            {
                "step_id": step.step_id,
                "completed": step.completed,
                "completed_at": step.completed_at,
            }
            for step in progress.steps
        ],
        "started_at": progress.started_at,
        "updated_at": progress.updated_at,
        "completed_at": progress.completed_at,
        "transaction_hash": progress.transaction_hash,
    }


async def get_user_progress(
    db: AsyncSession,
    wallet_address: str,
    redis: object | None = None,
) -> dict[str, Any] | None:
    """Summary of a user's XP, completions, achievements and open progress.

    Repairs drift left by a failed post-commit write: progress whose quest
    already appears in the user's completed quests is marked completed, and
    achievements the user qualifies for but lacks are unlocked.
    Returns None for an unknown user.
    """
    user = await get_user_by_address(db, wallet_address, refresh=True)
    if user is None:
        return None

    result = await db.execute(
        select(QuestProgress)
        .where(QuestProgress.user_id == user.id)
        .options(selectinload(QuestProgress.steps))
        .order_by(QuestProgress.started_at.asc(), QuestProgress.id.asc())
    )
    progresses = list(result.scalars().all())

    completions = {cq.quest_id: cq for cq in user.completed_quests}
    drifted = [p for p in progresses if p.status != STATUS_COMPLETED and p.quest_id in completions]
    for progress in drifted:
        completion = completions[progress.quest_id]
        progress.status = STATUS_COMPLETED
        progress.completed_at = completion.completed_at
        progress.transaction_hash = completion.transaction_hash
        progress.updated_at = datetime.now(timezone.utc)
    if drifted:
        await db.commit()
        logger.info(
            "progress_drift_reconciled",
            user_id=user.id,
            quest_ids=[p.quest_id for p in drifted],
        )

    if await unlock_achievements(db, redis, user.id):
        logger.info("achievement_drift_reconciled", user_id=user.id)

    return {
        "wallet_address": user.wallet_address,
        "username": user.username,
        "total_xp": user.total_xp,
        "completed_quests": [
            {
                "quest_id": cq.quest_id,
                "xp_earned": cq.xp_earned,
                "completed_at": cq.completed_at,
                "transaction_hash": cq.transaction_hash,
                "blockchain_verified": cq.blockchain_verified,
            }
            for cq in user.completed_quests
        ],
        "achievements": await list_user_achievements(db, user.id),
        "active_progress": [
            serialize_progress(p) for p in progresses if p.status != STATUS_COMPLETED
        ],
    }


async def get_quest_status(db: AsyncSession, wallet_address: str, quest_id: int) -> dict[str, Any]:
    """Whether a wallet has completed a quest. Unknown users report not completed."""
    address = normalize_address_or_raise(wallet_address)
    result = await db.execute(
        select(CompletedQuest.xp_earned)
        .join(User, User.id == CompletedQuest.user_id)
        .where(User.wallet_address == address, CompletedQuest.quest_id == quest_id)
    )
    xp_earned = result.scalar_one_or_none()
    return {
        "completed": xp_earned is not None,
        "wallet_address": address,
        "quest_id": quest_id,
        "xp_earned": xp_earned or 0,
    }


async def get_recent_completions(db: AsyncSession, limit: int = 10) -> list[dict[str, Any]]:
    """Most recent completions across all users, newest first."""
    result = await db.execute(
        select(
            User.wallet_address,
            User.username,
            CompletedQuest.quest_id,
            CompletedQuest.xp_earned,
            CompletedQuest.completed_at,
        )
        .join(User, User.id == CompletedQuest.user_id)
        .order_by(CompletedQuest.completed_at.desc(), CompletedQuest.id.desc())
        .limit(limit)
    )
    items = []
    for row in result:
        quest = get_quest(row.quest_id)
        items.append({
            "wallet_address": row.wallet_address,
            "username": row.username or "Anonymous",
            "quest_id": row.quest_id,
            "quest_title": quest.title if quest is not None else None,
            "xp_earned": row.xp_earned,
            "completed_at": row.completed_at,
        })
    return items
