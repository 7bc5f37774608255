"""
Quest completion: the exactly-once XP award.

Flow:
1. Validate (user exists, not already completed, progress exists, quest known, tx hash)
2. Atomic unit under retry: re-read user, append completion, increment XP, commit
3. Mark progress completed (separate transaction, drift tolerated)
4. Unlock achievements (drift tolerated, re-evaluated by ``get_user_progress``)
5. Publish ``quest_completed`` (best effort)

Two concurrent completions for the same (user, quest) are serialized by the
database: the user row's version column makes the loser's XP update fail with
``StaleDataError`` (retried, then seen as already completed) and the
UNIQUE(user_id, quest_id) constraint rejects a duplicate completion row.

With ``attempt_timeout`` set, an attempt is cancelled by ``asyncio.wait_for``.
A cancellation that lands after the database accepted the commit leaves the
XP awarded, and the retry then reports ``AlreadyCompletedError`` to the same
caller. A timed-out completion therefore has unknown effect; callers confirm
it through ``get_quest_status``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from questline.achievements.service import unlock_achievements
from questline.config import get_settings
from questline.db.models import CompletedQuest, QuestProgress, User
from questline.db.retry import RetryPolicy, is_transient, run_with_policy
from questline.events import QUEST_COMPLETED_CHANNEL, publish_event
from questline.exceptions import (
    AlreadyCompletedError,
    ProgressNotFoundError,
    TransientConflictError,
    UserNotFoundError,
    ValidationError,
)
from questline.progress.tracker import STATUS_COMPLETED, get_progress
from questline.quests.catalog import resolve_xp_reward
from questline.users.service import get_user_by_address, normalize_address_or_raise

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from questline.config import Settings

logger = structlog.get_logger()


@dataclass
class CompletionResult:
    quest_id: int
    xp_earned: int
    total_xp: int
    transaction_hash: str
    completed_at: datetime
    new_achievements: list[dict[str, Any]] = field(default_factory=list)


def _validate_transaction(transaction_hash: str | None, blockchain_verified: bool, settings: Settings) -> str:
    if transaction_hash is None or not transaction_hash.strip():
        msg = "Transaction hash required"
        raise ValidationError(msg)
    if settings.require_blockchain_verification and not blockchain_verified:
        msg = "Transaction not confirmed on-chain"
        raise ValidationError(msg, transaction_hash=transaction_hash.strip())
    return transaction_hash.strip()


async def complete_quest(
    db: AsyncSession,
    wallet_address: str,
    quest_id: int,
    transaction_hash: str | None,
    blockchain_verified: bool = False,
    redis: object | None = None,
    policy: RetryPolicy | None = None,
    settings: Settings | None = None,
) -> CompletionResult:
    """
    Award a quest's XP exactly once.

    Raises:
        ValidationError: Malformed address, missing tx hash, or unverified tx when required.
        UserNotFoundError: Completion never creates users.
        AlreadyCompletedError: The quest was already credited, by this or a concurrent call.
        ProgressNotFoundError: The quest was never started.
        UnknownQuestError: The quest is not in the catalog and no fallback is configured.
        TransientConflictError: Transient failures outlasted the retry budget.
    """
    settings = settings or get_settings()
    policy = policy or RetryPolicy.from_settings(settings)
    address = normalize_address_or_raise(wallet_address)

    user = await get_user_by_address(db, address, refresh=True)
    if user is None:
        raise UserNotFoundError(address)
    user_id = user.id

    if user.has_completed(quest_id):
        raise AlreadyCompletedError(quest_id)

    if await get_progress(db, user_id, quest_id) is None:
        raise ProgressNotFoundError(quest_id)

    xp_reward = resolve_xp_reward(quest_id, settings.unknown_quest_xp_fallback)
    tx_hash = _validate_transaction(transaction_hash, blockchain_verified, settings)

    attempts = 0

    async def _commit() -> tuple[int, datetime]:
        nonlocal attempts
        attempts += 1
        if attempts > 1:
            logger.info("quest_completion_retry", user_id=user_id, quest_id=quest_id, attempt=attempts)
        try:
            if db.in_transaction():
                await db.rollback()
            fresh = (
                await db.execute(
                    select(User)
                    .where(User.id == user_id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()
            if fresh is None:
                raise UserNotFoundError(address)
            if fresh.has_completed(quest_id):
                raise AlreadyCompletedError(quest_id)

            now = datetime.now(timezone.utc)
            fresh.completed_quests.append(
                CompletedQuest(
                    quest_id=quest_id,
                    xp_earned=xp_reward,
                    completed_at=now,
                    transaction_hash=tx_hash,
                    blockchain_verified=blockchain_verified,
                )
            )
            fresh.total_xp += xp_reward
            fresh.last_active_at = now
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise AlreadyCompletedError(quest_id) from None
        except Exception:
            await db.rollback()
            raise
        return fresh.total_xp, now

    try:
        total_xp, completed_at = await run_with_policy(_commit, policy, name="complete_quest")
    except Exception as exc:
        if is_transient(exc):
            logger.warning(
                "quest_completion_gave_up",
                user_id=user_id,
                quest_id=quest_id,
                attempts=attempts,
                error=type(exc).__name__,
            )
            msg = "Database busy, please retry"
            raise TransientConflictError(msg, quest_id=quest_id) from exc
        raise

    logger.info(
        "quest_completed",
        user_id=user_id,
        quest_id=quest_id,
        xp_earned=xp_reward,
        total_xp=total_xp,
        blockchain_verified=blockchain_verified,
    )

    await _mark_progress_completed(db, user_id, quest_id, completed_at, tx_hash)

    new_achievements = await _unlock_after_commit(db, redis, user_id, quest_id)

    await publish_event(
        redis,
        QUEST_COMPLETED_CHANNEL,
        {
            "wallet_address": address,
            "quest_id": quest_id,
            "xp_earned": xp_reward,
            "total_xp": total_xp,
            "transaction_hash": tx_hash,
            "completed_at": completed_at.isoformat(),
        },
    )

    return CompletionResult(
        quest_id=quest_id,
        xp_earned=xp_reward,
        total_xp=total_xp,
        transaction_hash=tx_hash,
        completed_at=completed_at,
        new_achievements=new_achievements,
    )


async def _mark_progress_completed(
    db: AsyncSession,
    user_id: int,
    quest_id: int,
    completed_at: datetime,
    transaction_hash: str,
) -> None:
    """Move progress to ``completed``. XP is already committed, so failure only logs."""
    try:
        await db.execute(
            update(QuestProgress)
            .where(QuestProgress.user_id == user_id, QuestProgress.quest_id == quest_id)
            .values(
                status=STATUS_COMPLETED,
                completed_at=completed_at,
                transaction_hash=transaction_hash,
                updated_at=completed_at,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("progress_completion_drift", user_id=user_id, quest_id=quest_id)


async def _unlock_after_commit(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    quest_id: int,
) -> list[dict[str, Any]]:
    """Evaluate achievements; a failure is repaired by the next progress read."""
    try:
        return await unlock_achievements(db, redis, user_id)
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("achievement_evaluation_drift", user_id=user_id, quest_id=quest_id)
        return []
