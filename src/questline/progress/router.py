"""Quest progress API endpoints: start, step updates, completion and summaries."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from questline.database import get_session
from questline.dependencies import get_redis_dep
from questline.exceptions import ProgressNotFoundError, UserNotFoundError
from questline.progress.committer import complete_quest
from questline.progress.schemas import (
    CompleteQuestRequest,
    CompleteQuestResponse,
    ProgressResponse,
    QuestStatusResponse,
    RecentCompletionItem,
    RecentCompletionsResponse,
    StartQuestRequest,
    UpdateStepRequest,
    UserProgressResponse,
)
from questline.progress.tracker import (
    get_quest_status,
    get_recent_completions,
    get_user_progress,
    serialize_progress,
    start_quest,
    update_step,
)
from questline.users.service import get_user_by_address, normalize_address_or_raise, resolve_or_create_user

router = APIRouter(prefix="/api/v1/progress", tags=["Progress"])


@router.post("/start/{quest_id}", response_model=ProgressResponse)
async def start(
    quest_id: int,
    body: StartQuestRequest,
    db: AsyncSession = Depends(get_session),
):
    """Start a quest. Returns the existing progress if already started."""
    user, _ = await resolve_or_create_user(db, body.wallet_address)
    progress, _ = await start_quest(db, user, quest_id)
    return ProgressResponse(**serialize_progress(progress))


@router.put("/update/{quest_id}", response_model=ProgressResponse)
async def update(
    quest_id: int,
    body: UpdateStepRequest,
    db: AsyncSession = Depends(get_session),
):
    """Mark a step complete or incomplete."""
    user = await get_user_by_address(db, body.wallet_address)
    if user is None:
        raise ProgressNotFoundError(quest_id)
    progress = await update_step(db, user, quest_id, body.step_id, body.completed)
    return ProgressResponse(**serialize_progress(progress))


@router.post("/complete/{quest_id}", response_model=CompleteQuestResponse)
async def complete(
    quest_id: int,
    body: CompleteQuestRequest,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Complete a quest and award its XP exactly once."""
    result = await complete_quest(
        db,
        body.wallet_address,
        quest_id,
        body.transaction_hash,
        blockchain_verified=body.blockchain_verified,
        redis=redis,
    )
    return CompleteQuestResponse(
        quest_id=result.quest_id,
        xp_earned=result.xp_earned,
        total_xp=result.total_xp,
        transaction_hash=result.transaction_hash,
        completed_at=result.completed_at,
        new_achievements=result.new_achievements,
    )


@router.get("/user/{wallet_address}", response_model=UserProgressResponse)
async def user_progress(
    wallet_address: str,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_redis_dep),
):
    """Get a user's XP, completed quests, achievements and open progress."""
    summary = await get_user_progress(db, wallet_address, redis)
    if summary is None:
        raise UserNotFoundError(normalize_address_or_raise(wallet_address))
    return summary


@router.get("/quest/{quest_id}/status", response_model=QuestStatusResponse)
async def quest_status(
    quest_id: int,
    wallet_address: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_session),
):
    """Check whether a wallet has completed a quest."""
    return await get_quest_status(db, wallet_address, quest_id)


@router.get("/recent-completions", response_model=RecentCompletionsResponse)
async def recent_completions(
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_session),
):
    """Get the most recent quest completions across all users."""
    items = await get_recent_completions(db, limit=limit)
    return RecentCompletionsResponse(completions=[RecentCompletionItem(**i) for i in items])
