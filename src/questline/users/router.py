"""User profile, leaderboard and stats endpoints under /api/v1/users."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from questline.achievements.service import list_user_achievements
from questline.database import get_session
from questline.db.models import User
from questline.users.schemas import (
    LeaderboardEntry,
    LeaderboardResponse,
    PlatformStatsResponse,
    ProfileUpdateRequest,
    UserExistsResponse,
    UserProfileResponse,
)
from questline.users.service import (
    get_leaderboard,
    get_platform_stats,
    get_user_by_address,
    normalize_address_or_raise,
    resolve_or_create_user,
    update_profile,
)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


async def _profile_response(db: AsyncSession, user: User) -> UserProfileResponse:
    return UserProfileResponse(
        wallet_address=user.wallet_address,
        username=user.username,
        total_xp=user.total_xp,
        completed_quests=[
            {
                "quest_id": cq.quest_id,
                "xp_earned": cq.xp_earned,
                "completed_at": cq.completed_at,
                "transaction_hash": cq.transaction_hash,
                "blockchain_verified": cq.blockchain_verified,
            }
            for cq in user.completed_quests
        ],
        achievements=await list_user_achievements(db, user.id),
        registered_at=user.registered_at,
        last_active_at=user.last_active_at,
    )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/profile/{wallet_address}", response_model=UserProfileResponse)
async def get_profile(
    wallet_address: str,
    db: AsyncSession = Depends(get_session),
) -> UserProfileResponse:
    """Get a profile, creating the user on first contact."""
    user, _ = await resolve_or_create_user(db, wallet_address)
    return await _profile_response(db, user)


@router.put("/profile/{wallet_address}", response_model=UserProfileResponse)
async def put_profile(
    wallet_address: str,
    body: ProfileUpdateRequest,
    db: AsyncSession = Depends(get_session),
) -> UserProfileResponse:
    """Set or clear the username."""
    user, _ = await resolve_or_create_user(db, wallet_address)
    user = await update_profile(db, user, body.username)
    return await _profile_response(db, user)


@router.get("/exists/{wallet_address}", response_model=UserExistsResponse)
async def user_exists(
    wallet_address: str,
    db: AsyncSession = Depends(get_session),
) -> UserExistsResponse:
    """Check whether a wallet has a user record (never creates one)."""
    address = normalize_address_or_raise(wallet_address)
    user = await get_user_by_address(db, address)
    return UserExistsResponse(exists=user is not None, wallet_address=address)


# ---------------------------------------------------------------------------
# Leaderboard & stats
# ---------------------------------------------------------------------------


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
) -> LeaderboardResponse:
    """Users ranked by total XP."""
    entries, total = await get_leaderboard(db, limit=limit, offset=offset)
    return LeaderboardResponse(
        entries=[LeaderboardEntry(**e) for e in entries],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=PlatformStatsResponse)
async def stats(db: AsyncSession = Depends(get_session)) -> PlatformStatsResponse:
    """Platform-wide totals."""
    return PlatformStatsResponse(**await get_platform_stats(db))
