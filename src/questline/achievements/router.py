"""Achievement API endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from questline.achievements.definitions import ACHIEVEMENTS
from questline.achievements.schemas import AchievementResponse, AllAchievementsResponse

router = APIRouter(prefix="/api/v1/achievements", tags=["Achievements"])


@router.get("", response_model=AllAchievementsResponse)
async def list_achievements():
    """Get all achievement definitions."""
    return AllAchievementsResponse(
        achievements=[AchievementResponse(**a) for a in ACHIEVEMENTS],
    )
