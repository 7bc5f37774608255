"""Request/response schemas for user endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from questline.achievements.schemas import UnlockedAchievementResponse
from questline.progress.schemas import CompletedQuestResponse


class ProfileUpdateRequest(BaseModel):
    username: str | None = Field(default=None, max_length=64)


class UserProfileResponse(BaseModel):
    wallet_address: str
    username: str | None = None
    total_xp: int
    completed_quests: list[CompletedQuestResponse]
    achievements: list[UnlockedAchievementResponse]
    registered_at: datetime
    last_active_at: datetime


class UserExistsResponse(BaseModel):
    exists: bool
    wallet_address: str


class LeaderboardEntry(BaseModel):
    rank: int
    wallet_address: str
    username: str
    total_xp: int
    completed_quests: int
    achievements: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
    total: int
    limit: int
    offset: int


class PlatformStatsResponse(BaseModel):
    total_users: int
    total_xp: int
    total_quests_completed: int
