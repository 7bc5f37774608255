"""Pydantic response models for achievement endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AchievementResponse(BaseModel):
    id: int
    name: str
    description: str
    xp_required: int = 0
    quests_required: int = 0


class AllAchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]


class UnlockedAchievementResponse(BaseModel):
    achievement_id: int
    name: str
    description: str
    unlocked_at: datetime
