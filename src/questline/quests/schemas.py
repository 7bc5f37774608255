"""Pydantic response models for the quest catalog."""

from __future__ import annotations

from pydantic import BaseModel


class QuestStepResponse(BaseModel):
    id: str
    title: str


class QuestResponse(BaseModel):
    id: int
    title: str
    description: str
    xp_reward: int
    steps: list[QuestStepResponse]


class QuestListResponse(BaseModel):
    quests: list[QuestResponse]
    total_xp: int
