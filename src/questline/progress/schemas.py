"""Pydantic request/response models for progress endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field

from questline.achievements.schemas import AchievementResponse, UnlockedAchievementResponse


def _alias(snake: str, camel: str) -> AliasChoices:
    return AliasChoices(snake, camel)


# --- Requests ---


class StartQuestRequest(BaseModel):
    wallet_address: str = Field(validation_alias=_alias("wallet_address", "walletAddress"))


class UpdateStepRequest(BaseModel):
    wallet_address: str = Field(validation_alias=_alias("wallet_address", "walletAddress"))
    step_id: str = Field(min_length=1, max_length=64, validation_alias=_alias("step_id", "stepId"))
    completed: bool = True


class CompleteQuestRequest(BaseModel):
    wallet_address: str = Field(validation_alias=_alias("wallet_address", "walletAddress"))
    transaction_hash: str | None = Field(
        default=None,
        max_length=66,
        validation_alias=_alias("transaction_hash", "transactionHash"),
    )
    blockchain_verified: bool = Field(
        default=False,
        validation_alias=_alias("blockchain_verified", "blockchainVerified"),
    )


# --- Progress ---


class StepResponse(BaseModel):
    step_id: str
    completed: bool
    completed_at: datetime | None = None


class ProgressResponse(BaseModel):
    id: int
    quest_id: int
    status: str
    steps: list[StepResponse]
    started_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None
    transaction_hash: str | None = None


class CompleteQuestResponse(BaseModel):
    message: str = "Quest completed successfully"
    quest_id: int
    xp_earned: int
    total_xp: int
    transaction_hash: str
    completed_at: datetime
    new_achievements: list[AchievementResponse] = []


# --- Summaries ---


class CompletedQuestResponse(BaseModel):
    quest_id: int
    xp_earned: int
    completed_at: datetime
    transaction_hash: str | None = None
    blockchain_verified: bool = False


class UserProgressResponse(BaseModel):
    wallet_address: str
    username: str | None = None
    total_xp: int
    completed_quests: list[CompletedQuestResponse]
    achievements: list[UnlockedAchievementResponse]
    active_progress: list[ProgressResponse]


class QuestStatusResponse(BaseModel):
    completed: bool
    wallet_address: str
    quest_id: int
    xp_earned: int = 0


class RecentCompletionItem(BaseModel):
    wallet_address: str
    username: str
    quest_id: int
    quest_title: str | None = None
    xp_earned: int
    completed_at: datetime


class RecentCompletionsResponse(BaseModel):
    completions: list[RecentCompletionItem]
