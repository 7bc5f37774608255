"""Quest catalog endpoints (read-only)."""

from __future__ import annotations

from fastapi import APIRouter

from questline.quests.catalog import QuestDefinition, list_quests, require_quest, total_catalog_xp
from questline.quests.schemas import QuestListResponse, QuestResponse, QuestStepResponse

router = APIRouter(prefix="/api/v1/quests", tags=["Quests"])


def _quest_response(quest: QuestDefinition) -> QuestResponse:
    return QuestResponse(
        id=quest.id,
        title=quest.title,
        description=quest.description,
        xp_reward=quest.xp_reward,
        steps=[QuestStepResponse(id=s.id, title=s.title) for s in quest.steps],
    )


@router.get("", response_model=QuestListResponse)
async def get_quests():
    """Get the full quest catalog."""
    return QuestListResponse(
        quests=[_quest_response(q) for q in list_quests()],
        total_xp=total_catalog_xp(),
    )


@router.get("/{quest_id}", response_model=QuestResponse)
async def get_quest_detail(quest_id: int):
    """Get a single quest with its steps."""
    return _quest_response(require_quest(quest_id))
