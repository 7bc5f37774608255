"""Achievement thresholds and evaluation.

These values MUST match the frontend profile page achievement list.
"""

from __future__ import annotations

from collections.abc import Iterable

from questline.quests.catalog import QUESTS

ACHIEVEMENTS: list[dict] = [
    {
        "id": 1,
        "name": "DeFi Novice",
        "description": "Complete your first quest",
        "xp_required": 100,
        "quests_required": 0,
    },
    {
        "id": 2,
        "name": "Token Scholar",
        "description": "Earn 500 XP",
        "xp_required": 500,
        "quests_required": 0,
    },
    {
        "id": 3,
        "name": "Liquidity Expert",
        "description": "Earn 1000 XP",
        "xp_required": 1000,
        "quests_required": 0,
    },
    {
        "id": 4,
        "name": "DeFi Master",
        "description": "Complete all quests",
        "xp_required": 0,
        "quests_required": len(QUESTS),
    },
]

_ACHIEVEMENTS_BY_ID = {a["id"]: a for a in ACHIEVEMENTS}


def get_achievement(achievement_id: int) -> dict | None:
    return _ACHIEVEMENTS_BY_ID.get(achievement_id)


def evaluate_achievements(
    total_xp: int,
    quests_completed: int,
    unlocked_ids: Iterable[int] = (),
) -> list[dict]:
    """Return achievements whose thresholds are met and that are not yet unlocked.

    Pure function of the inputs; evaluating the same state twice yields nothing
    new the second time once the first result has been persisted.
    """
    unlocked = set(unlocked_ids)
    return [
        a
        for a in ACHIEVEMENTS
        if a["id"] not in unlocked
        and total_xp >= a["xp_required"]
        and quests_completed >= a["quests_required"]
    ]
