"""Quest catalog lookups."""

from __future__ import annotations

import pytest

from questline.exceptions import UnknownQuestError
from questline.quests.catalog import get_quest, list_quests, require_quest, resolve_xp_reward, total_catalog_xp


class TestCatalog:
    def test_five_quests_with_five_steps(self):
        quests = list_quests()
        assert [q.id for q in quests] == [1, 2, 3, 4, 5]
        assert all(len(q.steps) == 5 for q in quests)

    def test_step_ids_unique_within_quest(self):
        for quest in list_quests():
            assert len(set(quest.step_ids)) == len(quest.step_ids)

    def test_rewards_sum_to_1000(self):
        assert [q.xp_reward for q in list_quests()] == [100, 150, 200, 250, 300]
        assert total_catalog_xp() == 1000

    def test_first_quest_steps(self):
        assert get_quest(1).step_ids == ("defi-basics", "shardeum-intro", "key-features", "quiz", "complete")

    def test_unknown_quest(self):
        assert get_quest(42) is None
        with pytest.raises(UnknownQuestError):
            require_quest(42)


class TestResolveXpReward:
    def test_known_quest(self):
        assert resolve_xp_reward(3) == 200

    def test_unknown_quest_rejected_without_fallback(self):
        with pytest.raises(UnknownQuestError):
            resolve_xp_reward(99)

    def test_unknown_quest_uses_fallback(self):
        assert resolve_xp_reward(99, fallback=100) == 100

    def test_fallback_ignored_for_known_quest(self):
        assert resolve_xp_reward(5, fallback=100) == 300
