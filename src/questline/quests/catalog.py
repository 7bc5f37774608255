"""Static quest catalog.

Quest content lives in the frontend; the backend only needs each quest's XP
reward and step ids. These values MUST match the frontend quest list.
"""

from __future__ import annotations

from dataclasses import dataclass

from questline.exceptions import UnknownQuestError


@dataclass(frozen=True)
class QuestStep:
    id: str
    title: str


@dataclass(frozen=True)
class QuestDefinition:
    id: int
    title: str
    description: str
    xp_reward: int
    steps: tuple[QuestStep, ...]

    @property
    def step_ids(self) -> tuple[str, ...]:
        return tuple(step.id for step in self.steps)


QUESTS: tuple[QuestDefinition, ...] = (
    QuestDefinition(
        id=1,
        title="Welcome to DeFi on Shardeum",
        description="Learn DeFi basics and understand Shardeum's role in decentralized finance",
        xp_reward=100,
        steps=(
            QuestStep("defi-basics", "Read: What Is Decentralized Finance? The Basics of DeFi"),
            QuestStep("shardeum-intro", "Read: What is Shardeum?"),
            QuestStep("key-features", "Review Shardeum's key features"),
            QuestStep("quiz", "Pass the DeFi basics quiz"),
            QuestStep("complete", "Complete the welcome quest"),
        ),
    ),
    QuestDefinition(
        id=2,
        title="ERC-20 Token Expert",
        description="Master ERC-20 tokens and learn to deploy them on Shardeum",
        xp_reward=150,
        steps=(
            QuestStep("erc20-docs", "Read: ERC-20 Token Standard Documentation"),
            QuestStep("token-functions", "Learn the core ERC-20 functions"),
            QuestStep("token-deployment", "Read: How to Deploy ERC-20 Smart Contracts using Truffle"),
            QuestStep("mint-crypto", "Read: How to Mint Your Cryptocurrency on Shardeum Testnet"),
            QuestStep("quiz", "Pass the ERC-20 quiz"),
        ),
    ),
    QuestDefinition(
        id=3,
        title="DeFi Vault Builder",
        description="Learn to build and deploy DeFi vaults for token staking",
        xp_reward=200,
        steps=(
            QuestStep("vault-tutorial", "Read: Build and Deploy an ERC20 Vault on Shardeum"),
            QuestStep("vault-concepts", "Understand staking, liquidity and yield"),
            QuestStep("bank-contract", "Read: How to Deploy a Bank Smart Contract Using Solidity"),
            QuestStep("defi-protocols", "Understand DeFi lending and borrowing protocols"),
            QuestStep("quiz", "Pass the vault quiz"),
        ),
    ),
    QuestDefinition(
        id=4,
        title="Multi-Token Standards Master",
        description="Explore advanced token standards beyond ERC-20",
        xp_reward=250,
        steps=(
            QuestStep("erc721-docs", "Read: ERC-721 Token Standard Documentation"),
            QuestStep("erc1155-guide", "Read: What is ERC-1155?"),
            QuestStep("standard-differences", "Compare ERC-20, ERC-721 and ERC-1155"),
            QuestStep("nft-contracts", "Explore NFT smart contract deployment"),
            QuestStep("quiz", "Pass the token standards quiz"),
        ),
    ),
    QuestDefinition(
        id=5,
        title="Web3 Career Strategist",
        description="Understand career opportunities in the Web3 and DeFi space",
        xp_reward=300,
        steps=(
            QuestStep("web3-careers", "Read: Career Opportunities in Web3 - A Detailed Guide"),
            QuestStep("developer-path", "Explore blockchain developer career paths"),
            QuestStep("skills", "Map the skills you need to develop"),
            QuestStep("portfolio", "Plan your Web3 learning portfolio"),
            QuestStep("quiz", "Pass the careers quiz"),
        ),
    ),
)

_QUESTS_BY_ID: dict[int, QuestDefinition] = {q.id: q for q in QUESTS}


def list_quests() -> tuple[QuestDefinition, ...]:
    return QUESTS


def get_quest(quest_id: int) -> QuestDefinition | None:
    return _QUESTS_BY_ID.get(quest_id)


def require_quest(quest_id: int) -> QuestDefinition:
    """Look up a quest or raise ``UnknownQuestError``."""
    quest = get_quest(quest_id)
    if quest is None:
        raise UnknownQuestError(quest_id)
    return quest


def resolve_xp_reward(quest_id: int, fallback: int | None = None) -> int:
    """XP awarded for completing ``quest_id``.

    Unknown quests raise ``UnknownQuestError`` unless a fallback reward is
    configured (the legacy behaviour credited 100 XP for any unknown id).
    """
    quest = get_quest(quest_id)
    if quest is not None:
        return quest.xp_reward
    if fallback is None:
        raise UnknownQuestError(quest_id)
    return fallback


def total_catalog_xp() -> int:
    return sum(q.xp_reward for q in QUESTS)
