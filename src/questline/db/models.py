"""ORM models for users, quest progress, completions and achievements.

The schema is created by Alembic (``alembic/versions``) in production and by
``questline.database.create_schema`` in development and tests.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from questline.db.base import Base, BigIntId


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A learner identified by a lowercase wallet address.

    ``version`` is the optimistic-concurrency counter: every ORM flush of a
    changed user row is ``UPDATE ... WHERE id = :id AND version = :version``
    and raises ``StaleDataError`` when another transaction got there first.
    """

    __tablename__ = "users"
    __table_args__ = (
        # Uniqueness applies only to users that have chosen a username
        Index(
            "uq_users_username",
            "username",
            unique=True,
            postgresql_where=text("username IS NOT NULL"),
            sqlite_where=text("username IS NOT NULL"),
        ),
        CheckConstraint("total_xp >= 0", name="ck_users_total_xp_non_negative"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False)
    username: Mapped[str | None] = mapped_column(String(32), nullable=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    last_active_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    completed_quests: Mapped[list[CompletedQuest]] = relationship(
        "CompletedQuest",
        back_populates="user",
        order_by="CompletedQuest.completed_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    achievements: Mapped[list[UserAchievement]] = relationship(
        "UserAchievement",
        back_populates="user",
        order_by="UserAchievement.unlocked_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}  # noqa: RUF012

    def has_completed(self, quest_id: int) -> bool:
        return any(cq.quest_id == quest_id for cq in self.completed_quests)


class CompletedQuest(Base):
    """A credited quest completion. UNIQUE(user_id, quest_id) makes the award exactly-once."""

    __tablename__ = "completed_quests"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_completed_quest_user_quest"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quest_id: Mapped[int] = mapped_column(Integer, nullable=False)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    transaction_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)
    blockchain_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    user: Mapped[User] = relationship("User", back_populates="completed_quests")


class UserAchievement(Base):
    """Unlocked achievement. UNIQUE(user_id, achievement_id) prevents duplicates."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[int] = mapped_column(Integer, nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="achievements")


# ---------------------------------------------------------------------------
# Quest progress
# ---------------------------------------------------------------------------


class QuestProgress(Base):
    """Per-user, per-quest progress. UNIQUE(user_id, quest_id)."""

    __tablename__ = "quest_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_progress_user_quest"),
        CheckConstraint(
            "status IN ('started', 'in_progress', 'ready_for_completion', 'completed')",
            name="ck_quest_progress_status",
        ),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quest_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, server_default="started")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    transaction_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    steps: Mapped[list[ProgressStep]] = relationship(
        "ProgressStep",
        back_populates="progress",
        order_by="ProgressStep.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProgressStep(Base):
    """One catalog step within a progress record. UNIQUE(progress_id, step_id)."""

    __tablename__ = "progress_steps"
    __table_args__ = (
        UniqueConstraint("progress_id", "step_id", name="uq_progress_step"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(
        BigIntId, ForeignKey("quest_progress.id", ondelete="CASCADE"), nullable=False
    )
    step_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    progress: Mapped[QuestProgress] = relationship("QuestProgress", back_populates="steps")
