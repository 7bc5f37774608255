"""Quest progress, completions and achievements.

Creates users, completed_quests, user_achievements, quest_progress and
progress_steps. The unique constraints on completed_quests and
user_achievements are what make XP and achievement awards exactly-once.

Revision ID: 001_quest_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001_quest_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("wallet_address", sa.String(42), nullable=False, unique=True),
        sa.Column("username", sa.String(32), nullable=True),
        sa.Column("total_xp", sa.Integer, nullable=False, server_default="0"),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.CheckConstraint("total_xp >= 0", name="ck_users_total_xp_non_negative"),
    )
    op.create_index(
        "uq_users_username",
        "users",
        ["username"],
        unique=True,
        postgresql_where=sa.text("username IS NOT NULL"),
    )
    op.create_index("idx_users_total_xp", "users", [sa.text("total_xp DESC")])

    # --- Completed Quests ---
    op.create_table(
        "completed_quests",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quest_id", sa.Integer, nullable=False),
        sa.Column("xp_earned", sa.Integer, nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("transaction_hash", sa.String(66), nullable=True),
        sa.Column("blockchain_verified", sa.Boolean, nullable=False, server_default="false"),
        sa.UniqueConstraint("user_id", "quest_id", name="uq_completed_quest_user_quest"),
    )
    op.create_index("idx_completed_quests_completed_at", "completed_quests", [sa.text("completed_at DESC")])

    # --- User Achievements ---
    op.create_table(
        "user_achievements",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("achievement_id", sa.Integer, nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )

    # --- Quest Progress ---
    op.create_table(
        "quest_progress",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quest_id", sa.Integer, nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="started"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transaction_hash", sa.String(66), nullable=True),
        sa.UniqueConstraint("user_id", "quest_id", name="uq_progress_user_quest"),
        sa.CheckConstraint(
            "status IN ('started', 'in_progress', 'ready_for_completion', 'completed')",
            name="ck_quest_progress_status",
        ),
    )

    # --- Progress Steps ---
    op.create_table(
        "progress_steps",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "progress_id",
            sa.BigInteger,
            sa.ForeignKey("quest_progress.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("step_id", sa.String(64), nullable=False),
        sa.Column("position", sa.Integer, nullable=False),
        sa.Column("completed", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("progress_id", "step_id", name="uq_progress_step"),
    )


def downgrade() -> None:
    op.drop_table("progress_steps")
    op.drop_table("quest_progress")
    op.drop_table("user_achievements")
    op.drop_table("completed_quests")
    op.drop_index("idx_users_total_xp", table_name="users")
    op.drop_index("uq_users_username", table_name="users")
    op.drop_table("users")
