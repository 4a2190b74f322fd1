"""Initial schema: users, quizzes, completions, achievements

Revision ID: 001_initial
Revises:
Create Date: 2026-01-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "app_user",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("token_version", sa.Integer(), server_default="0", nullable=False),
        sa.Column("tier", sa.String(20), server_default="free", nullable=False),
        sa.Column("subscription_status", sa.String(20), nullable=True),
        sa.Column("free_trial_until", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("tier IN ('free', 'premium')", name="check_tier"),
    )
    op.create_index("ix_app_user_email", "app_user", ["email"], unique=True)

    op.create_table(
        "quizzes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("slug", name="uq_quiz_slug"),
    )

    # Append-only history of play-throughs
    op.create_table(
        "quiz_completions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quiz_slug", sa.String(100), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("total_questions", sa.Integer(), nullable=False),
        sa.Column("categories", JSONB(), nullable=True),
        sa.Column("round_scores", JSONB(), nullable=True),
        sa.Column("completion_time_seconds", sa.Integer(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_quiz_completions_user_completed", "quiz_completions", ["user_id", "completed_at"])
    op.create_index("idx_quiz_completions_user_slug", "quiz_completions", ["user_id", "quiz_slug"])

    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("short_description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("rarity", sa.String(20), nullable=False),
        sa.Column("is_premium_only", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("season_tag", sa.String(50), nullable=True),
        sa.Column("icon_key", sa.Text(), nullable=True),
        sa.Column("condition_type", sa.String(50), nullable=False),
        sa.Column("condition_config", JSONB(), nullable=True),
        sa.UniqueConstraint("slug", name="uq_achievement_slug"),
    )
    op.create_index("idx_achievements_premium", "achievements", ["is_premium_only"])

    op.create_table(
        "user_achievements",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("achievement_id", sa.Integer(), sa.ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quiz_slug", sa.String(100), server_default="", nullable=False),
        sa.Column("progress_value", sa.Integer(), nullable=True),
        sa.Column("progress_max", sa.Integer(), nullable=True),
        sa.Column("meta", JSONB(), nullable=True),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False),
        # One unlock per (user, achievement), the last line of defence against races
        sa.UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
    )
    op.create_index("idx_user_achievements_user", "user_achievements", ["user_id"])


def downgrade() -> None:
    op.drop_index("idx_user_achievements_user", table_name="user_achievements")
    op.drop_table("user_achievements")
    op.drop_index("idx_achievements_premium", table_name="achievements")
    op.drop_table("achievements")
    op.drop_index("idx_quiz_completions_user_slug", table_name="quiz_completions")
    op.drop_index("idx_quiz_completions_user_completed", table_name="quiz_completions")
    op.drop_table("quiz_completions")
    op.drop_table("quizzes")
    op.drop_index("ix_app_user_email", table_name="app_user")
    op.drop_table("app_user")
