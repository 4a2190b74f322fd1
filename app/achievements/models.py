"""SQLAlchemy models for achievements."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, BigIntPK, JSONType


class Achievement(Base):
    """Achievement definition.

    Catalogue entry, not user-specific. `condition_type` names the evaluator
    that decides the unlock, `condition_config` carries its parameters as
    stored by the admin console (camelCase keys, JSON object or JSON string).
    """

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    short_description: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    rarity: Mapped[str] = mapped_column(String(20), nullable=False, default="common")
    is_premium_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    season_tag: Mapped[str | None] = mapped_column(String(50))
    icon_key: Mapped[str | None] = mapped_column(Text)
    condition_type: Mapped[str] = mapped_column(String(50), nullable=False)
    condition_config: Mapped[dict | None] = mapped_column(JSONType)

    # Relationships
    user_achievements: Mapped[list["UserAchievement"]] = relationship(
        back_populates="achievement",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("slug", name="uq_achievement_slug"),
        Index("idx_achievements_premium", "is_premium_only"),
    )


class UserAchievement(Base):
    """User's unlocked achievement.

    At most one row per (user, achievement), enforced by `uq_user_achievement`.
    Rows are written once by the unlock orchestrator and never updated.
    """

    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("achievements.id", ondelete="CASCADE"),
        nullable=False,
    )
    quiz_slug: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    progress_value: Mapped[int | None] = mapped_column(Integer)
    progress_max: Mapped[int | None] = mapped_column(Integer)
    meta: Mapped[dict | None] = mapped_column(JSONType)
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    user: Mapped["AppUser"] = relationship()  # type: ignore
    achievement: Mapped["Achievement"] = relationship(back_populates="user_achievements")

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement"),
        Index("idx_user_achievements_user", "user_id"),
    )
