"""Pydantic schemas for the achievements module."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.achievements.windows import as_utc


class RoundScore(BaseModel):
    """Score for one round of a quiz.

    Stored in `quiz_completions.round_scores` with camelCase keys; accepts
    either spelling on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    round_number: int
    category: str | None = None
    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    time_seconds: int | None = Field(None, ge=0)


class CompletionEvent(BaseModel):
    """One recorded play-through of a quiz, as seen by the unlock engine."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int | None = None
    user_id: int
    quiz_slug: str
    score: int
    total_questions: int
    categories: tuple[str, ...] = ()
    round_scores: tuple[RoundScore, ...] | None = None
    completion_time_seconds: int | None = None
    completed_at: datetime
    quiz_published_at: datetime | None = None

    @field_validator("completed_at", "quiz_published_at")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class Account(BaseModel):
    """Account fields needed to resolve the user's tier."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    tier: str | None = "free"
    subscription_status: str | None = None
    free_trial_until: datetime | None = None


class AchievementDefinition(BaseModel):
    """Catalogue entry as read by the unlock engine."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    name: str = ""
    category: str = "general"
    rarity: str = "common"
    is_premium_only: bool = False
    season_tag: str | None = None
    condition_type: str
    # Raw as stored; validated per condition type when the catalogue is loaded
    condition_config: Any = None


class UnlockRecord(BaseModel):
    """A persisted (user, achievement) unlock."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    user_id: int
    achievement_id: int
    quiz_slug: str = ""
    progress_value: int | None = None
    progress_max: int | None = None
    meta: dict | None = None
    earned_at: datetime


class NewUnlock(BaseModel):
    """Achievement newly unlocked by an evaluation, for notification and UI."""

    achievement_id: int
    achievement_slug: str
    quiz_slug: str = ""
    progress_value: int | None = None
    progress_max: int | None = None
    meta: dict = Field(default_factory=dict)
    earned_at: datetime


class UnlockFailure(BaseModel):
    """Unlock that evaluated true but could not be persisted."""

    achievement_id: int
    achievement_slug: str
    error: str


class AchievementProgress(BaseModel):
    """Progress of one not-yet-unlocked achievement."""

    achievement: AchievementDefinition
    progress_value: int | None = None
    progress_max: int | None = None
    would_unlock: bool = False


# API responses


class AchievementResponse(BaseModel):
    """Achievement details."""

    id: int
    slug: str
    name: str
    short_description: str | None = None
    category: str
    rarity: str
    icon_key: str | None = None
    is_premium_only: bool
    season_tag: str | None = None
    condition_type: str

    model_config = {"from_attributes": True}


class UserAchievementResponse(BaseModel):
    """User's unlocked achievement with unlock details."""

    achievement: AchievementResponse
    quiz_slug: str
    progress_value: int | None = None
    progress_max: int | None = None
    meta: dict | None = None
    earned_at: datetime

    model_config = {"from_attributes": True}


class AchievementListResponse(BaseModel):
    """List of all available achievements."""

    achievements: list[AchievementResponse]
    count: int


class UserAchievementsResponse(BaseModel):
    """List of user's unlocked achievements."""

    achievements: list[UserAchievementResponse]
    count: int


class UnlockReportResponse(BaseModel):
    """Result of an evaluation run."""

    new_achievements: list[NewUnlock]
    failures: list[UnlockFailure] = Field(default_factory=list)


class AchievementProgressItem(BaseModel):
    slug: str
    name: str
    progress_value: int | None = Field(None, description="Progress so far, if measurable")
    progress_max: int | None = Field(None, description="Value needed to unlock")


class AchievementProgressResponse(BaseModel):
    """Progress toward achievements not yet unlocked."""

    achievements: list[AchievementProgressItem]
    count: int
