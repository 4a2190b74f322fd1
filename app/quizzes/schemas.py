"""Pydantic schemas for quiz completions."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.achievements.schemas import NewUnlock, RoundScore


class CompletionCreate(BaseModel):
    """Payload sent by the client when a quiz play-through ends."""

    score: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    categories: list[str] = Field(default_factory=list)
    round_scores: list[RoundScore] | None = None
    completion_time_seconds: int | None = Field(None, ge=0)
    completed_at: datetime | None = Field(None, description="Defaults to server time")


class CompletionResponse(BaseModel):
    id: int
    quiz_slug: str
    score: int
    total_questions: int
    completion_time_seconds: int | None = None
    completed_at: datetime

    model_config = {"from_attributes": True}


class CompletionRecordedResponse(BaseModel):
    """Saved completion plus any achievements it unlocked."""

    completion: CompletionResponse
    new_achievements: list[NewUnlock]
