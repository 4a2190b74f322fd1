"""Business logic for recording quiz completions."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.achievements.repository import SqlAlchemyAchievementRepository, completion_to_event
from app.achievements.schemas import NewUnlock
from app.achievements.service import UnlockOrchestrator
from app.common.config import get_settings
from app.common.exceptions import QuizNotFoundException
from app.quizzes.models import Quiz, QuizCompletion
from app.quizzes.schemas import (
    CompletionCreate,
    CompletionRecordedResponse,
    CompletionResponse,
)

logger = logging.getLogger(__name__)


async def get_quiz(db: AsyncSession, slug: str) -> Quiz | None:
    result = await db.execute(select(Quiz).where(Quiz.slug == slug))
    return result.scalar_one_or_none()


async def evaluate_completion(
    db: AsyncSession, completion: QuizCompletion, quiz: Quiz, now: datetime
) -> list[NewUnlock]:
    """Run the unlock engine for a saved completion.

    Best effort: any failure is logged and yields no unlocks, the completion
    itself stays recorded. Evaluation is idempotent, so it can be retried
    out-of-band by calling the engine again.
    """
    if not get_settings().achievement_evaluation_enabled:
        return []

    event = completion_to_event(completion, quiz.published_at)
    orchestrator = UnlockOrchestrator(SqlAlchemyAchievementRepository(db))
    try:
        report = await orchestrator.evaluate_on_completion(event, now=now)
    except Exception:
        logger.exception(
            f"Achievement evaluation failed for user {event.user_id}, "
            f"completion {event.id}"
        )
        await db.rollback()
        return []

    if report.failures:
        logger.warning(
            f"{len(report.failures)} unlock(s) not saved for completion {event.id}"
        )
    return report.unlocked


async def record_completion(
    db: AsyncSession,
    user_id: int,
    quiz_slug: str,
    data: CompletionCreate,
    now: datetime | None = None,
) -> CompletionRecordedResponse:
    """Save a completion, then evaluate achievements for it."""
    if now is None:
        now = datetime.now(timezone.utc)

    quiz = await get_quiz(db, quiz_slug)
    if not quiz:
        raise QuizNotFoundException(quiz_slug)

    completion = QuizCompletion(
        user_id=user_id,
        quiz_slug=quiz.slug,
        score=data.score,
        total_questions=data.total_questions,
        categories=data.categories or None,
        round_scores=(
            [r.model_dump(by_alias=True) for r in data.round_scores]
            if data.round_scores
            else None
        ),
        completion_time_seconds=data.completion_time_seconds,
        completed_at=data.completed_at or now,
    )
    db.add(completion)
    await db.commit()
    await db.refresh(completion)

    logger.info(
        f"Quiz completion saved: user {user_id}, quiz {quiz.slug}, "
        f"score {data.score}/{data.total_questions}"
    )

    # Snapshot before evaluation: a rollback there expires the instance
    saved = CompletionResponse.model_validate(completion)
    new_achievements = await evaluate_completion(db, completion, quiz, now)
    return CompletionRecordedResponse(
        completion=saved,
        new_achievements=new_achievements,
    )
