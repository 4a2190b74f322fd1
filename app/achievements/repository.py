"""Storage interface consumed by the unlock orchestrator.

The orchestrator depends only on AchievementRepository. The SQLAlchemy
implementation backs it with the application database; the unique constraint
on (user_id, achievement_id) is what finally prevents double unlocks when two
evaluations for the same user race.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.achievements.models import Achievement, UserAchievement
from app.achievements.schemas import (
    Account,
    AchievementDefinition,
    CompletionEvent,
    UnlockRecord,
)
from app.auth.models import AppUser
from app.quizzes.models import Quiz, QuizCompletion

logger = logging.getLogger(__name__)


class AchievementRepository(ABC):
    """Abstract storage for accounts, catalogue, history and unlocks."""

    @abstractmethod
    async def get_account(self, user_id: int) -> Account | None:
        """Return the account fields used for tier resolution, or None."""

    @abstractmethod
    async def list_achievements(
        self, premium_only: bool | None = None
    ) -> list[AchievementDefinition]:
        """
        List catalogue entries.

        Args:
            premium_only: None for the whole catalogue, True for premium-only
                achievements, False for achievements open to every tier.
        """

    @abstractmethod
    async def list_unlocked_achievement_ids(self, user_id: int) -> set[int]:
        """Ids of achievements the user has already unlocked."""

    @abstractmethod
    async def list_recent_completions(
        self, user_id: int, limit: int
    ) -> list[CompletionEvent]:
        """Up to `limit` most recent completions, most-recent-first."""

    @abstractmethod
    async def count_completions(self, user_id: int) -> int:
        """All-time number of completions recorded for the user."""

    @abstractmethod
    async def insert_unlock_if_absent(
        self,
        user_id: int,
        achievement_id: int,
        quiz_slug: str = "",
        progress_value: int | None = None,
        progress_max: int | None = None,
        meta: dict | None = None,
        earned_at: datetime | None = None,
    ) -> tuple[bool, UnlockRecord]:
        """
        Insert an unlock unless one already exists for the pair.

        Returns:
            (inserted, record) where record is the new row when inserted is
            True, and the row that was already there otherwise.
        """


def completion_to_event(
    completion: QuizCompletion, quiz_published_at: datetime | None = None
) -> CompletionEvent:
    return CompletionEvent(
        id=completion.id,
        user_id=completion.user_id,
        quiz_slug=completion.quiz_slug,
        score=completion.score,
        total_questions=completion.total_questions,
        categories=tuple(completion.categories or ()),
        round_scores=completion.round_scores or None,
        completion_time_seconds=completion.completion_time_seconds,
        completed_at=completion.completed_at,
        quiz_published_at=quiz_published_at,
    )


class SqlAlchemyAchievementRepository(AchievementRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_account(self, user_id: int) -> Account | None:
        user = await self.db.get(AppUser, user_id)
        if user is None:
            return None
        return Account.model_validate(user)

    async def list_achievements(
        self, premium_only: bool | None = None
    ) -> list[AchievementDefinition]:
        stmt = select(Achievement).order_by(Achievement.id)
        if premium_only is not None:
            stmt = stmt.where(Achievement.is_premium_only.is_(premium_only))
        result = await self.db.execute(stmt)
        return [AchievementDefinition.model_validate(a) for a in result.scalars().all()]

    async def list_unlocked_achievement_ids(self, user_id: int) -> set[int]:
        result = await self.db.execute(
            select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        )
        return set(result.scalars().all())

    async def list_recent_completions(
        self, user_id: int, limit: int
    ) -> list[CompletionEvent]:
        result = await self.db.execute(
            select(QuizCompletion, Quiz.published_at)
            .outerjoin(Quiz, Quiz.slug == QuizCompletion.quiz_slug)
            .where(QuizCompletion.user_id == user_id)
            .order_by(QuizCompletion.completed_at.desc(), QuizCompletion.id.desc())
            .limit(limit)
        )
        return [
            completion_to_event(completion, published_at)
            for completion, published_at in result.all()
        ]

    async def count_completions(self, user_id: int) -> int:
        result = await self.db.execute(
            select(func.count(QuizCompletion.id)).where(QuizCompletion.user_id == user_id)
        )
        return result.scalar() or 0

    async def _get_unlock(self, user_id: int, achievement_id: int) -> UserAchievement | None:
        result = await self.db.execute(
            select(UserAchievement).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
        )
        return result.scalar_one_or_none()

    async def insert_unlock_if_absent(
        self,
        user_id: int,
        achievement_id: int,
        quiz_slug: str = "",
        progress_value: int | None = None,
        progress_max: int | None = None,
        meta: dict | None = None,
        earned_at: datetime | None = None,
    ) -> tuple[bool, UnlockRecord]:
        record = UserAchievement(
            user_id=user_id,
            achievement_id=achievement_id,
            quiz_slug=quiz_slug,
            progress_value=progress_value,
            progress_max=progress_max,
            meta=meta or None,
            earned_at=earned_at or datetime.now(timezone.utc),
        )
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with another evaluation for the same user
            await self.db.rollback()
            existing = await self._get_unlock(user_id, achievement_id)
            if existing is None:
                raise
            logger.debug(f"Unlock for user {user_id} achievement {achievement_id} already exists")
            return False, UnlockRecord.model_validate(existing)
        except SQLAlchemyError:
            # Leave the session usable for the remaining unlocks
            await self.db.rollback()
            raise

        await self.db.refresh(record)
        return True, UnlockRecord.model_validate(record)
