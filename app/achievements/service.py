"""Business logic for achievements module.

UnlockOrchestrator decides which achievements a user has newly earned and
persists each unlock at most once. Both entry points share the same
per-achievement dispatch and differ only in how the evaluation context is
built: one triggering completion, or a replay of the user's history.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.achievements.conditions import (
    ConditionConfig,
    ConditionEvaluator,
    EvaluationContext,
    EvaluationResult,
    get_evaluator,
    parse_condition_config,
)
from app.achievements.models import Achievement, UserAchievement
from app.achievements.repository import AchievementRepository
from app.achievements.schemas import (
    Account,
    AchievementDefinition,
    AchievementProgress,
    CompletionEvent,
    NewUnlock,
    UnlockFailure,
)
from app.achievements.tiers import UserTier, can_earn_achievement, resolve_tier
from app.common.config import get_settings
from app.common.exceptions import ConditionConfigError, UserNotFoundException

logger = logging.getLogger(__name__)


@dataclass
class UnlockReport:
    """Newly unlocked achievements plus unlocks that failed to persist.

    Iterates and measures like the list of new unlocks.
    """

    unlocked: list[NewUnlock] = field(default_factory=list)
    failures: list[UnlockFailure] = field(default_factory=list)

    def __iter__(self):
        return iter(self.unlocked)

    def __len__(self) -> int:
        return len(self.unlocked)


@dataclass(frozen=True)
class Candidate:
    achievement: AchievementDefinition
    evaluator: ConditionEvaluator
    config: ConditionConfig


def build_candidates(
    achievements: list[AchievementDefinition], unlocked_ids: set[int]
) -> list[Candidate]:
    """Pair each not-yet-unlocked achievement with its evaluator and parsed config.

    Achievements with an unknown condition type or a malformed configuration
    are logged and left out.
    """
    candidates = []
    for achievement in achievements:
        if achievement.id in unlocked_ids:
            continue

        evaluator = get_evaluator(achievement.condition_type)
        if evaluator is None:
            logger.warning(
                f"Skipping achievement {achievement.slug}: "
                f"no evaluator for condition type {achievement.condition_type!r}"
            )
            continue

        try:
            config = parse_condition_config(evaluator, achievement.condition_config)
        except ConditionConfigError as e:
            logger.warning(f"Skipping achievement {achievement.slug}: {e}")
            continue

        candidates.append(Candidate(achievement, evaluator, config))
    return candidates


def _history_up_to(
    event: CompletionEvent, history: list[CompletionEvent]
) -> list[CompletionEvent]:
    """History as of `event`: newer completions dropped, the event itself included."""
    past = [e for e in history if e.completed_at <= event.completed_at]
    if event.id is None or all(e.id != event.id for e in past):
        past = [e for e in past if e != event]
        past.insert(0, event)
    return past


class UnlockOrchestrator:
    def __init__(
        self,
        repository: AchievementRepository,
        history_limit: int | None = None,
        sweep_history_limit: int | None = None,
    ):
        settings = get_settings()
        self.repository = repository
        self.history_limit = history_limit or settings.achievement_history_limit
        self.sweep_history_limit = (
            sweep_history_limit or settings.achievement_sweep_history_limit
        )

    async def _load_account(self, user_id: int) -> Account:
        account = await self.repository.get_account(user_id)
        if account is None:
            raise UserNotFoundException()
        return account

    async def _load_candidates(
        self, user_id: int, tier: UserTier, premium_only: bool | None
    ) -> list[Candidate]:
        achievements = await self.repository.list_achievements(premium_only=premium_only)
        eligible = [a for a in achievements if can_earn_achievement(tier, a.is_premium_only)]
        if not eligible:
            return []
        unlocked_ids = await self.repository.list_unlocked_achievement_ids(user_id)
        return build_candidates(eligible, unlocked_ids)

    async def _persist(
        self,
        report: UnlockReport,
        user_id: int,
        candidate: Candidate,
        quiz_slug: str,
        result: EvaluationResult,
        now: datetime,
        extra_meta: dict | None = None,
    ) -> None:
        achievement = candidate.achievement
        meta = {**result.meta, **(extra_meta or {})}
        try:
            inserted, record = await self.repository.insert_unlock_if_absent(
                user_id,
                achievement.id,
                quiz_slug=quiz_slug,
                progress_value=result.progress_value,
                progress_max=result.progress_max,
                meta=meta,
                earned_at=now,
            )
        except Exception as e:
            logger.exception(f"Failed to persist achievement {achievement.slug} for user {user_id}")
            report.failures.append(
                UnlockFailure(
                    achievement_id=achievement.id,
                    achievement_slug=achievement.slug,
                    error=str(e) or e.__class__.__name__,
                )
            )
            return

        if not inserted:
            return

        logger.info(
            f"Achievement unlocked: {achievement.slug} (id={achievement.id}) for user {user_id}"
        )
        report.unlocked.append(
            NewUnlock(
                achievement_id=achievement.id,
                achievement_slug=achievement.slug,
                quiz_slug=record.quiz_slug,
                progress_value=record.progress_value,
                progress_max=record.progress_max,
                meta=record.meta or {},
                earned_at=record.earned_at,
            )
        )

    async def evaluate_on_completion(
        self, event: CompletionEvent, now: datetime | None = None
    ) -> UnlockReport:
        """Evaluate every eligible achievement against a just-recorded completion.

        Raises:
            UserNotFoundException: the event's user does not exist.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        account = await self._load_account(event.user_id)
        tier = resolve_tier(account, now)
        premium_only = None if tier == UserTier.PREMIUM else False
        candidates = await self._load_candidates(event.user_id, tier, premium_only)

        report = UnlockReport()
        if not candidates:
            return report

        recent = await self.repository.list_recent_completions(
            event.user_id, self.history_limit
        )
        history = _history_up_to(event, recent)[: self.history_limit]
        total = await self.repository.count_completions(event.user_id)
        if event.id is None:
            # Not persisted yet, so not counted either
            total += 1

        for candidate in candidates:
            ctx = EvaluationContext(
                achievement=candidate.achievement,
                config=candidate.config,
                tier=tier,
                now=now,
                event=event,
                history=tuple(history),
                total_completions=max(total, len(history)),
            )
            result = candidate.evaluator.evaluate(ctx)
            if result.unlocked:
                await self._persist(
                    report, event.user_id, candidate, event.quiz_slug, result, now
                )

        return report

    async def retroactive_sweep(
        self, user_id: int, now: datetime | None = None
    ) -> UnlockReport:
        """Re-evaluate premium-only achievements after a tier upgrade.

        Tier gates unlock straight away. Event-anchored achievements replay
        the user's history oldest to newest, each completion acting as the
        trigger, and stop at the first completion that satisfies them.
        Safe to repeat: already-unlocked achievements are never candidates,
        and the repository refuses duplicates.

        Raises:
            UserNotFoundException: the user does not exist.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        account = await self._load_account(user_id)
        tier = resolve_tier(account, now)
        report = UnlockReport()
        if tier != UserTier.PREMIUM:
            logger.info(f"Skipping retroactive sweep for user {user_id} with tier {tier.value}")
            return report

        candidates = await self._load_candidates(user_id, tier, premium_only=True)
        if not candidates:
            return report

        recent = await self.repository.list_recent_completions(
            user_id, self.sweep_history_limit
        )
        total = await self.repository.count_completions(user_id)
        retro_meta = {"retroUnlocked": True}

        pending = []
        for candidate in candidates:
            if candidate.evaluator.event_anchored:
                pending.append(candidate)
                continue
            ctx = EvaluationContext(
                achievement=candidate.achievement,
                config=candidate.config,
                tier=tier,
                now=now,
                history=tuple(recent[: self.history_limit]),
                total_completions=total,
            )
            result = candidate.evaluator.evaluate(ctx)
            if result.unlocked:
                await self._persist(report, user_id, candidate, "", result, now, retro_meta)

        timeline = list(reversed(recent))
        # Completions older than the loaded window still count toward totals
        offset = total - len(timeline)
        for index, event in enumerate(timeline):
            if not pending:
                break
            window = timeline[max(0, index + 1 - self.history_limit) : index + 1]
            history = tuple(reversed(window))
            still_pending = []
            for candidate in pending:
                ctx = EvaluationContext(
                    achievement=candidate.achievement,
                    config=candidate.config,
                    tier=tier,
                    now=now,
                    event=event,
                    history=history,
                    total_completions=offset + index + 1,
                )
                result = candidate.evaluator.evaluate(ctx)
                if result.unlocked:
                    await self._persist(
                        report, user_id, candidate, event.quiz_slug, result, now, retro_meta
                    )
                else:
                    still_pending.append(candidate)
            pending = still_pending

        return report

    async def achievement_progress(
        self, user_id: int, now: datetime | None = None
    ) -> list[AchievementProgress]:
        """Progress of eligible, not-yet-unlocked achievements. Persists nothing.

        Event-anchored conditions are measured against the most recent
        completion.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        account = await self._load_account(user_id)
        tier = resolve_tier(account, now)
        premium_only = None if tier == UserTier.PREMIUM else False
        candidates = await self._load_candidates(user_id, tier, premium_only)
        if not candidates:
            return []

        history = await self.repository.list_recent_completions(user_id, self.history_limit)
        total = await self.repository.count_completions(user_id)
        latest = history[0] if history else None

        progress = []
        for candidate in candidates:
            ctx = EvaluationContext(
                achievement=candidate.achievement,
                config=candidate.config,
                tier=tier,
                now=now,
                event=latest,
                history=tuple(history),
                total_completions=total,
            )
            result = candidate.evaluator.evaluate(ctx)
            progress.append(
                AchievementProgress(
                    achievement=candidate.achievement,
                    progress_value=result.progress_value,
                    progress_max=result.progress_max,
                    would_unlock=result.unlocked,
                )
            )
        return progress


async def get_all_achievements(db: AsyncSession) -> list[Achievement]:
    """Get all available achievements."""
    result = await db.execute(
        select(Achievement).order_by(Achievement.category, Achievement.id)
    )
    return list(result.scalars().all())


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[UserAchievement]:
    """Get all achievements unlocked by a user."""
    result = await db.execute(
        select(UserAchievement)
        .options(selectinload(UserAchievement.achievement))
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at.desc())
    )
    return list(result.scalars().all())
