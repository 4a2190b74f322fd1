import asyncio
from datetime import datetime, timezone

import pytest

from app.achievements.conditions import EvaluationContext, get_evaluator, parse_condition_config
from app.achievements.repository import AchievementRepository
from app.achievements.schemas import (
    Account,
    AchievementDefinition,
    CompletionEvent,
    RoundScore,
    UnlockRecord,
)
from app.achievements.service import UnlockOrchestrator
from app.achievements.tiers import UserTier

# A Monday, mid-ISO-week 10 of 2025
BASE = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


class InMemoryAchievementRepository(AchievementRepository):
    """Repository double with the same uniqueness guarantee as the database.

    Every method yields to the event loop first so concurrent evaluations
    interleave the way they would against a real database.
    """

    def __init__(self):
        self.accounts: dict[int, Account] = {}
        self.achievements: list[AchievementDefinition] = []
        self.completions: list[CompletionEvent] = []
        self.unlocks: dict[tuple[int, int], UnlockRecord] = {}
        self.fail_inserts_for: set[int] = set()
        self._next_id = 1

    def add_account(self, user_id: int = 1, tier: str = "free", **fields) -> Account:
        account = Account(id=user_id, tier=tier, **fields)
        self.accounts[user_id] = account
        return account

    def add_completion(self, event: CompletionEvent) -> CompletionEvent:
        stored = event.model_copy(update={"id": self._next_id})
        self._next_id += 1
        self.completions.append(stored)
        return stored

    async def get_account(self, user_id: int) -> Account | None:
        await asyncio.sleep(0)
        return self.accounts.get(user_id)

    async def list_achievements(self, premium_only: bool | None = None):
        await asyncio.sleep(0)
        if premium_only is None:
            return list(self.achievements)
        return [a for a in self.achievements if a.is_premium_only == premium_only]

    async def list_unlocked_achievement_ids(self, user_id: int) -> set[int]:
        await asyncio.sleep(0)
        return {achievement_id for uid, achievement_id in self.unlocks if uid == user_id}

    async def list_recent_completions(self, user_id: int, limit: int):
        await asyncio.sleep(0)
        mine = [c for c in self.completions if c.user_id == user_id]
        mine.sort(key=lambda c: (c.completed_at, c.id), reverse=True)
        return mine[:limit]

    async def count_completions(self, user_id: int) -> int:
        await asyncio.sleep(0)
        return sum(1 for c in self.completions if c.user_id == user_id)

    async def insert_unlock_if_absent(
        self,
        user_id,
        achievement_id,
        quiz_slug="",
        progress_value=None,
        progress_max=None,
        meta=None,
        earned_at=None,
    ):
        await asyncio.sleep(0)
        if achievement_id in self.fail_inserts_for:
            raise RuntimeError("connection reset")

        key = (user_id, achievement_id)
        if key in self.unlocks:
            return False, self.unlocks[key]

        record = UnlockRecord(
            id=len(self.unlocks) + 1,
            user_id=user_id,
            achievement_id=achievement_id,
            quiz_slug=quiz_slug,
            progress_value=progress_value,
            progress_max=progress_max,
            meta=meta or None,
            earned_at=earned_at or BASE,
        )
        self.unlocks[key] = record
        return True, record


def make_event(
    quiz_slug: str = "week-1",
    completed_at: datetime = BASE,
    score: int = 5,
    total_questions: int = 5,
    rounds: list[RoundScore] | None = None,
    user_id: int = 1,
    **fields,
) -> CompletionEvent:
    return CompletionEvent(
        user_id=user_id,
        quiz_slug=quiz_slug,
        score=score,
        total_questions=total_questions,
        round_scores=tuple(rounds) if rounds else None,
        completed_at=completed_at,
        **fields,
    )


def make_round(
    round_number: int,
    category: str,
    score: int,
    total_questions: int = 5,
    time_seconds: int | None = None,
) -> RoundScore:
    return RoundScore(
        round_number=round_number,
        category=category,
        score=score,
        total_questions=total_questions,
        time_seconds=time_seconds,
    )


def make_achievement(
    achievement_id: int,
    condition_type: str,
    config: dict | str | None = None,
    slug: str | None = None,
    is_premium_only: bool = False,
    season_tag: str | None = None,
) -> AchievementDefinition:
    return AchievementDefinition(
        id=achievement_id,
        slug=slug or f"achievement-{achievement_id}",
        name=(slug or f"Achievement {achievement_id}").title(),
        is_premium_only=is_premium_only,
        season_tag=season_tag,
        condition_type=condition_type,
        condition_config=config,
    )


def make_context(
    condition_type: str,
    config: dict | None = None,
    event: CompletionEvent | None = None,
    history: list[CompletionEvent] | None = None,
    tier: UserTier = UserTier.FREE,
    now: datetime = BASE,
    total_completions: int | None = None,
    season_tag: str | None = None,
) -> tuple[EvaluationContext, object]:
    """Build a context and return it with the evaluator for `condition_type`."""
    evaluator = get_evaluator(condition_type)
    achievement = make_achievement(1, condition_type, config, season_tag=season_tag)
    if history is None:
        history = [event] if event is not None else []
    ctx = EvaluationContext(
        achievement=achievement,
        config=parse_condition_config(evaluator, config),
        tier=tier,
        now=now,
        event=event,
        history=tuple(history),
        total_completions=len(history) if total_completions is None else total_completions,
    )
    return ctx, evaluator


@pytest.fixture
def repository() -> InMemoryAchievementRepository:
    repo = InMemoryAchievementRepository()
    repo.add_account(1, tier="free")
    return repo


@pytest.fixture
def orchestrator(repository) -> UnlockOrchestrator:
    return UnlockOrchestrator(repository, history_limit=100, sweep_history_limit=1000)
