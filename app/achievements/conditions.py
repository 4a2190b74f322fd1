"""Condition evaluator registry.

Each condition type maps to a pure evaluator that receives an
EvaluationContext and returns an EvaluationResult. Configurations are parsed
once, when the catalogue is loaded, into a typed model per condition type.
New condition types are added with `register_condition`; the orchestrator
never needs to change.

Meta keys are camelCase because they are rendered as-is by the web client.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from app.achievements.schemas import AchievementDefinition, CompletionEvent, RoundScore
from app.achievements.tiers import UserTier
from app.achievements.windows import (
    WindowUnit,
    consecutive_week_streak,
    count_in_window,
    trailing_week_keys,
    truncate_to_window_start,
    week_key,
)
from app.common.exceptions import ConditionConfigError

logger = logging.getLogger(__name__)


class ConditionType(str, Enum):
    PERFECT_IN_CATEGORY = "perfect-in-category"
    PLAY_N_IN_WINDOW = "play-n-in-window"
    QUIZ_AGE_AT_COMPLETION = "quiz-age-at-completion"
    REPEAT_SAME_QUIZ = "repeat-same-quiz"
    TIME_LIMIT = "time-limit"
    WEEKLY_STREAK = "weekly-streak"
    SEASONAL_TAG_MATCH = "seasonal-tag-match"
    PLAY_N_TOTAL = "play-n-total"
    PERFECT_SCORES_TOTAL = "perfect-scores-total"
    PERFECT_MULTI_CATEGORY = "perfect-multi-category"
    SUBSCRIPTION = "subscription"


# Tags written by the admin console before the registry existed
LEGACY_CONDITION_TYPES = {
    "score_5_of_5": ConditionType.PERFECT_IN_CATEGORY,
    "play_n_quizzes": ConditionType.PLAY_N_IN_WINDOW,
    "time_window": ConditionType.QUIZ_AGE_AT_COMPLETION,
    "repeat_quiz": ConditionType.REPEAT_SAME_QUIZ,
    "time_limit": ConditionType.TIME_LIMIT,
    "streak": ConditionType.WEEKLY_STREAK,
    "event_round": ConditionType.SEASONAL_TAG_MATCH,
    "play_n_quizzes_total": ConditionType.PLAY_N_TOTAL,
    "perfect_scores_total": ConditionType.PERFECT_SCORES_TOTAL,
    "perfect_score_multiple_categories": ConditionType.PERFECT_MULTI_CATEGORY,
}


# ---------------------------------------------------------------------------
# Typed configurations
# ---------------------------------------------------------------------------


class ConditionConfig(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True
    )


class PerfectInCategoryConfig(ConditionConfig):
    category: str | None = None
    # Minimum questions in the round for a perfect score to count
    required_score: int = Field(5, ge=1)


class PlayNInWindowConfig(ConditionConfig):
    count: int = Field(3, ge=1)
    time_window: WindowUnit = WindowUnit.DAY
    window_size: int = Field(1, ge=1)


class QuizAgeConfig(ConditionConfig):
    weeks_ago: float = Field(3, gt=0)


class RepeatSameQuizConfig(ConditionConfig):
    min_completions: int = Field(2, ge=1)


class TimeLimitConfig(ConditionConfig):
    max_seconds: int = Field(120, gt=0)
    category: str | None = None
    required_score: int | None = Field(None, ge=1)


class WeeklyStreakConfig(ConditionConfig):
    weeks: int = Field(
        4,
        ge=1,
        validation_alias=AliasChoices("weeks", "consecutiveWeeks", "consecutive_weeks"),
    )


class SeasonalTagConfig(ConditionConfig):
    event_tag: str = Field(..., min_length=1)


class PlayNTotalConfig(ConditionConfig):
    count: int = Field(25, ge=1)


class PerfectScoresTotalConfig(ConditionConfig):
    count: int = Field(5, ge=1)
    min_questions: int = Field(5, ge=1)


class PerfectMultiCategoryConfig(ConditionConfig):
    min_categories: int = Field(4, ge=1)
    required_score: int = Field(5, ge=1)


class SubscriptionConfig(ConditionConfig):
    tier: UserTier = UserTier.PREMIUM


# ---------------------------------------------------------------------------
# Context and result
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EvaluationContext:
    """Everything an evaluator may look at.

    `history` is most-recent-first, bounded, contains the triggering event
    when there is one and nothing newer than it. `total_completions` is the
    user's all-time count up to and including the triggering event.
    """

    achievement: AchievementDefinition
    config: ConditionConfig
    tier: UserTier
    now: datetime
    event: CompletionEvent | None = None
    history: tuple[CompletionEvent, ...] = ()
    total_completions: int = 0

    @property
    def anchor(self) -> datetime:
        return self.event.completed_at if self.event is not None else self.now


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    unlocked: bool
    progress_value: int | None = None
    progress_max: int | None = None
    meta: dict = field(default_factory=dict)


LOCKED = EvaluationResult(unlocked=False)


@dataclass(frozen=True, slots=True)
class ConditionEvaluator:
    condition_type: ConditionType
    config_model: type[ConditionConfig]
    evaluate: Callable[[EvaluationContext], EvaluationResult]
    # False for gates that do not depend on any particular completion
    event_anchored: bool = True


CONDITION_EVALUATORS: dict[ConditionType, ConditionEvaluator] = {}


def register_condition(
    condition_type: ConditionType,
    config_model: type[ConditionConfig],
    *,
    event_anchored: bool = True,
):
    def decorator(func: Callable[[EvaluationContext], EvaluationResult]):
        CONDITION_EVALUATORS[condition_type] = ConditionEvaluator(
            condition_type=condition_type,
            config_model=config_model,
            evaluate=func,
            event_anchored=event_anchored,
        )
        return func

    return decorator


def resolve_condition_type(tag: str | None) -> ConditionType | None:
    if not tag:
        return None
    if tag in LEGACY_CONDITION_TYPES:
        return LEGACY_CONDITION_TYPES[tag]
    try:
        return ConditionType(tag)
    except ValueError:
        return None


def get_evaluator(tag: str | None) -> ConditionEvaluator | None:
    condition_type = resolve_condition_type(tag)
    if condition_type is None:
        return None
    return CONDITION_EVALUATORS.get(condition_type)


def parse_condition_config(
    evaluator: ConditionEvaluator, raw: dict | str | None
) -> ConditionConfig:
    """Validate a stored configuration blob against the evaluator's model.

    Raises:
        ConditionConfigError: the blob is not a JSON object or fails validation.
    """
    if raw is None or raw == "":
        raw = {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConditionConfigError(f"Condition config is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConditionConfigError("Condition config must be a JSON object")

    try:
        return evaluator.config_model.model_validate(raw)
    except ValidationError as e:
        raise ConditionConfigError(str(e)) from e


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------


def _category_matches(target: str | None, category: str | None) -> bool:
    return target is None or (category or "").lower() == target


def _event_category_matches(target: str | None, event: CompletionEvent) -> bool:
    return target is None or target in {c.lower() for c in event.categories}


def _is_perfect(score: int, total: int, min_total: int) -> bool:
    return score == total and total >= min_total


def _lower(value: str | None) -> str | None:
    return value.lower() if value else None


@register_condition(ConditionType.PERFECT_IN_CATEGORY, PerfectInCategoryConfig)
def evaluate_perfect_in_category(ctx: EvaluationContext) -> EvaluationResult:
    config: PerfectInCategoryConfig = ctx.config
    event = ctx.event
    if event is None:
        return LOCKED

    target = _lower(config.category)

    if event.round_scores:
        for round_score in event.round_scores:
            if _category_matches(target, round_score.category) and _is_perfect(
                round_score.score, round_score.total_questions, config.required_score
            ):
                return EvaluationResult(
                    unlocked=True,
                    meta={
                        "roundNumber": round_score.round_number,
                        "category": round_score.category,
                    },
                )
        return LOCKED

    # No round breakdown: the whole quiz counts as one round
    if _event_category_matches(target, event) and _is_perfect(
        event.score, event.total_questions, config.required_score
    ):
        return EvaluationResult(unlocked=True)
    return LOCKED


@register_condition(ConditionType.PLAY_N_IN_WINDOW, PlayNInWindowConfig)
def evaluate_play_n_in_window(ctx: EvaluationContext) -> EvaluationResult:
    config: PlayNInWindowConfig = ctx.config
    anchor = ctx.anchor
    start = truncate_to_window_start(anchor, config.time_window, config.window_size)
    count = count_in_window((e.completed_at for e in ctx.history), start, anchor)
    return EvaluationResult(
        unlocked=count >= config.count,
        progress_value=count,
        progress_max=config.count,
    )


WEEK = timedelta(weeks=1)


@register_condition(ConditionType.QUIZ_AGE_AT_COMPLETION, QuizAgeConfig)
def evaluate_quiz_age(ctx: EvaluationContext) -> EvaluationResult:
    config: QuizAgeConfig = ctx.config
    event = ctx.event
    if event is None or event.quiz_published_at is None:
        return LOCKED

    age_weeks = (event.completed_at - event.quiz_published_at) / WEEK
    if age_weeks >= config.weeks_ago:
        return EvaluationResult(unlocked=True, meta={"weeksAgo": int(age_weeks)})
    return LOCKED


@register_condition(ConditionType.REPEAT_SAME_QUIZ, RepeatSameQuizConfig)
def evaluate_repeat_same_quiz(ctx: EvaluationContext) -> EvaluationResult:
    config: RepeatSameQuizConfig = ctx.config
    event = ctx.event
    if event is None:
        return LOCKED

    completions = sum(1 for e in ctx.history if e.quiz_slug == event.quiz_slug)
    return EvaluationResult(
        unlocked=completions >= config.min_completions,
        progress_value=completions,
        progress_max=config.min_completions,
    )


def _within_time_limit(
    config: TimeLimitConfig, score: int, total: int, seconds: int | None
) -> bool:
    if seconds is None or seconds > config.max_seconds:
        return False
    if config.required_score is not None:
        return _is_perfect(score, total, config.required_score)
    return True


@register_condition(ConditionType.TIME_LIMIT, TimeLimitConfig)
def evaluate_time_limit(ctx: EvaluationContext) -> EvaluationResult:
    config: TimeLimitConfig = ctx.config
    event = ctx.event
    if event is None:
        return LOCKED

    target = _lower(config.category)

    if event.round_scores:
        for round_score in event.round_scores:
            if _category_matches(target, round_score.category) and _within_time_limit(
                config, round_score.score, round_score.total_questions, round_score.time_seconds
            ):
                return EvaluationResult(
                    unlocked=True,
                    meta={
                        "roundNumber": round_score.round_number,
                        "timeSeconds": round_score.time_seconds,
                    },
                )
        return LOCKED

    if _event_category_matches(target, event) and _within_time_limit(
        config, event.score, event.total_questions, event.completion_time_seconds
    ):
        return EvaluationResult(
            unlocked=True, meta={"timeSeconds": event.completion_time_seconds}
        )
    return LOCKED


@register_condition(ConditionType.WEEKLY_STREAK, WeeklyStreakConfig)
def evaluate_weekly_streak(ctx: EvaluationContext) -> EvaluationResult:
    config: WeeklyStreakConfig = ctx.config
    anchor = ctx.anchor
    covered = {week_key(e.completed_at) for e in ctx.history if e.completed_at <= anchor}
    weeks_covered = sum(1 for key in trailing_week_keys(anchor, config.weeks) if key in covered)
    return EvaluationResult(
        unlocked=weeks_covered >= config.weeks,
        progress_value=weeks_covered,
        progress_max=config.weeks,
        meta={"streakWeeks": consecutive_week_streak(covered, anchor)},
    )


@register_condition(ConditionType.SEASONAL_TAG_MATCH, SeasonalTagConfig)
def evaluate_seasonal_tag(ctx: EvaluationContext) -> EvaluationResult:
    config: SeasonalTagConfig = ctx.config
    if ctx.event is None:
        return LOCKED

    season_tag = ctx.achievement.season_tag
    if season_tag and season_tag.lower() == config.event_tag.lower():
        return EvaluationResult(unlocked=True, meta={"eventTag": config.event_tag})
    return LOCKED


@register_condition(ConditionType.PLAY_N_TOTAL, PlayNTotalConfig)
def evaluate_play_n_total(ctx: EvaluationContext) -> EvaluationResult:
    config: PlayNTotalConfig = ctx.config
    total = max(ctx.total_completions, len(ctx.history))
    return EvaluationResult(
        unlocked=total >= config.count,
        progress_value=total,
        progress_max=config.count,
    )


@register_condition(ConditionType.PERFECT_SCORES_TOTAL, PerfectScoresTotalConfig)
def evaluate_perfect_scores_total(ctx: EvaluationContext) -> EvaluationResult:
    config: PerfectScoresTotalConfig = ctx.config
    perfect = sum(
        1
        for e in ctx.history
        if _is_perfect(e.score, e.total_questions, config.min_questions)
    )
    return EvaluationResult(
        unlocked=perfect >= config.count,
        progress_value=perfect,
        progress_max=config.count,
    )


def _perfect_categories(rounds: tuple[RoundScore, ...] | None, min_total: int) -> set[str]:
    return {
        r.category.lower()
        for r in rounds or ()
        if r.category and _is_perfect(r.score, r.total_questions, min_total)
    }


@register_condition(ConditionType.PERFECT_MULTI_CATEGORY, PerfectMultiCategoryConfig)
def evaluate_perfect_multi_category(ctx: EvaluationContext) -> EvaluationResult:
    config: PerfectMultiCategoryConfig = ctx.config
    categories: set[str] = set()
    for e in ctx.history:
        categories |= _perfect_categories(e.round_scores, config.required_score)

    unlocked = len(categories) >= config.min_categories
    return EvaluationResult(
        unlocked=unlocked,
        progress_value=len(categories),
        progress_max=config.min_categories,
        meta={"categories": sorted(categories)} if unlocked else {},
    )


@register_condition(ConditionType.SUBSCRIPTION, SubscriptionConfig, event_anchored=False)
def evaluate_subscription(ctx: EvaluationContext) -> EvaluationResult:
    config: SubscriptionConfig = ctx.config
    return EvaluationResult(unlocked=ctx.tier == config.tier)
