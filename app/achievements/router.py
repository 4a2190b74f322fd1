"""API endpoints for achievements module."""

from fastapi import APIRouter

from app.achievements import service
from app.achievements.repository import SqlAlchemyAchievementRepository
from app.achievements.schemas import (
    AchievementListResponse,
    AchievementProgressItem,
    AchievementProgressResponse,
    AchievementResponse,
    UnlockReportResponse,
    UserAchievementResponse,
    UserAchievementsResponse,
)
from app.auth.dependencies import CurrentUser, DbSession

router = APIRouter()


@router.get(
    "",
    response_model=AchievementListResponse,
)
async def get_all_achievements(db: DbSession):
    """Get all available achievements."""
    achievements = await service.get_all_achievements(db)
    return AchievementListResponse(
        achievements=[AchievementResponse.model_validate(a) for a in achievements],
        count=len(achievements),
    )


@router.get(
    "/me",
    response_model=UserAchievementsResponse,
)
async def get_my_achievements(current_user: CurrentUser, db: DbSession):
    """Get current user's unlocked achievements."""
    user_achievements = await service.get_user_achievements(db, current_user.id)

    return UserAchievementsResponse(
        achievements=[UserAchievementResponse.model_validate(ua) for ua in user_achievements],
        count=len(user_achievements),
    )


@router.get(
    "/progress",
    response_model=AchievementProgressResponse,
)
async def get_achievement_progress(current_user: CurrentUser, db: DbSession):
    """
    Get user's progress toward achievements not yet unlocked.

    Conditions tied to a single completion are measured against the
    user's most recent one.
    """
    orchestrator = service.UnlockOrchestrator(SqlAlchemyAchievementRepository(db))
    progress = await orchestrator.achievement_progress(current_user.id)

    items = [
        AchievementProgressItem(
            slug=p.achievement.slug,
            name=p.achievement.name,
            progress_value=p.progress_value,
            progress_max=p.progress_max,
        )
        for p in progress
    ]
    return AchievementProgressResponse(achievements=items, count=len(items))


@router.post(
    "/sweep",
    response_model=UnlockReportResponse,
)
async def sweep_achievements(current_user: CurrentUser, db: DbSession):
    """
    Retroactively unlock premium achievements for the current user.

    Called after an upgrade to premium. Repeated calls are harmless.
    """
    orchestrator = service.UnlockOrchestrator(SqlAlchemyAchievementRepository(db))
    report = await orchestrator.retroactive_sweep(current_user.id)
    return UnlockReportResponse(new_achievements=report.unlocked, failures=report.failures)
