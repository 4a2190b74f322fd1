"""API endpoints for quiz completions."""

from fastapi import APIRouter, status

from app.auth.dependencies import CurrentUser, DbSession
from app.quizzes import service
from app.quizzes.schemas import CompletionCreate, CompletionRecordedResponse

router = APIRouter()


@router.post(
    "/{slug}/completions",
    response_model=CompletionRecordedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_completion(
    slug: str,
    data: CompletionCreate,
    current_user: CurrentUser,
    db: DbSession,
):
    """
    Record a finished quiz and check for newly unlocked achievements.

    The completion is saved even if achievement evaluation fails; in that
    case `new_achievements` is empty.
    """
    return await service.record_completion(db, current_user.id, slug, data)
