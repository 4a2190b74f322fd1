"""SQLAlchemy models for quizzes and recorded completions."""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
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


class Quiz(Base):
    """Published quiz, addressed by a stable slug (e.g. 'week-3')."""

    __tablename__ = "quizzes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (UniqueConstraint("slug", name="uq_quiz_slug"),)


class QuizCompletion(Base):
    """One play-through of a quiz by a user.

    Append-only: rows are inserted once and never updated or deleted.
    `categories` lists the quiz's category labels, `round_scores` holds a list of
    {"roundNumber", "category", "score", "totalQuestions", "timeSeconds"}.
    """

    __tablename__ = "quiz_completions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
    )
    quiz_slug: Mapped[str] = mapped_column(String(100), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    categories: Mapped[list | None] = mapped_column(JSONType)
    round_scores: Mapped[list | None] = mapped_column(JSONType)
    completion_time_seconds: Mapped[int | None] = mapped_column(Integer)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    user: Mapped["AppUser"] = relationship()  # type: ignore

    __table_args__ = (
        Index("idx_quiz_completions_user_completed", "user_id", "completed_at"),
        Index("idx_quiz_completions_user_slug", "user_id", "quiz_slug"),
    )
