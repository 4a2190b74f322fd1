"""Tests for the SQLAlchemy achievement repository."""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from app.achievements.models import Achievement, UserAchievement
from app.achievements.repository import SqlAlchemyAchievementRepository
from app.achievements.service import UnlockOrchestrator
from app.quizzes.models import Quiz, QuizCompletion
from tests.conftest import create_test_user

NOW = datetime(2025, 3, 3, 12, tzinfo=timezone.utc)


@pytest.fixture
async def catalogue(db_session) -> list[Achievement]:
    achievements = [
        Achievement(
            slug="deja-vu",
            name="Déjà Vu",
            category="engagement",
            condition_type="repeat-same-quiz",
            condition_config={"minCompletions": 2},
        ),
        Achievement(
            slug="premium-member",
            name="Premium Member",
            category="membership",
            is_premium_only=True,
            condition_type="subscription",
            condition_config={"tier": "premium"},
        ),
    ]
    db_session.add_all(achievements)
    await db_session.commit()
    return achievements


@pytest.fixture
def repo(db_session) -> SqlAlchemyAchievementRepository:
    return SqlAlchemyAchievementRepository(db_session)


async def _add_completion(db_session, user_id, quiz_slug, completed_at, **fields):
    completion = QuizCompletion(
        user_id=user_id,
        quiz_slug=quiz_slug,
        score=fields.pop("score", 5),
        total_questions=fields.pop("total_questions", 5),
        completed_at=completed_at,
        **fields,
    )
    db_session.add(completion)
    await db_session.commit()
    return completion


class TestAccounts:
    async def test_missing_user(self, repo):
        assert await repo.get_account(42) is None

    async def test_subscription_fields(self, repo, db_session):
        await create_test_user(db_session, 5, subscription_status="TRIALING")

        account = await repo.get_account(5)

        assert account.id == 5
        assert account.tier == "free"
        assert account.subscription_status == "TRIALING"


class TestCatalogue:
    async def test_list_all(self, repo, catalogue):
        achievements = await repo.list_achievements()
        assert [a.slug for a in achievements] == ["deja-vu", "premium-member"]
        assert achievements[0].condition_config == {"minCompletions": 2}

    @pytest.mark.parametrize(
        "premium_only, expected",
        [(True, ["premium-member"]), (False, ["deja-vu"])],
    )
    async def test_filter_by_premium(self, repo, catalogue, premium_only, expected):
        achievements = await repo.list_achievements(premium_only=premium_only)
        assert [a.slug for a in achievements] == expected


class TestCompletions:
    async def test_most_recent_first_with_quiz_publication(self, repo, db_session, test_user):
        db_session.add(Quiz(slug="week-1", title="Week 1", published_at=NOW - timedelta(weeks=4)))
        await db_session.commit()
        await _add_completion(db_session, 1, "week-1", NOW - timedelta(days=2))
        await _add_completion(
            db_session,
            1,
            "week-9",
            NOW,
            categories=["History"],
            round_scores=[{"roundNumber": 1, "category": "History", "score": 5, "totalQuestions": 5}],
        )
        await _add_completion(db_session, 1, "week-1", NOW - timedelta(days=1))

        events = await repo.list_recent_completions(1, limit=10)

        assert [e.completed_at for e in events] == [
            NOW,
            NOW - timedelta(days=1),
            NOW - timedelta(days=2),
        ]
        latest = events[0]
        assert latest.quiz_published_at is None
        assert latest.categories == ("History",)
        assert latest.round_scores[0].round_number == 1
        assert events[1].quiz_published_at == NOW - timedelta(weeks=4)

    async def test_ties_broken_by_insertion_order(self, repo, db_session, test_user):
        first = await _add_completion(db_session, 1, "week-1", NOW)
        second = await _add_completion(db_session, 1, "week-2", NOW)

        events = await repo.list_recent_completions(1, limit=10)

        assert [e.id for e in events] == [second.id, first.id]

    async def test_limit_and_count(self, repo, db_session, test_user):
        await create_test_user(db_session, 2)
        for day in range(5):
            await _add_completion(db_session, 1, f"week-{day}", NOW - timedelta(days=day))
        await _add_completion(db_session, 2, "week-1", NOW)

        events = await repo.list_recent_completions(1, limit=2)

        assert [e.quiz_slug for e in events] == ["week-0", "week-1"]
        assert await repo.count_completions(1) == 5
        assert await repo.count_completions(3) == 0


class TestUnlocks:
    async def test_insert_then_duplicate(self, repo, db_session, test_user, catalogue):
        achievement_id = catalogue[0].id

        inserted, record = await repo.insert_unlock_if_absent(
            1,
            achievement_id,
            quiz_slug="week-3",
            progress_value=2,
            progress_max=2,
            meta={"roundNumber": 1},
            earned_at=NOW,
        )
        assert inserted
        assert record.quiz_slug == "week-3"
        assert record.meta == {"roundNumber": 1}

        inserted_again, existing = await repo.insert_unlock_if_absent(
            1, achievement_id, quiz_slug="week-4", earned_at=NOW + timedelta(hours=1)
        )
        assert not inserted_again
        assert existing.id == record.id
        assert existing.quiz_slug == "week-3"

        assert await repo.list_unlocked_achievement_ids(1) == {achievement_id}

    async def test_session_usable_after_duplicate(self, repo, db_session, test_user, catalogue):
        # The rollback on a duplicate expires loaded instances
        first_id, second_id = catalogue[0].id, catalogue[1].id
        await repo.insert_unlock_if_absent(1, first_id, earned_at=NOW)
        await repo.insert_unlock_if_absent(1, first_id, earned_at=NOW)

        inserted, _ = await repo.insert_unlock_if_absent(1, second_id, earned_at=NOW)

        assert inserted
        assert await repo.list_unlocked_achievement_ids(1) == {first_id, second_id}

    async def test_unlocks_scoped_to_user(self, repo, db_session, test_user, catalogue):
        await create_test_user(db_session, 2)
        db_session.add(
            UserAchievement(user_id=2, achievement_id=catalogue[0].id, earned_at=NOW)
        )
        await db_session.commit()

        assert await repo.list_unlocked_achievement_ids(1) == set()
        inserted, _ = await repo.insert_unlock_if_absent(1, catalogue[0].id, earned_at=NOW)
        assert inserted


class TestOrchestratorOnDatabase:
    @pytest.fixture
    async def first_completion(self, repo, db_session, test_user):
        await _add_completion(db_session, 1, "week-1", NOW)
        events = await repo.list_recent_completions(1, limit=1)
        return events[0]

    @pytest.fixture
    def orchestrator(self, repo) -> UnlockOrchestrator:
        return UnlockOrchestrator(repo, history_limit=100, sweep_history_limit=1000)

    @pytest.mark.parametrize("stored_config", [[1, 2], 7, "[1, 2]"])
    async def test_non_object_config_skipped(
        self, db_session, orchestrator, first_completion, caplog, stored_config
    ):
        db_session.add_all(
            [
                Achievement(
                    slug="bad",
                    name="Bad",
                    category="engagement",
                    condition_type="play-n-total",
                    condition_config=stored_config,
                ),
                Achievement(
                    slug="good",
                    name="Good",
                    category="engagement",
                    condition_type="play-n-total",
                    condition_config={"count": 1},
                ),
            ]
        )
        await db_session.commit()

        with caplog.at_level(logging.WARNING, logger="app.achievements.service"):
            report = await orchestrator.evaluate_on_completion(first_completion, now=NOW)

        assert [u.achievement_slug for u in report] == ["good"]
        assert "Skipping achievement bad" in caplog.text

    async def test_failed_insert_does_not_block_remaining_unlocks(
        self, engine, db_session, orchestrator, first_completion
    ):
        db_session.add_all(
            [
                Achievement(
                    slug=f"first-quiz-{i}",
                    name=f"First Quiz {i}",
                    category="engagement",
                    condition_type="play-n-total",
                    condition_config={"count": 1},
                )
                for i in (1, 2, 3)
            ]
        )
        await db_session.commit()

        failed = []

        def fail_first_unlock(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("INSERT INTO user_achievements") and not failed:
                failed.append(statement)
                raise OperationalError(statement, parameters, Exception("disk I/O error"))

        event.listen(engine.sync_engine, "before_cursor_execute", fail_first_unlock)
        try:
            report = await orchestrator.evaluate_on_completion(first_completion, now=NOW)
        finally:
            event.remove(engine.sync_engine, "before_cursor_execute", fail_first_unlock)

        assert [f.achievement_slug for f in report.failures] == ["first-quiz-1"]
        assert [u.achievement_slug for u in report] == ["first-quiz-2", "first-quiz-3"]
        unlocked_ids = await orchestrator.repository.list_unlocked_achievement_ids(1)
        assert len(unlocked_ids) == 2
