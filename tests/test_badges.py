"""Badge awards: scopes, idempotence, XP bonus and the cascade."""
import pytest
from sqlalchemy import text

from engines.badges import BadgeEvaluator, BadgeScope
from engines.store import LearningStore
from engines.streaks import StreakTracker

pytestmark = pytest.mark.anyio


@pytest.fixture
def store(session):
    return LearningStore(session)


async def test_awards_matching_badge_with_xp(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((2,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    await factory.badge("three_lessons", "lesson", {"kind": "lesson_milestone", "count": 3}, xp_bonus=35)
    await factory.attempt(user, cur.lessons[0][0])

    result = await BadgeEvaluator(store).check_and_award_badges(user.id, BadgeScope.LESSON)
    await session.commit()

    assert [b.badge_key for b in result.new_badges] == ["first_steps"]
    assert result.total_xp_awarded == 25
    assert await store.get_user_xp(user.id) == 25


async def test_repeat_check_awards_nothing(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    await factory.attempt(user, cur.lessons[0][0])
    evaluator = BadgeEvaluator(store)

    await evaluator.check_and_award_badges(user.id, BadgeScope.LESSON)
    again = await evaluator.check_and_award_badges(user.id, BadgeScope.LESSON)
    await session.commit()

    assert again.new_badges == []
    assert again.total_xp_awarded == 0
    assert await store.get_user_xp(user.id) == 25
    assert len(await store.list_user_badges(user.id)) == 1


async def test_duplicate_award_insert_is_noop(session, factory, store):
    user = await factory.user()
    badge = await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)

    assert await store.insert_user_badge_if_absent(user.id, badge.id) is True
    assert await store.insert_user_badge_if_absent(user.id, badge.id) is False
    await session.commit()
    assert len(await store.list_user_badges(user.id)) == 1


async def test_award_lost_to_concurrent_writer_adds_no_xp(session, factory, store):
    user = await factory.user()
    badge = await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    evaluator = BadgeEvaluator(store)

    # the other request already recorded the award
    await store.insert_user_badge_if_absent(user.id, badge.id)
    await session.commit()

    assert await evaluator._award(user.id, badge) is False
    await session.commit()
    assert await store.get_user_xp(user.id) == 0


async def test_invalid_criteria_does_not_block_other_badges(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("broken", "lesson", {"kind": "moon_phase"}, xp_bonus=999, display_order=1)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25, display_order=2)
    await factory.attempt(user, cur.lessons[0][0])

    result = await BadgeEvaluator(store).check_and_award_badges(user.id, BadgeScope.LESSON)

    assert result.failed_badges == ["broken"]
    assert [b.badge_key for b in result.new_badges] == ["first_steps"]


async def test_award_failure_does_not_block_other_badges(session, factory, store, monkeypatch):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("early_bird", "lesson", {"kind": "first_lesson"}, xp_bonus=10, display_order=1)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25, display_order=2)
    await factory.attempt(user, cur.lessons[0][0])

    award = BadgeEvaluator._award

    async def award_or_fail(self, user_id, badge):
        if badge.badge_key == "early_bird":
            raise RuntimeError("award store unavailable")
        return await award(self, user_id, badge)

    monkeypatch.setattr(BadgeEvaluator, "_award", award_or_fail)

    result = await BadgeEvaluator(store).check_and_award_badges(user.id, BadgeScope.LESSON)
    await session.commit()

    assert result.failed_badges == ["early_bird"]
    assert [b.badge_key for b in result.new_badges] == ["first_steps"]
    assert await store.get_user_xp(user.id) == 25


async def test_unreadable_stats_skip_the_scope(session, factory, store, monkeypatch):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    await factory.attempt(user, cur.lessons[0][0])

    async def broken_days(self, user_id):
        raise RuntimeError("streak store unavailable")

    monkeypatch.setattr(StreakTracker, "active_days", broken_days)

    result = await BadgeEvaluator(store).check_and_award_badges(user.id, BadgeScope.LESSON)

    assert result.scope_failed
    assert result.new_badges == []
    assert await store.get_user_xp(user.id) == 0


async def test_failed_stats_query_leaves_session_usable(session, factory, store, monkeypatch):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    await factory.attempt(user, cur.lessons[0][0])

    async def bad_query(self, user_id, difficulty):
        await self.session.execute(text("SELECT count(*) FROM no_such_table"))

    monkeypatch.setattr(LearningStore, "count_passed_with_difficulty", bad_query)

    result = await BadgeEvaluator(store).check_and_award_badges(user.id, BadgeScope.LESSON)
    await store.increment_xp(user.id, 5)
    await session.commit()

    assert result.scope_failed
    assert await store.get_user_xp(user.id) == 5


async def test_failed_scope_does_not_stop_the_cascade(session, factory, store, monkeypatch):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    await factory.badge("course_done", "course", {"kind": "complete_course"}, xp_bonus=50)
    await factory.attempt(user, cur.lessons[0][0])

    gather = BadgeEvaluator.gather_stats
    calls = []

    async def fail_first_gather(self, user_id):
        calls.append(user_id)
        if len(calls) == 1:
            raise RuntimeError("stats unavailable")
        return await gather(self, user_id)

    monkeypatch.setattr(BadgeEvaluator, "gather_stats", fail_first_gather)

    cascade = await BadgeEvaluator(store).run_cascade(user.id)
    await session.commit()

    assert [stage.scope_failed for stage in cascade.stages] == [True, False, False]
    assert [b.badge_key for b in cascade.new_badges] == ["course_done"]
    assert await store.get_user_xp(user.id) == 50


async def test_scope_limits_categories(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("course_done", "course", {"kind": "complete_course"}, xp_bonus=50)
    await factory.attempt(user, cur.lessons[0][0])
    evaluator = BadgeEvaluator(store)

    lesson_scope = await evaluator.check_and_award_badges(user.id, BadgeScope.LESSON)
    course_scope = await evaluator.check_and_award_badges(user.id, BadgeScope.COURSE)

    assert lesson_scope.new_badges == []
    assert [b.badge_key for b in course_scope.new_badges] == ["course_done"]


async def test_cascade_runs_lesson_course_program(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    await factory.badge("course_done", "course", {"kind": "complete_course"}, xp_bonus=50)
    await factory.badge("program_done", "program", {"kind": "complete_program"}, xp_bonus=150)
    await factory.attempt(user, cur.lessons[0][0])

    cascade = await BadgeEvaluator(store).run_cascade(user.id)
    await session.commit()

    assert [s.scope for s in cascade.stages] == [BadgeScope.LESSON, BadgeScope.COURSE, BadgeScope.PROGRAM]
    assert [b.badge_key for b in cascade.new_badges] == ["first_steps", "course_done", "program_done"]
    assert cascade.total_xp_awarded == 225
    assert await store.get_user_xp(user.id) == 225


async def test_completion_counts_only_active_enrollments(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program, active=False)
    await factory.attempt(user, cur.lessons[0][0])

    stats = await BadgeEvaluator(store).gather_stats(user.id)

    assert stats.lessons_completed == 1
    assert stats.courses_completed == 0
    assert stats.programs_completed == 0


async def test_stats_from_quiz_history(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((2,), difficulty="Advanced")
    await factory.enroll(user, cur.program)
    await factory.attempt(user, cur.lessons[0][0], quiz_score=100, quiz_max_score=100)
    await factory.attempt(user, cur.lessons[0][1], quiz_score=80, quiz_max_score=100)
    await factory.quiz_attempt(user, cur.lessons[0][0], 100)
    await factory.quiz_attempt(user, cur.lessons[0][1], 80)

    stats = await BadgeEvaluator(store).gather_stats(user.id)

    assert stats.best_quiz_percentage == 100
    assert stats.average_quiz_percentage == 90
    assert stats.advanced_lessons_completed == 2
    assert stats.courses_completed == 1
    assert stats.programs_completed == 1


async def test_summary_and_categories(session, factory, store):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25, display_order=1)
    await factory.badge("ten_lessons", "lesson", {"kind": "lesson_milestone", "count": 10}, display_order=2)
    await factory.badge("week_streak", "streak", {"kind": "streak", "days": 7}, xp_bonus=100)
    await factory.badge("course_done", "course", {"kind": "complete_course"}, xp_bonus=50)
    await factory.attempt(user, cur.lessons[0][0])
    evaluator = BadgeEvaluator(store)
    await evaluator.run_cascade(user.id)
    await session.commit()

    summary = await evaluator.badge_summary(user.id)
    assert summary.earned == 2
    assert summary.total == 4
    assert summary.percent == 50
    assert summary.badge_xp == 75
    assert {r.badge.badge_key for r in summary.recent} == {"first_steps", "course_done"}

    categories = {c.category: c for c in await evaluator.badges_by_category(user.id)}
    assert set(categories) == {"lesson", "course", "streak"}
    assert categories["lesson"].earned == 1
    assert categories["lesson"].total == 2
    assert [v.badge.badge_key for v in categories["lesson"].badges] == ["first_steps", "ten_lessons"]
    assert categories["streak"].earned == 0
