"""End-to-end lesson submission: access gate, XP once, cascade, level-up."""
import pytest
from sqlalchemy import text

from core.errors import AppError, Err, ErrorCode, Ok
from core.resilience import RetryConfig, BackoffStrategy
from engines.store import LearningStore
from engines.streaks import StreakTracker
from engines.submission import LessonSubmission, LessonSubmissionService, xp_score_percent

pytestmark = pytest.mark.anyio


def submission(user, cur, course=0, lesson=0, **kwargs) -> LessonSubmission:
    kwargs.setdefault("passed", True)
    return LessonSubmission(
        user_id=user.id,
        program_id=cur.program.id,
        course_id=cur.courses[course].id,
        lesson_id=cur.lessons[course][lesson].id,
        **kwargs,
    )


@pytest.fixture
async def enrolled(factory):
    user = await factory.user()
    cur = await factory.curriculum((2,), difficulty="Advanced")
    await factory.enroll(user, cur.program)
    return user, cur


async def test_first_pass_awards_lesson_xp(session, enrolled):
    user, cur = enrolled
    service = LessonSubmissionService(session)

    result = (await service.submit(submission(
        user, cur, quiz_attempted=True, quiz_score=92, quiz_max_score=100
    ))).unwrap()

    assert result.passed
    assert result.attempts_count == 1
    assert result.score_percentage == 92
    assert result.xp.formula == "(100 × 2.0 × 1.0) + 25 = 225"
    assert result.lesson_xp == 225
    assert result.badge_xp == 0
    assert result.course_progress == 50
    assert result.program_progress == 50
    assert await LearningStore(session).get_user_xp(user.id) == 225


async def test_retake_earns_no_lesson_xp(session, enrolled):
    user, cur = enrolled
    service = LessonSubmissionService(session)
    await service.submit(submission(user, cur, quiz_attempted=True, quiz_score=8, quiz_max_score=10))

    again = (await service.submit(submission(user, cur, quiz_attempted=True, quiz_score=10, quiz_max_score=10))).unwrap()

    assert again.attempts_count == 2
    assert again.lesson_xp == 0
    assert again.xp is None
    assert again.score_percentage == 100
    store = LearningStore(session)
    assert await store.get_user_xp(user.id) == 210
    # counters only move with the rewarded pass
    assert await store.get_quiz_counters(user.id) == (0, 0)
    assert len(await store.list_quiz_attempts(user.id)) == 2


async def test_fail_then_pass(session, enrolled):
    user, cur = enrolled
    service = LessonSubmissionService(session)
    store = LearningStore(session)

    failed = (await service.submit(submission(
        user, cur, passed=False, quiz_attempted=True, quiz_score=4, quiz_max_score=10
    ))).unwrap()
    assert failed.lesson_xp == 0
    assert (await store.get_lesson_attempt(user.id, cur.lessons[0][0].id)).completed_at is None

    passed = (await service.submit(submission(
        user, cur, quiz_attempted=True, quiz_score=10, quiz_max_score=10
    ))).unwrap()
    assert passed.attempts_count == 2
    assert passed.lesson_xp == 250
    assert await store.get_quiz_counters(user.id) == (1, 1)


async def test_locked_lesson_is_rejected_without_writes(session, enrolled):
    user, cur = enrolled
    user_id = user.id
    lesson_id = cur.lessons[0][1].id
    result = await LessonSubmissionService(session).submit(submission(user, cur, lesson=1))

    assert result.unwrap_err().code == ErrorCode.E3032_CONTENT_LOCKED
    store = LearningStore(session)
    assert await store.get_lesson_attempt(user_id, lesson_id) is None
    assert await store.get_user_xp(user_id) == 0


async def test_unenrolled_learner_is_rejected(session, factory):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    result = await LessonSubmissionService(session).submit(submission(user, cur))
    assert result.unwrap_err().code == ErrorCode.E3030_NOT_ENROLLED


async def test_unknown_learner(session, enrolled, factory):
    _, cur = enrolled
    ghost = await factory.user()
    await session.delete(ghost)
    await session.commit()

    result = await LessonSubmissionService(session).submit(submission(ghost, cur))
    assert result.unwrap_err().code == ErrorCode.E4010_NOT_FOUND


async def test_score_above_max_is_invalid(session, enrolled):
    user, cur = enrolled
    result = await LessonSubmissionService(session).submit(submission(
        user, cur, quiz_attempted=True, quiz_score=11, quiz_max_score=10
    ))
    assert result.unwrap_err().code == ErrorCode.E2003_OUT_OF_RANGE


async def test_cascade_xp_adds_to_lesson_xp(session, factory):
    user = await factory.user()
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)
    await factory.badge("course_done", "course", {"kind": "complete_course"}, xp_bonus=50)
    await factory.badge("program_done", "program", {"kind": "complete_program"}, xp_bonus=150)

    result = (await LessonSubmissionService(session).submit(submission(
        user, cur, quiz_attempted=True, quiz_score=7, quiz_max_score=10
    ))).unwrap()

    assert result.lesson_xp == 100
    assert result.badge_xp == 225
    assert result.total_xp_earned == 325
    assert [b.badge_key for b in result.new_badges] == ["first_steps", "course_done", "program_done"]
    assert await LearningStore(session).get_user_xp(user.id) == 325
    assert result.program_progress == 100

async def test_lesson_result_commits_when_badge_stats_fail(session, enrolled, factory, monkeypatch):
    user, cur = enrolled
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)

    async def broken_days(self, user_id):
        raise RuntimeError("streak store unavailable")

    monkeypatch.setattr(StreakTracker, "active_days", broken_days)

    result = await LessonSubmissionService(session).submit(submission(user, cur))

    assert isinstance(result, Ok)
    submitted = result.unwrap()
    assert submitted.lesson_xp > 0
    assert submitted.new_badges == []
    store = LearningStore(session)
    assert (await store.get_lesson_attempt(user.id, cur.lessons[0][0].id)).passed is True
    assert await store.get_user_xp(user.id) == submitted.lesson_xp
    assert len(await store.list_user_badges(user.id)) == 0


async def test_lesson_result_commits_when_badge_query_fails(session, enrolled, factory, monkeypatch):
    user, cur = enrolled
    await factory.badge("first_steps", "lesson", {"kind": "first_lesson"}, xp_bonus=25)

    async def bad_query(self, user_id, difficulty):
        await self.session.execute(text("SELECT count(*) FROM no_such_table"))

    monkeypatch.setattr(LearningStore, "count_passed_with_difficulty", bad_query)

    result = await LessonSubmissionService(session).submit(submission(user, cur))

    submitted = result.unwrap()
    store = LearningStore(session)
    assert (await store.get_lesson_attempt(user.id, cur.lessons[0][0].id)).passed is True
    assert await store.get_user_xp(user.id) == submitted.lesson_xp



async def test_level_up_is_persisted(session, factory):
    user = await factory.user(xp=950)
    cur = await factory.curriculum((1,))
    await factory.enroll(user, cur.program)

    result = (await LessonSubmissionService(session).submit(submission(user, cur))).unwrap()

    assert result.lesson_xp == 150  # no quiz scored counts as perfect
    assert result.level.previous_level == 1
    assert result.level.current_level == 2
    assert result.level.leveled_up
    assert await LearningStore(session).get_user_level(user.id) == 2


async def test_content_completion_without_quiz_passes(session, factory):
    user = await factory.user()
    cur = await factory.curriculum((1,), quiz=False)
    await factory.enroll(user, cur.program)
    service = LessonSubmissionService(session)

    completion = (await service.complete_content(
        user.id, cur.program.id, cur.courses[0].id, cur.lessons[0][0].id, time_spent=120
    )).unwrap()

    assert not completion.requires_quiz
    assert completion.submission.passed
    assert completion.submission.lesson_xp == 150


async def test_content_completion_with_quiz_waits_for_quiz(session, enrolled):
    user, cur = enrolled
    completion = (await LessonSubmissionService(session).complete_content(
        user.id, cur.program.id, cur.courses[0].id, cur.lessons[0][0].id
    )).unwrap()

    assert completion.requires_quiz
    assert completion.submission is None
    attempt = await LearningStore(session).get_lesson_attempt(user.id, cur.lessons[0][0].id)
    assert attempt.content_completed
    assert not attempt.passed


async def test_transient_failure_is_retried(session, enrolled, monkeypatch):
    user, cur = enrolled
    service = LessonSubmissionService(
        session,
        retry_config=RetryConfig(max_attempts=3, base_delay_seconds=0, strategy=BackoffStrategy.CONSTANT),
    )
    real_apply = LessonSubmissionService._apply
    calls = []

    async def flaky_apply(self, s):
        calls.append(s)
        if len(calls) == 1:
            return Err(AppError(code=ErrorCode.E4004_DEADLOCK, message="database is locked"))
        return await real_apply(self, s)

    monkeypatch.setattr(LessonSubmissionService, "_apply", flaky_apply)
    result = await service.submit(submission(user, cur))

    assert len(calls) == 2
    assert isinstance(result, Ok)
    assert await LearningStore(session).get_user_xp(user.id) == 250


def test_xp_score_percent():
    base = dict(user_id=None, program_id=None, course_id=None, lesson_id=None)
    assert xp_score_percent(LessonSubmission(**base, passed=True)) == 100
    assert xp_score_percent(LessonSubmission(**base, passed=False)) == 0
    assert xp_score_percent(LessonSubmission(
        **base, passed=True, quiz_attempted=True, quiz_score=9, quiz_max_score=10
    )) == 90
