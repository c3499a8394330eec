import pytest

from engines.progress import ProgressCalculator, completion_percent, score_percent
from engines.store import LearningStore


@pytest.mark.parametrize("completed,total,expected", [(0, 0, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (3, 3, 100)])
def test_completion_percent(completed, total, expected):
    assert completion_percent(completed, total) == expected


def test_score_percent():
    assert score_percent(9, 10) == 90
    assert score_percent(5, 0) is None
    assert score_percent(None, 10) is None


@pytest.mark.anyio
async def test_course_and_program_progress(session, factory):
    user = await factory.user()
    cur = await factory.curriculum((3, 2))
    await factory.enroll(user, cur.program)
    await factory.attempt(user, cur.lessons[0][0])
    await factory.attempt(user, cur.lessons[0][1], passed=False)
    await factory.attempt(user, cur.lessons[1][0])

    calc = ProgressCalculator(LearningStore(session))

    assert await calc.course_progress(user.id, cur.courses[0].id) == 33
    assert await calc.course_progress(user.id, cur.courses[1].id) == 50
    assert await calc.program_progress(user.id, cur.program.id) == 40


@pytest.mark.anyio
async def test_empty_course_has_zero_progress(session, factory):
    user = await factory.user()
    course = await factory.course()
    assert await ProgressCalculator(LearningStore(session)).course_progress(user.id, course.id) == 0


@pytest.mark.anyio
async def test_outlines_report_lock_state(session, factory):
    user = await factory.user()
    cur = await factory.curriculum((2, 1))
    await factory.enroll(user, cur.program)
    await factory.attempt(user, cur.lessons[0][0], quiz_score=8, quiz_max_score=10)

    calc = ProgressCalculator(LearningStore(session))

    courses = await calc.course_outline(user.id, cur.program.id)
    assert [c.order for c in courses] == [0, 1]
    assert [c.is_locked for c in courses] == [False, True]
    assert courses[0].completed_lessons == 1
    assert courses[0].progress == 50

    lessons = await calc.lesson_outline(user.id, cur.courses[0].id)
    assert [lesson.passed for lesson in lessons] == [True, False]
    assert [lesson.is_locked for lesson in lessons] == [False, False]
    assert lessons[0].score_percentage == 80
    assert lessons[1].score_percentage is None
