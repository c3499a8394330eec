from datetime import date, datetime, timedelta, timezone

import pytest

from engines.store import LearningStore
from engines.streaks import (
    StreakTracker,
    activity_window,
    current_streak_from_days,
    longest_streak_from_days,
    to_local_day,
)

D = date(2024, 3, 10)


def days_back(*offsets):
    return [D - timedelta(days=n) for n in offsets]


def test_current_streak_counts_back_from_latest_day():
    assert current_streak_from_days(days_back(0, 0, 1, 2, 5)) == 3


def test_current_streak_not_anchored_to_today():
    # latest activity long ago still reports its run
    assert current_streak_from_days(days_back(30, 31)) == 2


def test_empty_history():
    assert current_streak_from_days([]) == 0
    assert longest_streak_from_days([]) == 0


def test_longest_streak():
    assert longest_streak_from_days(days_back(0, 5, 6, 7, 8, 10, 11)) == 4


def test_activity_window_is_oldest_first():
    window = activity_window(set(days_back(0, 2)), D, days=3)
    assert [w.day for w in window] == days_back(2, 1, 0)
    assert [w.active for w in window] == [True, False, True]


def test_local_day_uses_configured_zone():
    late_utc = datetime(2024, 3, 10, 23, 30)
    assert to_local_day(late_utc, timezone.utc) == date(2024, 3, 10)
    assert to_local_day(late_utc, timezone(timedelta(hours=9))) == date(2024, 3, 11)


@pytest.mark.anyio
async def test_tracker_reads_passed_completions(session, factory):
    user = await factory.user()
    cur = await factory.curriculum((5,))
    base = datetime(2024, 3, 10, 12, 0)
    for lesson, offset in zip(cur.lessons[0][:4], (0, 1, 2, 5)):
        await factory.attempt(user, lesson, completed_at=base - timedelta(days=offset))
    await factory.attempt(user, cur.lessons[0][4], passed=False)

    tracker = StreakTracker(LearningStore(session), tz_name="UTC")

    assert await tracker.current_streak(user.id) == 3
    assert await tracker.longest_streak(user.id) == 3
    week = await tracker.daily_activity(user.id, days=7, today=date(2024, 3, 10))
    assert sum(d.active for d in week) == 4
