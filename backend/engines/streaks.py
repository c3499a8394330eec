"""Streak Tracker

Day-based learning streaks from passing lesson completions. Timestamps are
stored as naive UTC and bucketed into calendar days in the configured zone,
so two completions late on the same local evening count as one day.

The current streak walks back from the most recent active day; it is not
anchored to today.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable
from uuid import UUID
from zoneinfo import ZoneInfo

from core.config import settings
from core.logging import engine_logger
from engines.store import LearningStore

log = engine_logger()


@dataclass(frozen=True, slots=True)
class DayActivity:
    day: date
    active: bool


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_local_day(moment: datetime, tz: tzinfo) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def current_streak_from_days(days: Iterable[date]) -> int:
    """Consecutive days ending at the most recent active day.

    >>> d = date(2024, 3, 10)
    >>> current_streak_from_days([d, d, d - timedelta(1), d - timedelta(2), d - timedelta(5)])
    3
    """
    ordered = sorted(set(days), reverse=True)
    if not ordered:
        return 0

    streak = 1
    for newer, older in zip(ordered, ordered[1:]):
        if (newer - older).days == 1:
            streak += 1
        else:
            break
    return streak


def longest_streak_from_days(days: Iterable[date]) -> int:
    ordered = sorted(set(days))
    if not ordered:
        return 0

    longest = run = 1
    for older, newer in zip(ordered, ordered[1:]):
        run = run + 1 if (newer - older).days == 1 else 1
        longest = max(longest, run)
    return longest


def activity_window(active_days: set[date], today: date, days: int = 7) -> list[DayActivity]:
    """One entry per calendar day, oldest first, ending at `today`."""
    start = today - timedelta(days=days - 1)
    return [
        DayActivity(day=start + timedelta(days=i), active=(start + timedelta(days=i)) in active_days)
        for i in range(days)
    ]


class StreakTracker:
    """Reads completion history and derives streak figures on every call."""

    __slots__ = ("_store", "_tz")

    def __init__(self, store: LearningStore, tz_name: str | None = None):
        self._store = store
        self._tz = resolve_timezone(tz_name or settings.STREAK_TIMEZONE)

    async def active_days(self, user_id: UUID) -> list[date]:
        moments = await self._store.list_passed_completion_times(user_id)
        return [to_local_day(m, self._tz) for m in moments]

    async def current_streak(self, user_id: UUID) -> int:
        streak = current_streak_from_days(await self.active_days(user_id))
        log.debug("streak_computed", user_id=user_id, current=streak)
        return streak

    async def longest_streak(self, user_id: UUID) -> int:
        return longest_streak_from_days(await self.active_days(user_id))

    async def daily_activity(self, user_id: UUID, days: int = 7, today: date | None = None) -> list[DayActivity]:
        today = today or to_local_day(datetime.utcnow(), self._tz)
        return activity_window(set(await self.active_days(user_id)), today, days)
