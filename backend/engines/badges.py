"""Badge Rule Evaluator

Scans the badge catalog for a scope, evaluates each unearned badge against
a UserStats snapshot and awards the ones that now hold. Every award runs
in its own savepoint together with its XP bonus, so a badge is never
recorded without its XP or the other way round. Losing a uniqueness race
to a concurrent request is a silent no-op.

The cascade runs lesson → course → program in that order. Each stage
reads state committed by the previous one, and re-running any stage is
harmless. A stage whose catalog or stats cannot be read is logged and
skipped; its reads sit in a savepoint so the enclosing transaction stays
usable for the lesson result and the remaining stages.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from core.errors import Err, Ok
from core.logging import gamification_logger
from engines.criteria import UserStats, evaluate, parse_criteria
from engines.progress import score_percent
from engines.leveling import round_half_up
from engines.store import LearningStore
from engines.streaks import StreakTracker, current_streak_from_days, longest_streak_from_days
from models.badges import BADGE_CATEGORIES, Badge

log = gamification_logger()


class BadgeScope(str, Enum):
    LESSON = "lesson"
    COURSE = "course"
    PROGRAM = "program"
    ALL = "all"


SCOPE_CATEGORIES: dict[BadgeScope, frozenset[str] | None] = {
    BadgeScope.LESSON: frozenset({"lesson", "accuracy", "difficulty", "streak"}),
    BadgeScope.COURSE: frozenset({"course"}),
    BadgeScope.PROGRAM: frozenset({"program", "special"}),
    BadgeScope.ALL: None,
}

CASCADE_ORDER: tuple[BadgeScope, ...] = (BadgeScope.LESSON, BadgeScope.COURSE, BadgeScope.PROGRAM)


@dataclass(frozen=True, slots=True)
class AwardedBadge:
    badge_id: UUID
    badge_key: str
    name: str
    description: str | None
    category: str
    tier: str | None
    icon: str | None
    xp_bonus: int

    @classmethod
    def from_model(cls, badge: Badge) -> "AwardedBadge":
        return cls(
            badge_id=badge.id,
            badge_key=badge.badge_key,
            name=badge.name,
            description=badge.description,
            category=badge.category,
            tier=badge.tier,
            icon=badge.icon,
            xp_bonus=badge.xp_bonus or 0,
        )


@dataclass(slots=True)
class BadgeCheckResult:
    scope: BadgeScope
    new_badges: list[AwardedBadge] = field(default_factory=list)
    total_xp_awarded: int = 0
    failed_badges: list[str] = field(default_factory=list)
    scope_failed: bool = False


@dataclass(slots=True)
class CascadeResult:
    stages: list[BadgeCheckResult] = field(default_factory=list)

    @property
    def new_badges(self) -> list[AwardedBadge]:
        return [b for stage in self.stages for b in stage.new_badges]

    @property
    def total_xp_awarded(self) -> int:
        return sum(stage.total_xp_awarded for stage in self.stages)


@dataclass(frozen=True, slots=True)
class BadgeView:
    badge: AwardedBadge
    family: str | None
    display_order: int
    earned: bool
    awarded_at: datetime | None


@dataclass(frozen=True, slots=True)
class BadgeCategoryView:
    category: str
    earned: int
    total: int
    badges: list[BadgeView]


@dataclass(frozen=True, slots=True)
class RecentBadge:
    badge: AwardedBadge
    awarded_at: datetime


@dataclass(frozen=True, slots=True)
class BadgeSummary:
    earned: int
    total: int
    percent: int
    badge_xp: int
    recent: list[RecentBadge]


class BadgeEvaluator:
    """Badge checks, the lesson → course → program cascade and read-side views."""

    __slots__ = ("_store", "_streaks")

    def __init__(self, store: LearningStore, streaks: StreakTracker | None = None):
        self._store = store
        self._streaks = streaks or StreakTracker(store)

    async def gather_stats(self, user_id: UUID) -> UserStats:
        store = self._store
        passed = await store.passed_lesson_ids(user_id)
        enrolled = await store.list_enrolled_program_ids(user_id)

        completed_courses: set[UUID] = set()
        programs_completed = 0
        enrolled_lessons: set[UUID] = set()
        for program_id in enrolled:
            program_lessons: set[UUID] = set()
            for link in await store.list_program_course_links(program_id):
                course_lessons = await store.list_course_lesson_ids(link.course_id)
                program_lessons.update(course_lessons)
                if course_lessons and passed.issuperset(course_lessons):
                    completed_courses.add(link.course_id)
            if program_lessons and passed.issuperset(program_lessons):
                programs_completed += 1
            enrolled_lessons |= program_lessons

        quiz_scores = [
            pct for q in await store.list_quiz_attempts(user_id)
            if (pct := score_percent(q.score, q.max_score)) is not None
        ]
        latest = await store.list_lesson_attempts(user_id, list(enrolled_lessons))
        latest_scores = [
            pct for a in latest.values()
            if a.quiz_attempted and (pct := score_percent(a.quiz_score, a.quiz_max_score)) is not None
        ]

        perfect, excellent = await store.get_quiz_counters(user_id)
        days = await self._streaks.active_days(user_id)

        return UserStats(
            lessons_completed=len(passed),
            courses_completed=len(completed_courses),
            programs_completed=programs_completed,
            enrolled_programs=len(enrolled),
            advanced_lessons_completed=await store.count_passed_with_difficulty(user_id, "Advanced"),
            perfect_quiz_count=perfect,
            excellent_quiz_count=excellent,
            best_quiz_percentage=max(quiz_scores) if quiz_scores else None,
            average_quiz_percentage=(
                round_half_up(sum(latest_scores) / len(latest_scores)) if latest_scores else None
            ),
            current_streak=current_streak_from_days(days),
            longest_streak=longest_streak_from_days(days),
        )

    async def check_and_award_badges(self, user_id: UUID, scope: BadgeScope) -> BadgeCheckResult:
        result = BadgeCheckResult(scope=scope)
        try:
            async with self._store.session.begin_nested():
                candidates, stats = await self._load_scope(user_id, scope)
        except Exception as exc:
            log.exception(
                "badge_check_failed",
                user_id=user_id,
                scope=scope.value,
                error_type=type(exc).__name__,
            )
            result.scope_failed = True
            return result

        for badge in candidates:
            match parse_criteria(badge.criteria, badge.badge_key):
                case Err(error):
                    log.warning("badge_criteria_invalid", badge_key=badge.badge_key, error=error.message)
                    result.failed_badges.append(badge.badge_key)
                    continue
                case Ok(criterion):
                    pass

            try:
                if not evaluate(criterion, stats):
                    continue
                awarded = await self._award(user_id, badge)
            except Exception as exc:
                # one broken badge must not block the rest of the scope
                log.exception(
                    "badge_check_failed",
                    user_id=user_id,
                    badge_key=badge.badge_key,
                    error_type=type(exc).__name__,
                )
                result.failed_badges.append(badge.badge_key)
                continue

            if awarded:
                result.new_badges.append(AwardedBadge.from_model(badge))
                result.total_xp_awarded += badge.xp_bonus or 0

        if result.new_badges:
            log.info(
                "badges_awarded",
                user_id=user_id,
                scope=scope.value,
                badges=[b.badge_key for b in result.new_badges],
                xp=result.total_xp_awarded,
            )
        return result

    async def _load_scope(self, user_id: UUID, scope: BadgeScope) -> tuple[list[Badge], UserStats | None]:
        earned = await self._store.earned_badge_ids(user_id)
        candidates = [
            b for b in await self._store.list_badges(SCOPE_CATEGORIES[scope])
            if b.id not in earned
        ]
        if not candidates:
            return [], None
        return candidates, await self.gather_stats(user_id)

    async def _award(self, user_id: UUID, badge: Badge) -> bool:
        async with self._store.session.begin_nested():
            created = await self._store.insert_user_badge_if_absent(user_id, badge.id)
            if created and badge.xp_bonus:
                await self._store.increment_xp(user_id, badge.xp_bonus)
        return created

    async def run_cascade(
        self, user_id: UUID, scopes: tuple[BadgeScope, ...] = CASCADE_ORDER
    ) -> CascadeResult:
        cascade = CascadeResult()
        for scope in scopes:
            cascade.stages.append(await self.check_and_award_badges(user_id, scope))
        return cascade

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def badge_summary(self, user_id: UUID, recent_limit: int = 5) -> BadgeSummary:
        total = len(await self._store.list_badges())
        awards = await self._store.list_user_badges(user_id)
        earned = len(awards)
        return BadgeSummary(
            earned=earned,
            total=total,
            percent=round_half_up(100 * earned / total) if total else 0,
            badge_xp=sum(a.badge.xp_bonus or 0 for a in awards),
            recent=[RecentBadge(AwardedBadge.from_model(a.badge), a.awarded_at) for a in awards[:recent_limit]],
        )

    async def badges_by_category(self, user_id: UUID) -> list[BadgeCategoryView]:
        awarded_at = {a.badge_id: a.awarded_at for a in await self._store.list_user_badges(user_id)}
        grouped: dict[str, list[BadgeView]] = {c: [] for c in BADGE_CATEGORIES}
        for badge in await self._store.list_badges():
            grouped.setdefault(badge.category, []).append(BadgeView(
                badge=AwardedBadge.from_model(badge),
                family=badge.family,
                display_order=badge.display_order,
                earned=badge.id in awarded_at,
                awarded_at=awarded_at.get(badge.id),
            ))
        return [
            BadgeCategoryView(
                category=category,
                earned=sum(1 for v in views if v.earned),
                total=len(views),
                badges=views,
            )
            for category, views in grouped.items()
            if views
        ]
