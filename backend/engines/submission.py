"""Lesson Submission Pipeline

    access gate → attempt upsert → quiz history → lesson XP (once)
    → badge cascade → level update → commit

One submission is one transaction. Every write in it is idempotent (upsert,
award-once flag, insert-if-absent, atomic increments), so the whole unit is
retried on transient database errors without double-counting XP or badges.
"""
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.errors import AppError, DatabaseErrorMapper, Err, Ok, Result, not_found, out_of_range
from core.logging import gamification_logger
from core.resilience import RetryConfig, RetryPolicy, TimeoutPolicy
from engines.access import AccessVerifier, LessonAccess
from engines.badges import AwardedBadge, BadgeEvaluator
from engines.leveling import LevelChange, XpBreakdown, XpPolicy, award_xp, level_change, policy_from_settings
from engines.progress import ProgressCalculator, score_percent
from engines.store import LearningStore

log = gamification_logger()

_db_mapper = DatabaseErrorMapper("submission")


@dataclass(frozen=True, slots=True)
class LessonSubmission:
    user_id: UUID
    program_id: UUID
    course_id: UUID
    lesson_id: UUID
    passed: bool
    quiz_score: int | None = None
    quiz_max_score: int | None = None
    time_spent: int = 0
    quiz_attempted: bool = False


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    attempt_id: UUID
    lesson_id: UUID
    passed: bool
    attempts_count: int
    score_percentage: int | None
    xp: XpBreakdown | None  # None when this submission earned no lesson XP
    lesson_xp: int
    badge_xp: int
    level: LevelChange
    new_badges: list[AwardedBadge] = field(default_factory=list)
    course_progress: int = 0
    program_progress: int = 0

    @property
    def total_xp_earned(self) -> int:
        return self.lesson_xp + self.badge_xp


@dataclass(frozen=True, slots=True)
class ContentCompletion:
    lesson_id: UUID
    requires_quiz: bool
    submission: SubmissionResult | None  # set when the lesson passes on content alone


def xp_score_percent(submission: LessonSubmission) -> int:
    """Score used for the performance bonus; a pass without a scored quiz counts as 100."""
    pct = score_percent(submission.quiz_score, submission.quiz_max_score) if submission.quiz_attempted else None
    if pct is not None:
        return pct
    return 100 if submission.passed else 0


class LessonSubmissionService:
    """Applies a lesson result for a learner and reports everything it earned."""

    __slots__ = ("_db", "_store", "_access", "_badges", "_progress", "_policy", "_retry", "_timeout")

    def __init__(
        self,
        db: AsyncSession,
        policy: XpPolicy | None = None,
        retry_config: RetryConfig | None = None,
        timeout_seconds: float | None = None,
    ):
        self._db = db
        self._store = LearningStore(db)
        self._access = AccessVerifier(self._store)
        self._badges = BadgeEvaluator(self._store)
        self._progress = ProgressCalculator(self._store, self._access)
        self._policy = policy or policy_from_settings()
        self._retry = RetryPolicy(
            retry_config or RetryConfig(
                max_attempts=settings.DB_RETRY_ATTEMPTS,
                base_delay_seconds=settings.DB_RETRY_BASE_DELAY,
            ),
            operation_name="lesson_submission",
        )
        self._timeout = TimeoutPolicy(
            timeout_seconds or settings.SUBMISSION_TIMEOUT_SECONDS,
            operation_name="lesson_submission",
        )

    async def submit(self, submission: LessonSubmission) -> Result[SubmissionResult, AppError]:
        invalid = self._validate(submission)
        if invalid is not None:
            return invalid

        outcome = await self._retry.execute(
            lambda: self._timeout.execute(lambda: self._in_transaction(self._apply, submission)),
            on_retry=self._rollback,
        )
        return outcome.result

    async def complete_content(
        self,
        user_id: UUID,
        program_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        time_spent: int = 0,
    ) -> Result[ContentCompletion, AppError]:
        """Mark lesson content as read. A lesson without a quiz passes here."""
        access = await self._access.verify_lesson_access(user_id, program_id, course_id, lesson_id)
        if access.is_err():
            return access

        lesson = access.unwrap().lesson
        if lesson.quiz_id is None:
            submitted = await self.submit(LessonSubmission(
                user_id=user_id,
                program_id=program_id,
                course_id=course_id,
                lesson_id=lesson_id,
                passed=True,
                time_spent=time_spent,
            ))
            return submitted.map(lambda r: ContentCompletion(lesson_id=lesson_id, requires_quiz=False, submission=r))

        async def _mark(_: None) -> Result[ContentCompletion, AppError]:
            await self._store.mark_content_completed(user_id, lesson_id)
            return Ok(ContentCompletion(lesson_id=lesson_id, requires_quiz=True, submission=None))

        return await self._in_transaction(_mark, None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(s: LessonSubmission) -> Err[AppError] | None:
        if s.time_spent < 0:
            return out_of_range("time_spent", s.time_spent, min_val=0, origin="submission")
        if s.quiz_max_score is not None and s.quiz_max_score < 0:
            return out_of_range("quiz_max_score", s.quiz_max_score, min_val=0, origin="submission")
        if s.quiz_score is not None:
            upper = s.quiz_max_score
            if s.quiz_score < 0 or (upper is not None and s.quiz_score > upper):
                return out_of_range("quiz_score", s.quiz_score, min_val=0, max_val=upper, origin="submission")
        return None

    async def _in_transaction(self, fn, arg):
        try:
            result = await fn(arg)
        except SQLAlchemyError as e:
            await self._db.rollback()
            return Err(_db_mapper.map_exception(e))
        if result.is_err():
            await self._db.rollback()
            return result
        try:
            await self._db.commit()
        except SQLAlchemyError as e:
            await self._db.rollback()
            return Err(_db_mapper.map_exception(e))
        return result

    async def _rollback(self, attempt: int, error: AppError, delay: float) -> None:
        await self._db.rollback()

    async def _apply(self, s: LessonSubmission) -> Result[SubmissionResult, AppError]:
        store = self._store
        if await store.get_user(s.user_id) is None:
            return not_found("User", s.user_id, origin="submission")

        access = await self._access.verify_lesson_access(s.user_id, s.program_id, s.course_id, s.lesson_id)
        if access.is_err():
            return access
        gate: LessonAccess = access.unwrap()

        attempt = await store.upsert_lesson_attempt(s.user_id, s.lesson_id, {
            "passed": s.passed,
            "content_completed": True,
            "quiz_attempted": s.quiz_attempted,
            "quiz_score": s.quiz_score,
            "quiz_max_score": s.quiz_max_score,
            "time_spent": s.time_spent,
            "completed_at": datetime.utcnow() if s.passed else None,
        })
        if s.quiz_attempted:
            await store.add_quiz_attempt(
                s.user_id, s.lesson_id, gate.lesson.quiz_id,
                s.quiz_score or 0, s.quiz_max_score or 0, s.passed,
            )

        previous_level = await store.get_user_level(s.user_id)
        breakdown: XpBreakdown | None = None
        if s.passed and await store.claim_lesson_xp(attempt.id):
            breakdown = award_xp(
                self._policy.base_xp,
                gate.lesson.difficulty,
                previous_level,
                xp_score_percent(s),
                self._policy,
            )
            await store.increment_xp(s.user_id, breakdown.total_xp)
            quiz_pct = score_percent(s.quiz_score, s.quiz_max_score) if s.quiz_attempted else None
            if quiz_pct is not None:
                await store.increment_quiz_counters(s.user_id, perfect=quiz_pct == 100, excellent=quiz_pct >= 90)
            log.info(
                "lesson_xp_awarded",
                user_id=s.user_id,
                lesson_id=s.lesson_id,
                xp=breakdown.total_xp,
                formula=breakdown.formula,
            )

        cascade = await self._badges.run_cascade(s.user_id)

        total_xp = await store.get_user_xp(s.user_id)
        change = level_change(previous_level, total_xp, self._policy)
        if change.leveled_up:
            await store.raise_level(s.user_id, change.current_level)

        return Ok(SubmissionResult(
            attempt_id=attempt.id,
            lesson_id=s.lesson_id,
            passed=attempt.passed,
            attempts_count=attempt.attempts_count,
            score_percentage=xp_score_percent(s),
            xp=breakdown,
            lesson_xp=breakdown.total_xp if breakdown else 0,
            badge_xp=cascade.total_xp_awarded,
            level=change,
            new_badges=cascade.new_badges,
            course_progress=await self._progress.course_progress(s.user_id, s.course_id),
            program_progress=await self._progress.program_progress(s.user_id, s.program_id),
        ))
