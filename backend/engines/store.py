"""Learning Store

Data-level operations over the progression tables. Reads are plain
selects; every write is safe to replay:

- LessonAttempt: upsert keyed by (user, lesson), last write wins
- User.xp: applied as `xp = xp + delta` in SQL, never from a stale copy
- User.level: raised with `WHERE level < new`, never lowered
- UserBadge: insert-if-absent inside a savepoint, unique violation is a no-op
- lesson XP: claimed once by flipping `xp_awarded` false → true
"""
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging import db_logger
from models.users import User, ProgramAssignment
from models.content import Program, Course, Lesson, ProgramCourse, CourseLesson
from models.attempts import LessonAttempt, QuizAttempt
from models.badges import Badge, UserBadge

log = db_logger()


class LearningStore:
    """Session-bound access to learners, content, attempts and badges."""

    __slots__ = ("_db",)

    def __init__(self, db: AsyncSession):
        self._db = db

    @property
    def session(self) -> AsyncSession:
        return self._db

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User | None:
        return await self._db.get(User, user_id)

    async def get_user_xp(self, user_id: UUID) -> int:
        result = await self._db.execute(select(User.xp).where(User.id == user_id))
        return result.scalar_one_or_none() or 0

    async def get_user_level(self, user_id: UUID) -> int:
        result = await self._db.execute(select(User.level).where(User.id == user_id))
        return result.scalar_one_or_none() or 1

    async def get_program(self, program_id: UUID) -> Program | None:
        return await self._db.get(Program, program_id)

    async def get_course(self, course_id: UUID) -> Course | None:
        return await self._db.get(Course, course_id)

    async def get_lesson(self, lesson_id: UUID) -> Lesson | None:
        return await self._db.get(Lesson, lesson_id)

    # ------------------------------------------------------------------
    # Enrollment and hierarchy
    # ------------------------------------------------------------------

    async def get_active_enrollment(self, user_id: UUID, program_id: UUID) -> ProgramAssignment | None:
        result = await self._db.execute(
            select(ProgramAssignment).where(
                ProgramAssignment.user_id == user_id,
                ProgramAssignment.program_id == program_id,
                ProgramAssignment.is_active.is_(True),
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def list_enrolled_program_ids(self, user_id: UUID) -> list[UUID]:
        result = await self._db.execute(
            select(ProgramAssignment.program_id)
            .where(ProgramAssignment.user_id == user_id, ProgramAssignment.is_active.is_(True))
            .distinct()
        )
        return list(result.scalars().all())

    async def get_course_lesson(self, course_id: UUID, lesson_id: UUID) -> CourseLesson | None:
        result = await self._db.execute(
            select(CourseLesson).where(CourseLesson.course_id == course_id, CourseLesson.lesson_id == lesson_id)
        )
        return result.scalar_one_or_none()

    async def get_course_lesson_at(self, course_id: UUID, order: int) -> CourseLesson | None:
        result = await self._db.execute(
            select(CourseLesson).where(CourseLesson.course_id == course_id, CourseLesson.order == order)
        )
        return result.scalar_one_or_none()

    async def get_program_course(self, program_id: UUID, course_id: UUID) -> ProgramCourse | None:
        result = await self._db.execute(
            select(ProgramCourse).where(ProgramCourse.program_id == program_id, ProgramCourse.course_id == course_id)
        )
        return result.scalar_one_or_none()

    async def get_program_course_at(self, program_id: UUID, order: int) -> ProgramCourse | None:
        result = await self._db.execute(
            select(ProgramCourse).where(ProgramCourse.program_id == program_id, ProgramCourse.order == order)
        )
        return result.scalar_one_or_none()

    async def list_course_lessons(self, course_id: UUID) -> list[CourseLesson]:
        result = await self._db.execute(
            select(CourseLesson).where(CourseLesson.course_id == course_id).order_by(CourseLesson.order)
        )
        return list(result.scalars().all())

    async def list_course_lesson_ids(self, course_id: UUID) -> list[UUID]:
        return [link.lesson_id for link in await self.list_course_lessons(course_id)]

    async def list_program_course_links(self, program_id: UUID) -> list[ProgramCourse]:
        result = await self._db.execute(
            select(ProgramCourse).where(ProgramCourse.program_id == program_id).order_by(ProgramCourse.order)
        )
        return list(result.scalars().all())

    async def list_program_lesson_ids(self, program_id: UUID) -> list[UUID]:
        """Distinct lessons across every course of the program."""
        result = await self._db.execute(
            select(CourseLesson.lesson_id)
            .join(ProgramCourse, ProgramCourse.course_id == CourseLesson.course_id)
            .where(ProgramCourse.program_id == program_id)
            .distinct()
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    async def get_lesson_attempt(self, user_id: UUID, lesson_id: UUID) -> LessonAttempt | None:
        result = await self._db.execute(
            select(LessonAttempt).where(LessonAttempt.user_id == user_id, LessonAttempt.lesson_id == lesson_id)
        )
        return result.scalar_one_or_none()

    async def list_lesson_attempts(self, user_id: UUID, lesson_ids: list[UUID]) -> dict[UUID, LessonAttempt]:
        if not lesson_ids:
            return {}
        result = await self._db.execute(
            select(LessonAttempt).where(LessonAttempt.user_id == user_id, LessonAttempt.lesson_id.in_(lesson_ids))
        )
        return {a.lesson_id: a for a in result.scalars().all()}

    async def passed_lesson_ids(self, user_id: UUID, lesson_ids: list[UUID] | None = None) -> set[UUID]:
        query = select(LessonAttempt.lesson_id).where(
            LessonAttempt.user_id == user_id, LessonAttempt.passed.is_(True)
        )
        if lesson_ids is not None:
            if not lesson_ids:
                return set()
            query = query.where(LessonAttempt.lesson_id.in_(lesson_ids))
        result = await self._db.execute(query)
        return set(result.scalars().all())

    async def count_passed(self, user_id: UUID, lesson_ids: list[UUID] | None = None) -> int:
        return len(await self.passed_lesson_ids(user_id, lesson_ids))

    async def count_passed_with_difficulty(self, user_id: UUID, difficulty: str) -> int:
        result = await self._db.execute(
            select(func.count(LessonAttempt.id))
            .join(Lesson, Lesson.id == LessonAttempt.lesson_id)
            .where(
                LessonAttempt.user_id == user_id,
                LessonAttempt.passed.is_(True),
                func.lower(Lesson.difficulty) == difficulty.lower(),
            )
        )
        return result.scalar_one()

    async def list_passed_completion_times(self, user_id: UUID) -> list[datetime]:
        """Completion timestamps of passing attempts, newest first."""
        result = await self._db.execute(
            select(LessonAttempt.completed_at)
            .where(
                LessonAttempt.user_id == user_id,
                LessonAttempt.passed.is_(True),
                LessonAttempt.completed_at.is_not(None),
            )
            .order_by(LessonAttempt.completed_at.desc())
        )
        return list(result.scalars().all())

    async def list_quiz_attempts(self, user_id: UUID, lesson_ids: list[UUID] | None = None) -> list[QuizAttempt]:
        query = select(QuizAttempt).where(QuizAttempt.user_id == user_id)
        if lesson_ids is not None:
            if not lesson_ids:
                return []
            query = query.where(QuizAttempt.lesson_id.in_(lesson_ids))
        result = await self._db.execute(query.order_by(QuizAttempt.submitted_at.desc()))
        return list(result.scalars().all())

    async def upsert_lesson_attempt(self, user_id: UUID, lesson_id: UUID, values: dict) -> LessonAttempt:
        """Create the (user, lesson) attempt or overwrite it with `values`.

        A concurrent insert that wins the unique constraint turns this call
        into an update of the winner's row.
        """
        attempt = await self.get_lesson_attempt(user_id, lesson_id)
        if attempt is None:
            try:
                async with self._db.begin_nested():
                    attempt = LessonAttempt(user_id=user_id, lesson_id=lesson_id, attempts_count=1, **values)
                    self._db.add(attempt)
                log.debug("lesson_attempt_created", user_id=user_id, lesson_id=lesson_id)
                return attempt
            except IntegrityError:
                log.info("lesson_attempt_insert_race", user_id=user_id, lesson_id=lesson_id)

        await self._db.execute(
            update(LessonAttempt)
            .where(LessonAttempt.user_id == user_id, LessonAttempt.lesson_id == lesson_id)
            .values(**values, attempts_count=LessonAttempt.attempts_count + 1, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        attempt = await self._reload_attempt(user_id, lesson_id)
        log.debug("lesson_attempt_updated", user_id=user_id, lesson_id=lesson_id, attempts=attempt.attempts_count)
        return attempt

    async def _reload_attempt(self, user_id: UUID, lesson_id: UUID) -> LessonAttempt:
        result = await self._db.execute(
            select(LessonAttempt)
            .where(LessonAttempt.user_id == user_id, LessonAttempt.lesson_id == lesson_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def mark_content_completed(self, user_id: UUID, lesson_id: UUID) -> LessonAttempt:
        """Flag content as read without touching pass state."""
        attempt = await self.get_lesson_attempt(user_id, lesson_id)
        if attempt is None:
            return await self.upsert_lesson_attempt(user_id, lesson_id, {"content_completed": True})
        await self._db.execute(
            update(LessonAttempt)
            .where(LessonAttempt.id == attempt.id)
            .values(content_completed=True, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return await self._reload_attempt(user_id, lesson_id)

    async def add_quiz_attempt(
        self,
        user_id: UUID,
        lesson_id: UUID,
        quiz_id: UUID | None,
        score: int,
        max_score: int,
        passed: bool,
    ) -> QuizAttempt:
        attempt = QuizAttempt(
            user_id=user_id,
            lesson_id=lesson_id,
            quiz_id=quiz_id,
            score=score,
            max_score=max_score,
            passed=passed,
            submitted_at=datetime.utcnow(),
        )
        self._db.add(attempt)
        await self._db.flush()
        return attempt

    async def claim_lesson_xp(self, attempt_id: UUID) -> bool:
        """True for exactly one caller per attempt: the one that flips xp_awarded."""
        result = await self._db.execute(
            update(LessonAttempt)
            .where(LessonAttempt.id == attempt_id, LessonAttempt.xp_awarded.is_(False))
            .values(xp_awarded=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    async def increment_xp(self, user_id: UUID, delta: int) -> int:
        """Add `delta` to the stored xp and return the new total."""
        if delta > 0:
            await self._db.execute(
                update(User)
                .where(User.id == user_id)
                .values(xp=User.xp + delta, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
        return await self.get_user_xp(user_id)

    async def increment_quiz_counters(self, user_id: UUID, *, perfect: bool, excellent: bool) -> None:
        values = {}
        if perfect:
            values["perfect_quiz_count"] = User.perfect_quiz_count + 1
        if excellent:
            values["excellent_quiz_count"] = User.excellent_quiz_count + 1
        if not values:
            return
        await self._db.execute(
            update(User).where(User.id == user_id).values(**values).execution_options(synchronize_session=False)
        )

    async def get_quiz_counters(self, user_id: UUID) -> tuple[int, int]:
        result = await self._db.execute(
            select(User.perfect_quiz_count, User.excellent_quiz_count).where(User.id == user_id)
        )
        row = result.one_or_none()
        return (row[0] or 0, row[1] or 0) if row else (0, 0)

    async def raise_level(self, user_id: UUID, new_level: int) -> bool:
        """Persist `new_level` only if it is higher than the stored one."""
        result = await self._db.execute(
            update(User)
            .where(User.id == user_id, User.level < new_level)
            .values(level=new_level, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Badges
    # ------------------------------------------------------------------

    async def list_badges(self, categories: frozenset[str] | None = None) -> list[Badge]:
        query = select(Badge)
        if categories is not None:
            query = query.where(Badge.category.in_(sorted(categories)))
        result = await self._db.execute(query.order_by(Badge.category, Badge.display_order, Badge.badge_key))
        return list(result.scalars().all())

    async def earned_badge_ids(self, user_id: UUID) -> set[UUID]:
        result = await self._db.execute(select(UserBadge.badge_id).where(UserBadge.user_id == user_id))
        return set(result.scalars().all())

    async def list_user_badges(self, user_id: UUID) -> list[UserBadge]:
        result = await self._db.execute(
            select(UserBadge).where(UserBadge.user_id == user_id).order_by(UserBadge.awarded_at.desc())
        )
        return list(result.unique().scalars().all())

    async def insert_user_badge_if_absent(self, user_id: UUID, badge_id: UUID) -> bool:
        """True if this call created the award, False if it already existed."""
        try:
            async with self._db.begin_nested():
                self._db.add(UserBadge(user_id=user_id, badge_id=badge_id, awarded_at=datetime.utcnow()))
            return True
        except IntegrityError:
            log.debug("user_badge_exists", user_id=user_id, badge_id=badge_id)
            return False
