"""Access Verifier

Decides whether a learner may open a lesson or a course. Checks run in a
fixed order and the first failure wins:

    1. enrollment   active assignment to the program       NOT_ENROLLED
    2. membership   lesson ∈ course and course ∈ program   NOT_IN_HIERARCHY
    3. unlock       sequential ordering rule               LOCKED

Lesson k unlocks when lesson k-1 of the same course is passed. Course k
unlocks only when every lesson of course k-1 is passed (an empty course
counts as complete). A missing predecessor, i.e. a gap in the ordering,
keeps the item locked. Lesson access does not consult the course rule.
A missing program yields NOT_FOUND ahead of the enrollment check; a
missing course or lesson yields NOT_FOUND ahead of the membership check.
"""
from dataclasses import dataclass
from uuid import UUID

from core.errors import (
    AppError,
    Err,
    Ok,
    Result,
    content_locked,
    map_db_errors,
    not_enrolled,
    not_found,
    not_in_hierarchy,
)
from core.logging import access_logger
from engines.store import LearningStore
from models.content import Course, Lesson, Program

log = access_logger()


@dataclass(frozen=True, slots=True)
class AccessDecision:
    ok: bool
    reason: str | None = None  # NOT_ENROLLED, NOT_IN_HIERARCHY, LOCKED, NOT_FOUND


@dataclass(frozen=True, slots=True)
class LessonAccess:
    program: Program
    course: Course
    lesson: Lesson
    order: int


@dataclass(frozen=True, slots=True)
class CourseAccess:
    program: Program
    course: Course
    order: int


def _decision(result: Result) -> AccessDecision:
    match result:
        case Ok(_):
            return AccessDecision(ok=True)
        case Err(error):
            return AccessDecision(ok=False, reason=error.metadata.get("reason", error.code.name))


class AccessVerifier:
    """Enrollment, hierarchy and unlock checks over the learning store."""

    __slots__ = ("_store",)

    def __init__(self, store: LearningStore):
        self._store = store

    # ------------------------------------------------------------------
    # Unlock rules
    # ------------------------------------------------------------------

    async def lesson_unlocked(self, user_id: UUID, course_id: UUID, order: int) -> bool:
        if order == 0:
            return True
        previous = await self._store.get_course_lesson_at(course_id, order - 1)
        if previous is None:
            return False
        attempt = await self._store.get_lesson_attempt(user_id, previous.lesson_id)
        return bool(attempt and attempt.passed)

    async def course_unlocked(self, user_id: UUID, program_id: UUID, order: int) -> bool:
        if order == 0:
            return True
        previous = await self._store.get_program_course_at(program_id, order - 1)
        if previous is None:
            return False
        lesson_ids = await self._store.list_course_lesson_ids(previous.course_id)
        if not lesson_ids:
            return True
        return await self._store.count_passed(user_id, lesson_ids) == len(lesson_ids)

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    @map_db_errors("access.enrollment")
    async def verify_enrollment(self, user_id: UUID, program_id: UUID) -> Result[Program, AppError]:
        program = await self._store.get_program(program_id)
        if program is None:
            return not_found("Program", program_id, origin="access")
        if await self._store.get_active_enrollment(user_id, program_id) is None:
            return not_enrolled(user_id, program_id, origin="access")
        return Ok(program)

    @map_db_errors("access.lesson")
    async def verify_lesson_access(
        self,
        user_id: UUID,
        program_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
    ) -> Result[LessonAccess, AppError]:
        program = await self.verify_enrollment(user_id, program_id)
        if program.is_err():
            return self._denied(program, user_id=user_id, lesson_id=lesson_id)

        course = await self._store.get_course(course_id)
        if course is None:
            return not_found("Course", course_id, origin="access")
        lesson = await self._store.get_lesson(lesson_id)
        if lesson is None:
            return not_found("Lesson", lesson_id, origin="access")

        if await self._store.get_program_course(program_id, course_id) is None:
            return self._denied(
                not_in_hierarchy("Course", "program", origin="access", course_id=course_id, program_id=program_id),
                user_id=user_id, lesson_id=lesson_id,
            )
        link = await self._store.get_course_lesson(course_id, lesson_id)
        if link is None:
            return self._denied(
                not_in_hierarchy("Lesson", "course", origin="access", lesson_id=lesson_id, course_id=course_id),
                user_id=user_id, lesson_id=lesson_id,
            )

        if not await self.lesson_unlocked(user_id, course_id, link.order):
            return self._denied(
                content_locked("Lesson", link.order, origin="access", lesson_id=lesson_id, course_id=course_id),
                user_id=user_id, lesson_id=lesson_id,
            )

        return Ok(LessonAccess(program=program.unwrap(), course=course, lesson=lesson, order=link.order))

    @map_db_errors("access.course")
    async def verify_course_access(
        self,
        user_id: UUID,
        program_id: UUID,
        course_id: UUID,
    ) -> Result[CourseAccess, AppError]:
        program = await self.verify_enrollment(user_id, program_id)
        if program.is_err():
            return self._denied(program, user_id=user_id, course_id=course_id)

        course = await self._store.get_course(course_id)
        if course is None:
            return not_found("Course", course_id, origin="access")

        link = await self._store.get_program_course(program_id, course_id)
        if link is None:
            return self._denied(
                not_in_hierarchy("Course", "program", origin="access", course_id=course_id, program_id=program_id),
                user_id=user_id, course_id=course_id,
            )

        if not await self.course_unlocked(user_id, program_id, link.order):
            return self._denied(
                content_locked("Course", link.order, origin="access", course_id=course_id, program_id=program_id),
                user_id=user_id, course_id=course_id,
            )

        return Ok(CourseAccess(program=program.unwrap(), course=course, order=link.order))

    async def can_access_lesson(
        self, user_id: UUID, program_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> AccessDecision:
        return _decision(await self.verify_lesson_access(user_id, program_id, course_id, lesson_id))

    async def can_access_course(self, user_id: UUID, program_id: UUID, course_id: UUID) -> AccessDecision:
        return _decision(await self.verify_course_access(user_id, program_id, course_id))

    @staticmethod
    def _denied(result: Err[AppError], **fields) -> Err[AppError]:
        error = result.unwrap_err()
        log.info("access_denied", reason=error.metadata.get("reason"), code=error.code.name, **fields)
        return result
