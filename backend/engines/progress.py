"""Progress Calculator

Completion percentage = round(100 × passed / total), 0 when there is
nothing to complete. Counting only passed attempts makes the figure
independent of the order lessons were finished in.
"""
from dataclasses import dataclass
from uuid import UUID

from core.logging import engine_logger
from engines.access import AccessVerifier
from engines.leveling import round_half_up
from engines.store import LearningStore

log = engine_logger()


def completion_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return max(0, min(100, round_half_up(100 * completed / total)))


def score_percent(score: int | None, max_score: int | None) -> int | None:
    if score is None or not max_score:
        return None
    return max(0, min(100, round_half_up(100 * score / max_score)))


@dataclass(frozen=True, slots=True)
class CourseStatus:
    course_id: UUID
    title: str
    difficulty: str
    order: int
    total_lessons: int
    completed_lessons: int
    progress: int
    is_locked: bool


@dataclass(frozen=True, slots=True)
class LessonStatus:
    lesson_id: UUID
    title: str
    difficulty: str
    order: int
    has_quiz: bool
    passed: bool
    content_completed: bool
    score_percentage: int | None
    is_locked: bool


class ProgressCalculator:
    __slots__ = ("_store", "_access")

    def __init__(self, store: LearningStore, access: AccessVerifier | None = None):
        self._store = store
        self._access = access or AccessVerifier(store)

    async def course_progress(self, user_id: UUID, course_id: UUID) -> int:
        lesson_ids = await self._store.list_course_lesson_ids(course_id)
        completed = await self._store.count_passed(user_id, lesson_ids)
        return completion_percent(completed, len(lesson_ids))

    async def program_progress(self, user_id: UUID, program_id: UUID) -> int:
        lesson_ids = await self._store.list_program_lesson_ids(program_id)
        completed = await self._store.count_passed(user_id, lesson_ids)
        return completion_percent(completed, len(lesson_ids))

    async def course_outline(self, user_id: UUID, program_id: UUID) -> list[CourseStatus]:
        """Courses of a program in order, with progress and lock state."""
        outline = []
        for link in await self._store.list_program_course_links(program_id):
            course = await self._store.get_course(link.course_id)
            lesson_ids = await self._store.list_course_lesson_ids(link.course_id)
            completed = await self._store.count_passed(user_id, lesson_ids)
            outline.append(CourseStatus(
                course_id=link.course_id,
                title=course.title,
                difficulty=course.difficulty,
                order=link.order,
                total_lessons=len(lesson_ids),
                completed_lessons=completed,
                progress=completion_percent(completed, len(lesson_ids)),
                is_locked=not await self._access.course_unlocked(user_id, program_id, link.order),
            ))
        log.debug("course_outline_built", program_id=program_id, courses=len(outline))
        return outline

    async def lesson_outline(self, user_id: UUID, course_id: UUID) -> list[LessonStatus]:
        """Lessons of a course in order, with latest result and lock state."""
        links = await self._store.list_course_lessons(course_id)
        attempts = await self._store.list_lesson_attempts(user_id, [link.lesson_id for link in links])
        by_order = {link.order: link for link in links}

        outline = []
        for link in links:
            lesson = await self._store.get_lesson(link.lesson_id)
            attempt = attempts.get(link.lesson_id)
            if link.order == 0:
                locked = False
            else:
                previous = by_order.get(link.order - 1)
                prev_attempt = attempts.get(previous.lesson_id) if previous else None
                locked = not (prev_attempt and prev_attempt.passed)
            outline.append(LessonStatus(
                lesson_id=link.lesson_id,
                title=lesson.title,
                difficulty=lesson.difficulty,
                order=link.order,
                has_quiz=lesson.quiz_id is not None,
                passed=bool(attempt and attempt.passed),
                content_completed=bool(attempt and attempt.content_completed),
                score_percentage=score_percent(attempt.quiz_score, attempt.quiz_max_score) if attempt else None,
                is_locked=locked,
            ))
        return outline
