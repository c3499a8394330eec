"""Shared fixtures: a throwaway sqlite database per test and data builders."""
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import models  # noqa: F401
from core.database import Base, configure_sqlite
from models import (
    Badge,
    Course,
    CourseLesson,
    Lesson,
    LessonAttempt,
    Program,
    ProgramAssignment,
    ProgramCourse,
    Quiz,
    QuizAttempt,
    User,
)


@pytest.fixture
def anyio_backend():
    """Force anyio to use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
async def db_engine(anyio_backend, tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'progression.db'}")
    configure_sqlite(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def factory(session):
    return Factory(session)


@dataclass
class Curriculum:
    program: Program
    courses: list[Course]
    lessons: list[list[Lesson]]  # lessons[course_index][lesson_order]


class Factory:
    """Builds and commits rows so every session sees them."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = 0

    async def _save(self, *objs):
        self.session.add_all(objs)
        await self.session.commit()
        return objs[0]

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def user(self, xp: int = 0, level: int = 1, **kwargs) -> User:
        n = self._next()
        return await self._save(User(
            id=uuid4(), email=f"learner{n}@example.com", name=f"Learner {n}", xp=xp, level=level, **kwargs
        ))

    async def program(self, title: str = "Workplace Safety") -> Program:
        return await self._save(Program(id=uuid4(), title=title))

    async def course(self, title: str | None = None, difficulty: str = "Beginner") -> Course:
        return await self._save(Course(id=uuid4(), title=title or f"Course {self._next()}", difficulty=difficulty))

    async def lesson(self, title: str | None = None, difficulty: str = "Beginner", quiz: bool = True) -> Lesson:
        quiz_id = None
        if quiz:
            q = await self._save(Quiz(id=uuid4(), title="Checkpoint quiz"))
            quiz_id = q.id
        return await self._save(Lesson(
            id=uuid4(), title=title or f"Lesson {self._next()}", difficulty=difficulty, quiz_id=quiz_id
        ))

    async def add_course(self, program: Program, course: Course, order: int) -> ProgramCourse:
        return await self._save(ProgramCourse(id=uuid4(), program_id=program.id, course_id=course.id, order=order))

    async def add_lesson(self, course: Course, lesson: Lesson, order: int) -> CourseLesson:
        return await self._save(CourseLesson(id=uuid4(), course_id=course.id, lesson_id=lesson.id, order=order))

    async def enroll(self, user: User, program: Program, active: bool = True, source: str = "direct"):
        return await self._save(ProgramAssignment(
            id=uuid4(), user_id=user.id, program_id=program.id, source=source, is_active=active
        ))

    async def curriculum(
        self, lessons_per_course: tuple[int, ...] = (2,), difficulty: str = "Beginner", quiz: bool = True
    ) -> Curriculum:
        program = await self.program()
        courses, lessons = [], []
        for c_order, count in enumerate(lessons_per_course):
            course = await self.course(difficulty=difficulty)
            await self.add_course(program, course, c_order)
            course_lessons = []
            for l_order in range(count):
                lesson = await self.lesson(difficulty=difficulty, quiz=quiz)
                await self.add_lesson(course, lesson, l_order)
                course_lessons.append(lesson)
            courses.append(course)
            lessons.append(course_lessons)
        return Curriculum(program=program, courses=courses, lessons=lessons)

    async def attempt(
        self,
        user: User,
        lesson: Lesson,
        passed: bool = True,
        completed_at: datetime | None = None,
        quiz_score: int | None = None,
        quiz_max_score: int | None = None,
    ) -> LessonAttempt:
        return await self._save(LessonAttempt(
            id=uuid4(),
            user_id=user.id,
            lesson_id=lesson.id,
            passed=passed,
            content_completed=True,
            quiz_attempted=quiz_score is not None,
            quiz_score=quiz_score,
            quiz_max_score=quiz_max_score,
            completed_at=(completed_at or datetime.utcnow()) if passed else None,
        ))

    async def quiz_attempt(self, user: User, lesson: Lesson, score: int, max_score: int = 100) -> QuizAttempt:
        return await self._save(QuizAttempt(
            id=uuid4(), user_id=user.id, lesson_id=lesson.id, quiz_id=lesson.quiz_id,
            score=score, max_score=max_score, passed=score * 100 >= 70 * max_score,
        ))

    async def badge(
        self,
        badge_key: str,
        category: str,
        criteria: dict,
        xp_bonus: int = 0,
        display_order: int = 0,
        **kwargs,
    ) -> Badge:
        return await self._save(Badge(
            id=uuid4(),
            badge_key=badge_key,
            name=kwargs.pop("name", badge_key.replace("_", " ").title()),
            category=category,
            criteria=criteria,
            xp_bonus=xp_bonus,
            display_order=display_order,
            **kwargs,
        ))
