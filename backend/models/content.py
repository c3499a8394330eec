"""Content Hierarchy Models

Program → Course → Lesson, linked through ordered join tables. `order` is
zero-based and unique per parent; gaps are possible and are treated as
locks by the access rules.
"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Integer, Boolean, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from core.database import Base, GUID

DIFFICULTIES = ("Beginner", "Intermediate", "Advanced")


class Program(Base):
    __tablename__ = "programs"

    id = Column(GUID, primary_key=True, default=uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    course_links = relationship(
        "ProgramCourse", back_populates="program", cascade="all, delete-orphan", order_by="ProgramCourse.order"
    )


class Course(Base):
    __tablename__ = "courses"

    id = Column(GUID, primary_key=True, default=uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    difficulty = Column(String(20), nullable=False, default="Beginner")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    lesson_links = relationship(
        "CourseLesson", back_populates="course", cascade="all, delete-orphan", order_by="CourseLesson.order"
    )


class Quiz(Base):
    __tablename__ = "quizzes"

    id = Column(GUID, primary_key=True, default=uuid4)
    title = Column(String(255), nullable=False)
    passing_score = Column(Integer, nullable=False, default=70)  # percent
    created_at = Column(DateTime, default=datetime.utcnow)


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(GUID, primary_key=True, default=uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    difficulty = Column(String(20), nullable=False, default="Beginner")  # Beginner, Intermediate, Advanced
    quiz_id = Column(GUID, ForeignKey("quizzes.id", ondelete="SET NULL"))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    quiz = relationship("Quiz")


class ProgramCourse(Base):
    """Ordered membership of a course in a program"""
    __tablename__ = "program_courses"
    __table_args__ = (
        UniqueConstraint("program_id", "course_id", name="uq_program_courses_pair"),
        UniqueConstraint("program_id", "order", name="uq_program_courses_order"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    program_id = Column(GUID, ForeignKey("programs.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(GUID, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    order = Column(Integer, nullable=False, default=0)

    program = relationship("Program", back_populates="course_links")
    course = relationship("Course")


class CourseLesson(Base):
    """Ordered membership of a lesson in a course"""
    __tablename__ = "course_lessons"
    __table_args__ = (
        UniqueConstraint("course_id", "lesson_id", name="uq_course_lessons_pair"),
        UniqueConstraint("course_id", "order", name="uq_course_lessons_order"),
        Index("ix_course_lessons_lesson", "lesson_id"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    course_id = Column(GUID, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    lesson_id = Column(GUID, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    order = Column(Integer, nullable=False, default=0)

    course = relationship("Course", back_populates="lesson_links")
    lesson = relationship("Lesson")
