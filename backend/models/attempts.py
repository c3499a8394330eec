from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Boolean, UniqueConstraint, Index

from core.database import Base, GUID


class LessonAttempt(Base):
    """Latest outcome of a learner on a lesson; one row per (user, lesson)"""
    __tablename__ = "lesson_attempts"
    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_lesson_attempts_user_lesson"),
        Index("ix_lesson_attempts_user_passed", "user_id", "passed"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    lesson_id = Column(GUID, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    passed = Column(Boolean, nullable=False, default=False)
    content_completed = Column(Boolean, nullable=False, default=False)
    quiz_attempted = Column(Boolean, nullable=False, default=False)
    quiz_score = Column(Integer)
    quiz_max_score = Column(Integer)
    time_spent = Column(Integer, default=0)  # seconds
    attempts_count = Column(Integer, nullable=False, default=1)
    completed_at = Column(DateTime)  # set while passed
    xp_awarded = Column(Boolean, nullable=False, default=False)  # flipped once, on first rewarded pass
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class QuizAttempt(Base):
    """Append-only quiz submission history"""
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        Index("ix_quiz_attempts_user_submitted", "user_id", "submitted_at"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    lesson_id = Column(GUID, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    quiz_id = Column(GUID, ForeignKey("quizzes.id", ondelete="SET NULL"))
    score = Column(Integer, nullable=False, default=0)
    max_score = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    submitted_at = Column(DateTime, default=datetime.utcnow)
