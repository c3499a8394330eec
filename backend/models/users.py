"""Learner and Enrollment Models

User carries the gamification counters (xp, level, quiz tallies); they are
only changed through the XP award path in the store layer.
"""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Boolean, CheckConstraint, Index
from sqlalchemy.orm import relationship

from core.database import Base, GUID


class User(Base):
    """Learner account as seen by the progression engine"""
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("xp >= 0", name="ck_users_xp_non_negative"),
        CheckConstraint("level >= 1", name="ck_users_level_positive"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255))
    xp = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    perfect_quiz_count = Column(Integer, nullable=False, default=0)  # quizzes scored 100%
    excellent_quiz_count = Column(Integer, nullable=False, default=0)  # quizzes scored 90%+
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assignments = relationship("ProgramAssignment", back_populates="user", cascade="all, delete-orphan")


class ProgramAssignment(Base):
    """Enrollment of a learner in a program"""
    __tablename__ = "program_assignments"
    __table_args__ = (
        Index("ix_program_assignments_user_program_source", "user_id", "program_id", "source", unique=True),
        Index("ix_program_assignments_user_active", "user_id", "is_active"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    program_id = Column(GUID, ForeignKey("programs.id", ondelete="CASCADE"), nullable=False)
    source = Column(String(20), nullable=False, default="direct")  # direct, user_type
    is_active = Column(Boolean, nullable=False, default=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="assignments")
    program = relationship("Program")
