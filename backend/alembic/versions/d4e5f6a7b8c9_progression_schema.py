"""Progression schema: learners, content hierarchy, attempts and badges

Revision ID: d4e5f6a7b8c9
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = 'd4e5f6a7b8c9'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # === Learners ===

    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255)),
        sa.Column('xp', sa.Integer, nullable=False, server_default='0'),
        sa.Column('level', sa.Integer, nullable=False, server_default='1'),
        sa.Column('perfect_quiz_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('excellent_quiz_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean, default=True),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, default=sa.func.now(), onupdate=sa.func.now()),
        sa.CheckConstraint('xp >= 0', name='ck_users_xp_non_negative'),
        sa.CheckConstraint('level >= 1', name='ck_users_level_positive'),
    )

    # === Content Hierarchy ===

    op.create_table(
        'programs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('is_active', sa.Boolean, default=True),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'courses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('difficulty', sa.String(20), nullable=False, server_default='Beginner'),
        sa.Column('is_active', sa.Boolean, default=True),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'quizzes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('passing_score', sa.Integer, nullable=False, server_default='70'),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
    )

    op.create_table(
        'lessons',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('difficulty', sa.String(20), nullable=False, server_default='Beginner'),
        sa.Column('quiz_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('quizzes.id', ondelete='SET NULL')),
        sa.Column('is_active', sa.Boolean, default=True),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, default=sa.func.now(), onupdate=sa.func.now()),
    )

    op.create_table(
        'program_courses',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('program_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('programs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order', sa.Integer, nullable=False, server_default='0'),
        sa.UniqueConstraint('program_id', 'course_id', name='uq_program_courses_pair'),
        sa.UniqueConstraint('program_id', 'order', name='uq_program_courses_order'),
    )

    op.create_table(
        'course_lessons',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('course_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lesson_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order', sa.Integer, nullable=False, server_default='0'),
        sa.UniqueConstraint('course_id', 'lesson_id', name='uq_course_lessons_pair'),
        sa.UniqueConstraint('course_id', 'order', name='uq_course_lessons_order'),
    )
    op.create_index('ix_course_lessons_lesson', 'course_lessons', ['lesson_id'])

    op.create_table(
        'program_assignments',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('program_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('programs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source', sa.String(20), nullable=False, server_default='direct'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('assigned_at', sa.DateTime, default=sa.func.now()),
    )
    op.create_index(
        'ix_program_assignments_user_program_source', 'program_assignments',
        ['user_id', 'program_id', 'source'], unique=True,
    )
    op.create_index('ix_program_assignments_user_active', 'program_assignments', ['user_id', 'is_active'])

    # === Attempts ===

    op.create_table(
        'lesson_attempts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lesson_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('passed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('content_completed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('quiz_attempted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('quiz_score', sa.Integer),
        sa.Column('quiz_max_score', sa.Integer),
        sa.Column('time_spent', sa.Integer, default=0),
        sa.Column('attempts_count', sa.Integer, nullable=False, server_default='1'),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('xp_awarded', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, default=sa.func.now(), onupdate=sa.func.now()),
        sa.UniqueConstraint('user_id', 'lesson_id', name='uq_lesson_attempts_user_lesson'),
    )
    op.create_index('ix_lesson_attempts_user_passed', 'lesson_attempts', ['user_id', 'passed'])

    op.create_table(
        'quiz_attempts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lesson_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('lessons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quiz_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('quizzes.id', ondelete='SET NULL')),
        sa.Column('score', sa.Integer, nullable=False, server_default='0'),
        sa.Column('max_score', sa.Integer, nullable=False, server_default='0'),
        sa.Column('passed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('submitted_at', sa.DateTime, default=sa.func.now()),
    )
    op.create_index('ix_quiz_attempts_user_submitted', 'quiz_attempts', ['user_id', 'submitted_at'])

    # === Badges ===

    op.create_table(
        'badges',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('badge_key', sa.String(100), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('family', sa.String(50)),
        sa.Column('tier', sa.String(20)),
        sa.Column('icon', sa.String(50)),
        sa.Column('criteria', postgresql.JSONB, nullable=False),
        sa.Column('xp_bonus', sa.Integer, nullable=False, server_default='0'),
        sa.Column('display_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
    )
    op.create_index('ix_badges_category_order', 'badges', ['category', 'display_order'])

    op.create_table(
        'user_badges',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('badge_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('badges.id', ondelete='CASCADE'), nullable=False),
        sa.Column('awarded_at', sa.DateTime, default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'badge_id', name='uq_user_badges_user_badge'),
    )


def downgrade() -> None:
    op.drop_table('user_badges')
    op.drop_index('ix_badges_category_order', table_name='badges')
    op.drop_table('badges')
    op.drop_index('ix_quiz_attempts_user_submitted', table_name='quiz_attempts')
    op.drop_table('quiz_attempts')
    op.drop_index('ix_lesson_attempts_user_passed', table_name='lesson_attempts')
    op.drop_table('lesson_attempts')
    op.drop_index('ix_program_assignments_user_active', table_name='program_assignments')
    op.drop_index('ix_program_assignments_user_program_source', table_name='program_assignments')
    op.drop_table('program_assignments')
    op.drop_index('ix_course_lessons_lesson', table_name='course_lessons')
    op.drop_table('course_lessons')
    op.drop_table('program_courses')
    op.drop_table('lessons')
    op.drop_table('quizzes')
    op.drop_table('courses')
    op.drop_table('programs')
    op.drop_table('users')
