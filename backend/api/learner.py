"""Learner API

Thin HTTP binding over the progression engines: lesson submission, access
checks, program/course progress and the dashboard. Identity comes from the
upstream gateway (X-User-ID); authentication is not handled here.
"""
from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db, fetch_one
from core.errors import raise_result
from core.logging import api_logger, gamification_logger
from core.security import get_current_user_id
from engines.access import AccessVerifier
from engines.badges import AwardedBadge
from engines.leveling import level_summary, policy_from_settings
from engines.progress import ProgressCalculator
from engines.store import LearningStore
from engines.streaks import DayActivity, StreakTracker
from engines.submission import LessonSubmission, LessonSubmissionService, SubmissionResult
from models.users import User

router = APIRouter()
log = api_logger()
streak_log = gamification_logger()

LESSON_PATH = "/programs/{program_id}/courses/{course_id}/lessons/{lesson_id}"


class SubmitRequest(BaseModel):
    passed: bool
    quiz_score: int | None = Field(None, ge=0)
    quiz_max_score: int | None = Field(None, ge=0)
    time_spent: int = Field(0, ge=0)  # seconds
    quiz_attempted: bool = False


class ContentCompleteRequest(BaseModel):
    time_spent: int = Field(0, ge=0)


class XpBreakdownResponse(BaseModel):
    base_xp: int
    difficulty: str
    difficulty_multiplier: float
    level_multiplier: float
    performance_bonus: int
    performance_label: str
    total_xp: int
    formula: str


class BadgeResponse(BaseModel):
    badge_id: UUID
    badge_key: str
    name: str
    description: str | None
    category: str
    tier: str | None
    icon: str | None
    xp_bonus: int

    class Config:
        from_attributes = True


class LevelResponse(BaseModel):
    previous_level: int
    current_level: int
    leveled_up: bool
    tier_upgraded: bool
    total_xp: int


class SubmitResponse(BaseModel):
    attempt_id: UUID
    lesson_id: UUID
    passed: bool
    attempts_count: int
    score_percentage: int | None
    xp: XpBreakdownResponse | None
    lesson_xp: int
    badge_xp: int
    total_xp_earned: int
    level: LevelResponse
    new_badges: list[BadgeResponse]
    course_progress: int
    program_progress: int


class ContentCompleteResponse(BaseModel):
    lesson_id: UUID
    requires_quiz: bool
    submission: SubmitResponse | None


class AccessResponse(BaseModel):
    ok: bool
    reason: str | None


class CourseStatusResponse(BaseModel):
    course_id: UUID
    title: str
    difficulty: str
    order: int
    total_lessons: int
    completed_lessons: int
    progress: int
    is_locked: bool

    class Config:
        from_attributes = True


class LessonStatusResponse(BaseModel):
    lesson_id: UUID
    title: str
    difficulty: str
    order: int
    has_quiz: bool
    passed: bool
    content_completed: bool
    score_percentage: int | None
    is_locked: bool

    class Config:
        from_attributes = True


class ProgramProgressResponse(BaseModel):
    program_id: UUID
    title: str
    progress: int
    courses: list[CourseStatusResponse]


class CourseProgressResponse(BaseModel):
    course_id: UUID
    title: str
    progress: int
    lessons: list[LessonStatusResponse]


class DayActivityResponse(BaseModel):
    day: date
    active: bool


class ProgramCardResponse(BaseModel):
    program_id: UUID
    title: str
    progress: int


class DashboardResponse(BaseModel):
    user_id: UUID
    name: str | None
    xp: int
    level: int
    tier: str
    tier_name: str
    xp_to_next_level: int
    level_progress: int
    next_tier_level: int | None
    perfect_quiz_count: int
    excellent_quiz_count: int
    current_streak: int
    longest_streak: int
    daily_activity: list[DayActivityResponse]
    programs: list[ProgramCardResponse]
    generated_at: datetime


def _badge(b: AwardedBadge) -> BadgeResponse:
    return BadgeResponse.model_validate(b)


def _submit_response(r: SubmissionResult) -> SubmitResponse:
    xp = None
    if r.xp is not None:
        xp = XpBreakdownResponse(
            base_xp=r.xp.base_xp,
            difficulty=r.xp.difficulty,
            difficulty_multiplier=r.xp.difficulty_multiplier,
            level_multiplier=r.xp.level_multiplier,
            performance_bonus=r.xp.performance_bonus,
            performance_label=r.xp.performance_label,
            total_xp=r.xp.total_xp,
            formula=r.xp.formula,
        )
    return SubmitResponse(
        attempt_id=r.attempt_id,
        lesson_id=r.lesson_id,
        passed=r.passed,
        attempts_count=r.attempts_count,
        score_percentage=r.score_percentage,
        xp=xp,
        lesson_xp=r.lesson_xp,
        badge_xp=r.badge_xp,
        total_xp_earned=r.total_xp_earned,
        level=LevelResponse(
            previous_level=r.level.previous_level,
            current_level=r.level.current_level,
            leveled_up=r.level.leveled_up,
            tier_upgraded=r.level.tier_upgraded,
            total_xp=r.level.total_xp,
        ),
        new_badges=[_badge(b) for b in r.new_badges],
        course_progress=r.course_progress,
        program_progress=r.program_progress,
    )


async def _streak_panel(
    streaks: StreakTracker, store: LearningStore, user_id: UUID
) -> tuple[int, int, list[DayActivity]]:
    """Streak figures for the dashboard; a failure degrades to an empty panel."""
    try:
        async with store.session.begin_nested():
            return (
                await streaks.current_streak(user_id),
                await streaks.longest_streak(user_id),
                await streaks.daily_activity(user_id),
            )
    except Exception as exc:
        streak_log.exception("streak_read_failed", user_id=user_id, error_type=type(exc).__name__)
        return 0, 0, []


@router.post(f"{LESSON_PATH}/submit", response_model=SubmitResponse)
async def submit_lesson(
    program_id: UUID,
    course_id: UUID,
    lesson_id: UUID,
    body: SubmitRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Record a lesson/quiz result and apply XP, badges and level changes."""
    service = LessonSubmissionService(db)
    result = await service.submit(LessonSubmission(
        user_id=user_id,
        program_id=program_id,
        course_id=course_id,
        lesson_id=lesson_id,
        **body.model_dump(),
    ))
    raise_result(result)
    return _submit_response(result.unwrap())


@router.post(f"{LESSON_PATH}/content-complete", response_model=ContentCompleteResponse)
async def complete_lesson_content(
    program_id: UUID,
    course_id: UUID,
    lesson_id: UUID,
    body: ContentCompleteRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Mark content as read; lessons without a quiz pass here."""
    service = LessonSubmissionService(db)
    result = await service.complete_content(user_id, program_id, course_id, lesson_id, body.time_spent)
    raise_result(result)
    completion = result.unwrap()
    return ContentCompleteResponse(
        lesson_id=completion.lesson_id,
        requires_quiz=completion.requires_quiz,
        submission=_submit_response(completion.submission) if completion.submission else None,
    )


@router.get(f"{LESSON_PATH}/access", response_model=AccessResponse)
async def check_lesson_access(
    program_id: UUID,
    course_id: UUID,
    lesson_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    decision = await AccessVerifier(LearningStore(db)).can_access_lesson(user_id, program_id, course_id, lesson_id)
    return AccessResponse(ok=decision.ok, reason=decision.reason)


@router.get("/programs/{program_id}/courses/{course_id}/access", response_model=AccessResponse)
async def check_course_access(
    program_id: UUID,
    course_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    decision = await AccessVerifier(LearningStore(db)).can_access_course(user_id, program_id, course_id)
    return AccessResponse(ok=decision.ok, reason=decision.reason)


@router.get("/programs/{program_id}", response_model=ProgramProgressResponse)
async def get_program_progress(
    program_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Program progress with the ordered course outline."""
    store = LearningStore(db)
    access = AccessVerifier(store)
    result = await access.verify_enrollment(user_id, program_id)
    raise_result(result)

    calculator = ProgressCalculator(store, access)
    return ProgramProgressResponse(
        program_id=program_id,
        title=result.unwrap().title,
        progress=await calculator.program_progress(user_id, program_id),
        courses=[
            CourseStatusResponse.model_validate(c)
            for c in await calculator.course_outline(user_id, program_id)
        ],
    )


@router.get("/programs/{program_id}/courses/{course_id}", response_model=CourseProgressResponse)
async def get_course_progress(
    program_id: UUID,
    course_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Course progress with the ordered lesson outline; the course must be unlocked."""
    store = LearningStore(db)
    access = AccessVerifier(store)
    result = await access.verify_course_access(user_id, program_id, course_id)
    raise_result(result)

    calculator = ProgressCalculator(store, access)
    return CourseProgressResponse(
        course_id=course_id,
        title=result.unwrap().course.title,
        progress=await calculator.course_progress(user_id, course_id),
        lessons=[
            LessonStatusResponse.model_validate(lesson)
            for lesson in await calculator.lesson_outline(user_id, course_id)
        ],
    )


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """XP, level tier, streaks, weekly activity and enrolled program progress."""
    result = await fetch_one(db, User, user_id, "User")
    raise_result(result)
    user = result.unwrap()

    store = LearningStore(db)
    streaks = StreakTracker(store)
    calculator = ProgressCalculator(store)
    summary = level_summary(user.xp, policy_from_settings())

    programs = []
    for program_id in await store.list_enrolled_program_ids(user_id):
        program = await store.get_program(program_id)
        programs.append(ProgramCardResponse(
            program_id=program_id,
            title=program.title,
            progress=await calculator.program_progress(user_id, program_id),
        ))

    current_streak, longest_streak, activity = await _streak_panel(streaks, store, user_id)

    log.debug("dashboard_built", user_id=user_id, programs=len(programs))
    return DashboardResponse(
        user_id=user.id,
        name=user.name,
        xp=user.xp,
        level=max(user.level, summary.level),
        tier=summary.tier_key,
        tier_name=summary.tier_name,
        xp_to_next_level=summary.xp_to_next_level,
        level_progress=summary.progress_percent,
        next_tier_level=summary.next_tier_level,
        perfect_quiz_count=user.perfect_quiz_count,
        excellent_quiz_count=user.excellent_quiz_count,
        current_streak=current_streak,
        longest_streak=longest_streak,
        daily_activity=[DayActivityResponse(day=d.day, active=d.active) for d in activity],
        programs=programs,
        generated_at=datetime.utcnow(),
    )
