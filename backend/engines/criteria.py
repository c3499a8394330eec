"""Badge Criteria

Badge rules are stored as JSON tagged by `kind` and parsed once into a
closed set of frozen pydantic models. `evaluate` is the single dispatch
point: adding a kind means adding a model and a `case`.

    {"kind": "total_lessons", "count": 10}
    {"kind": "accuracy", "family": "perfect", "count": 3}
    {"kind": "special", "rule": "certified", "threshold": 90}
"""
from dataclasses import dataclass
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from core.errors import AppError, Ok, Result, invalid_criteria


class _Criterion(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class FirstLesson(_Criterion):
    kind: Literal["first_lesson"] = "first_lesson"


class PerfectScore(_Criterion):
    kind: Literal["perfect_score"] = "perfect_score"


class TotalLessons(_Criterion):
    kind: Literal["total_lessons"] = "total_lessons"
    count: int = Field(ge=1)


class Streak(_Criterion):
    kind: Literal["streak"] = "streak"
    days: int = Field(ge=1)


class CompleteCourse(_Criterion):
    kind: Literal["complete_course"] = "complete_course"


class CompleteProgram(_Criterion):
    kind: Literal["complete_program"] = "complete_program"


class HighScore(_Criterion):
    kind: Literal["high_score"] = "high_score"
    threshold: int = Field(default=90, ge=0, le=100)


class LessonMilestone(_Criterion):
    kind: Literal["lesson_milestone"] = "lesson_milestone"
    count: int = Field(ge=1)


class CourseMilestone(_Criterion):
    kind: Literal["course_milestone"] = "course_milestone"
    count: int = Field(ge=1)


class ProgramMilestone(_Criterion):
    kind: Literal["program_milestone"] = "program_milestone"
    count: int = Field(ge=1)


class Accuracy(_Criterion):
    kind: Literal["accuracy"] = "accuracy"
    family: Literal["perfect", "excellent"]
    count: int = Field(ge=1)


class DifficultyMastery(_Criterion):
    """Advanced lessons passed."""
    kind: Literal["difficulty"] = "difficulty"
    count: int = Field(ge=1)


class Special(_Criterion):
    kind: Literal["special"] = "special"
    rule: Literal["training_complete", "certified"]
    threshold: int = Field(default=90, ge=0, le=100)


Criterion = Annotated[
    Union[
        FirstLesson,
        PerfectScore,
        TotalLessons,
        Streak,
        CompleteCourse,
        CompleteProgram,
        HighScore,
        LessonMilestone,
        CourseMilestone,
        ProgramMilestone,
        Accuracy,
        DifficultyMastery,
        Special,
    ],
    Field(discriminator="kind"),
]

_criterion_adapter: TypeAdapter[Criterion] = TypeAdapter(Criterion)


@dataclass(frozen=True, slots=True)
class UserStats:
    """Aggregates a badge check needs, gathered once per scope."""
    lessons_completed: int = 0
    courses_completed: int = 0
    programs_completed: int = 0
    enrolled_programs: int = 0
    advanced_lessons_completed: int = 0
    perfect_quiz_count: int = 0
    excellent_quiz_count: int = 0
    best_quiz_percentage: int | None = None
    average_quiz_percentage: int | None = None
    current_streak: int = 0
    longest_streak: int = 0


def parse_criteria(raw: object, badge_key: str = "") -> Result[Criterion, AppError]:
    """Validate stored criteria JSON. Kinds are matched case-insensitively."""
    if isinstance(raw, dict) and isinstance(raw.get("kind"), str):
        raw = {**raw, "kind": raw["kind"].strip().lower()}
    try:
        return Ok(_criterion_adapter.validate_python(raw))
    except ValidationError as e:
        reason = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'criteria'}: {err['msg']}" for err in e.errors()
        )
        return invalid_criteria(badge_key, reason, origin="criteria")


def evaluate(criterion: Criterion, stats: UserStats) -> bool:
    match criterion:
        case FirstLesson():
            return stats.lessons_completed >= 1
        case PerfectScore():
            return stats.best_quiz_percentage == 100
        case TotalLessons(count=count) | LessonMilestone(count=count):
            return stats.lessons_completed >= count
        case Streak(days=days):
            return stats.longest_streak >= days
        case CompleteCourse():
            return stats.courses_completed >= 1
        case CompleteProgram():
            return stats.programs_completed >= 1
        case HighScore(threshold=threshold):
            return stats.best_quiz_percentage is not None and stats.best_quiz_percentage >= threshold
        case CourseMilestone(count=count):
            return stats.courses_completed >= count
        case ProgramMilestone(count=count):
            return stats.programs_completed >= count
        case Accuracy(family="perfect", count=count):
            return stats.perfect_quiz_count >= count
        case Accuracy(family="excellent", count=count):
            return stats.excellent_quiz_count >= count
        case DifficultyMastery(count=count):
            return stats.advanced_lessons_completed >= count
        case Special(rule="training_complete"):
            return stats.enrolled_programs > 0 and stats.programs_completed >= stats.enrolled_programs
        case Special(rule="certified", threshold=threshold):
            return (
                stats.enrolled_programs > 0
                and stats.programs_completed >= stats.enrolled_programs
                and stats.average_quiz_percentage is not None
                and stats.average_quiz_percentage >= threshold
            )
    raise TypeError(f"Unhandled criterion kind: {criterion!r}")
