from engines.store import LearningStore
from engines.access import AccessVerifier, AccessDecision
from engines.progress import ProgressCalculator
from engines.streaks import StreakTracker
from engines.badges import BadgeEvaluator, BadgeScope
from engines.submission import LessonSubmissionService, LessonSubmission

__all__ = [
    "LearningStore",
    "AccessVerifier",
    "AccessDecision",
    "ProgressCalculator",
    "StreakTracker",
    "BadgeEvaluator",
    "BadgeScope",
    "LessonSubmissionService",
    "LessonSubmission",
]
