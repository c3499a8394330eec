from models.users import User, ProgramAssignment
from models.content import Program, Course, Lesson, Quiz, ProgramCourse, CourseLesson
from models.attempts import LessonAttempt, QuizAttempt
from models.badges import Badge, UserBadge

__all__ = [
    "User", "ProgramAssignment",
    "Program", "Course", "Lesson", "Quiz", "ProgramCourse", "CourseLesson",
    "LessonAttempt", "QuizAttempt",
    "Badge", "UserBadge",
]
