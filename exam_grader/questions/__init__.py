"""
Question Bank Module.

Provides loading and validation of question banks and candidate attempts.
"""

from exam_grader.questions.loader import QuestionLoadError, load_attempt, load_questions
from exam_grader.questions.validator import QuestionValidationError, QuestionValidator

__all__ = [
    "QuestionLoadError",
    "QuestionValidationError",
    "QuestionValidator",
    "load_attempt",
    "load_questions",
]
