"""
Answer graders for test questions.

Each question type has its own module whose grader is registered with ``@register``.
``grade()`` dispatches on the question's type; unknown types are graded incorrect.
"""

from typing import TYPE_CHECKING, Any

from loguru import logger

from skilltree.models import Question, QuestionType

if TYPE_CHECKING:
    from .base import Grader


# Grader registry - populated by @register decorator
GRADERS: dict[QuestionType, "Grader"] = {}


def register(question_type: QuestionType):
    """Decorator to register a grader."""
    def decorator(cls):
        GRADERS[question_type] = cls()
        return cls
    return decorator


def get_grader(question_type: str | QuestionType) -> "Grader | None":
    """Get the grader for a question type."""
    if isinstance(question_type, str) and not isinstance(question_type, QuestionType):
        try:
            question_type = QuestionType(question_type.lower())
        except ValueError:
            return None
    return GRADERS.get(question_type)


def grade(question: Question, answer: Any) -> bool:
    """Grade an answer to a question."""
    grader = get_grader(question.type)
    if grader is None:
        logger.warning("No grader for question type {}; marking incorrect", question.type)
        return False
    return grader.check(question, answer).correct


# Import graders to trigger registration
from . import multiple_choice  # noqa: E402
from . import true_false  # noqa: E402
from . import fill_in_blank  # noqa: E402
from . import order_words  # noqa: E402

__all__ = [
    "GRADERS",
    "get_grader",
    "grade",
    "register",
]
