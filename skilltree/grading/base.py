"""
Base protocol and types for graders.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from skilltree.models import Question


@dataclass
class GradeResult:
    """Result of grading an answer."""
    correct: bool
    user_answer: str
    correct_answer: str
    feedback: str = ""


class Grader(Protocol):
    """Protocol for question graders."""

    def validate(self, question: Question) -> bool:
        """Check if the question has what this grader needs."""
        ...

    def check(self, question: Question, answer: Any) -> GradeResult:
        """Grade the answer."""
        ...


def correct_option_id(question: Question) -> str | None:
    """Id of the correct answer option as a string, if any."""
    for option in question.answers:
        if option.is_correct:
            return str(option.id)
    return None
