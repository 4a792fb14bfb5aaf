"""
Multiple-choice grader.

The learner picks one option; the answer is the option id.
"""

from typing import Any

from skilltree.models import Question, QuestionType

from . import register
from .base import GradeResult, correct_option_id


@register(QuestionType.MULTIPLE_CHOICE)
class MultipleChoiceGrader:
    """Grader for multiple-choice questions."""

    def validate(self, question: Question) -> bool:
        return len(question.answers) >= 2 and correct_option_id(question) is not None

    def check(self, question: Question, answer: Any) -> GradeResult:
        expected = correct_option_id(question)
        given = "" if answer is None else str(answer).strip()
        correct = expected is not None and given == expected
        return GradeResult(
            correct=correct,
            user_answer=given,
            correct_answer=expected or "",
            feedback="" if correct else "Not quite.",
        )
