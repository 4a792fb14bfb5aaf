"""
Fill-in-the-blank grader.

Case-insensitive comparison with surrounding whitespace ignored.
"""

from typing import Any

from skilltree.models import Question, QuestionType

from . import register
from .base import GradeResult


def _normalize(text: str) -> str:
    return " ".join(text.strip().lower().split())


@register(QuestionType.FILL_IN_BLANK)
class FillInBlankGrader:
    """Grader for fill-in-the-blank questions."""

    def expected(self, question: Question) -> str:
        if "answer" in question.content:
            return str(question.content["answer"])
        for option in question.answers:
            if option.is_correct:
                return option.text
        return ""

    def validate(self, question: Question) -> bool:
        return bool(self.expected(question).strip())

    def check(self, question: Question, answer: Any) -> GradeResult:
        expected = self.expected(question)
        given = "" if answer is None else str(answer)
        correct = bool(expected) and _normalize(given) == _normalize(expected)
        return GradeResult(correct=correct, user_answer=given, correct_answer=expected)
