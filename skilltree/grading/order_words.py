"""
Order-words grader.

The learner arranges words into a sentence. The answer is a list of words, a JSON
array string, or a space-separated string.
"""

import json
from typing import Any

from skilltree.models import Question, QuestionType

from . import register
from .base import GradeResult


def _words(answer: Any) -> list[str]:
    if answer is None:
        return []
    if isinstance(answer, (list, tuple)):
        return [str(w).strip().lower() for w in answer]
    text = str(answer).strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(w).strip().lower() for w in parsed]
    return [w.lower() for w in text.split()]


@register(QuestionType.ORDER_WORDS)
class OrderWordsGrader:
    """Grader for order-words questions."""

    def expected(self, question: Question) -> list[str]:
        if "correct_order" in question.content:
            return [str(w).strip().lower() for w in question.content["correct_order"]]
        ordered = sorted((o for o in question.answers if o.is_correct), key=lambda o: o.order)
        return [o.text.strip().lower() for o in ordered]

    def validate(self, question: Question) -> bool:
        return bool(self.expected(question))

    def check(self, question: Question, answer: Any) -> GradeResult:
        expected = self.expected(question)
        given = _words(answer)
        correct = bool(expected) and given == expected
        return GradeResult(
            correct=correct,
            user_answer=" ".join(given),
            correct_answer=" ".join(expected),
        )
