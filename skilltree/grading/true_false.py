"""
True/False grader.

Questions carry two options ("True" and "False"); the answer may be the option id or
a boolean, which is matched against the option texts.
"""

from typing import Any

from skilltree.models import Question, QuestionType

from . import register
from .base import GradeResult, correct_option_id

TRUE_INPUTS = {"t", "true", "yes", "y", "1"}
FALSE_INPUTS = {"f", "false", "no", "n", "0"}


@register(QuestionType.TRUE_FALSE)
class TrueFalseGrader:
    """Grader for true/false questions."""

    def validate(self, question: Question) -> bool:
        return len(question.answers) == 2 and correct_option_id(question) is not None

    def _resolve(self, question: Question, answer: Any) -> str:
        """Map a boolean-ish answer onto an option id."""
        if isinstance(answer, bool):
            wanted = answer
        else:
            text = str(answer).strip().lower()
            if text in TRUE_INPUTS:
                wanted = True
            elif text in FALSE_INPUTS:
                wanted = False
            else:
                return str(answer).strip()
        for option in question.answers:
            if option.text.strip().lower() == ("true" if wanted else "false"):
                return str(option.id)
        return str(answer).strip()

    def check(self, question: Question, answer: Any) -> GradeResult:
        expected = correct_option_id(question)
        ids = {str(o.id) for o in question.answers}
        given = "" if answer is None else str(answer).strip()
        if given not in ids:
            given = self._resolve(question, answer)
        correct = expected is not None and given == expected
        return GradeResult(correct=correct, user_answer=given, correct_answer=expected or "")
