"""
Contracts for the external collaborators the engine talks to.

The progress store owns the authoritative approved set and hearts balance; the question
source owns question content, grading and attempt persistence. Both are async and may
raise ``TransientError`` for retryable failures.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from skilltree.models import AnswerRecord, AttemptResult, AttemptTarget, HeartsBalance, Question


@dataclass
class AttemptHandle:
    """A freshly started attempt as returned by the question source."""

    attempt_id: str
    target: AttemptTarget
    questions: list[Question]
    passing_score: int | None = None
    base_experience: int | None = None
    is_first_attempt: bool = True


@dataclass
class ResumableAttempt:
    """An in-progress attempt loaded for resume, with answers recorded so far."""

    attempt_id: str
    user_id: Hashable
    target: AttemptTarget
    questions: list[Question]
    answers: dict[Hashable, AnswerRecord] = field(default_factory=dict)
    wrong_question_ids: set[Hashable] = field(default_factory=set)
    passing_score: int | None = None
    base_experience: int | None = None
    is_first_attempt: bool = True


@runtime_checkable
class ProgressStore(Protocol):
    """Authoritative learner progress."""

    async def get_approved_unit_ids(self, user_id: Hashable, curriculum_id: Hashable) -> set[Hashable]:
        ...

    async def get_hearts(self, user_id: Hashable) -> HeartsBalance:
        ...

    async def debit_hearts(self, user_id: Hashable, amount: int) -> int:
        """Debit hearts and return the confirmed balance."""
        ...

    async def credit_hearts(self, user_id: Hashable, amount: int) -> int:
        ...

    async def purchase_heart(self, user_id: Hashable) -> int:
        """Buy one heart with zaps and return the confirmed balance."""
        ...

    async def record_attempt_result(self, attempt_id: str, result: AttemptResult) -> None:
        ...

    async def has_passed_final_test(self, user_id: Hashable, curriculum_id: Hashable) -> bool:
        ...


@runtime_checkable
class QuestionSource(Protocol):
    """Question content, grading and attempt persistence."""

    async def start_attempt(self, user_id: Hashable, target: AttemptTarget) -> AttemptHandle:
        ...

    async def grade_answer(self, question: Question, answer: Any) -> bool:
        ...

    async def record_answer(self, attempt_id: str, record: AnswerRecord) -> None:
        """Persist an answer. Must be an upsert keyed by question id."""
        ...

    async def load_attempt(self, attempt_id: str) -> ResumableAttempt | None:
        ...

    async def start_review_attempt(
        self, user_id: Hashable, curriculum_id: Hashable
    ) -> AttemptHandle | None:
        """Start a review of previously failed questions, or None when there are none."""
        ...


__all__ = [
    "AttemptHandle",
    "ProgressStore",
    "QuestionSource",
    "ResumableAttempt",
]
