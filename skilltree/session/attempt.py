"""
In-memory state of one test attempt.

The question list grows during the attempt: a question answered wrong on the first
pass is queued again at the end for a review pass. Slots (indices into the list) are
answered at most once and charged at most one heart; the per-question answer map
keeps the latest answer.
"""
from __future__ import annotations

import time
from collections.abc import Hashable
from dataclasses import dataclass, field

from skilltree.models import AnswerRecord, AttemptTarget, Question


@dataclass
class TestAttempt:
    """Questions, cursor and answers of a live attempt."""

    __test__ = False

    attempt_id: str
    target: AttemptTarget
    questions: list[Question]
    passing_score: int
    base_experience: int
    is_first_attempt: bool = True
    cursor: int = 0
    first_pass_count: int = 0
    answers: dict[Hashable, AnswerRecord] = field(default_factory=dict)
    history: list[AnswerRecord] = field(default_factory=list)
    slot_answers: dict[int, AnswerRecord] = field(default_factory=dict)
    debited_slots: set[int] = field(default_factory=set)
    wrong_question_ids: set[Hashable] = field(default_factory=set)
    started_at: float = field(default_factory=time.monotonic)
    question_started_at: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        if not self.first_pass_count:
            self.first_pass_count = len(self.questions)

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.cursor < len(self.questions):
            return self.questions[self.cursor]
        return None

    @property
    def in_first_pass(self) -> bool:
        return self.cursor < self.first_pass_count

    @property
    def at_end_of_first_pass(self) -> bool:
        return self.cursor == self.first_pass_count - 1

    @property
    def is_last_slot(self) -> bool:
        return self.cursor >= len(self.questions) - 1

    @property
    def answered_slots(self) -> set[int]:
        return set(self.slot_answers)

    @property
    def current_answered(self) -> bool:
        return self.cursor in self.slot_answers

    @property
    def correct_first_pass(self) -> int:
        return self.first_pass_count - len(self.wrong_question_ids)

    def queued_after_cursor(self, question_id: Hashable) -> bool:
        return any(q.id == question_id for q in self.questions[self.cursor + 1:])

    def record(self, record: AnswerRecord) -> None:
        """Commit an answer to the current slot."""
        first_pass = self.in_first_pass
        self.slot_answers[self.cursor] = record
        self.answers[record.question_id] = record
        self.history.append(record)
        if record.is_correct:
            return
        if first_pass:
            self.wrong_question_ids.add(record.question_id)
        if not self.queued_after_cursor(record.question_id):
            self.questions.append(self.questions[self.cursor])

    def move_to(self, cursor: int) -> None:
        self.cursor = cursor
        self.question_started_at = time.monotonic()

    def seconds_on_question(self) -> int:
        return int(time.monotonic() - self.question_started_at)

    def seconds_elapsed(self) -> int:
        return int(time.monotonic() - self.started_at)
