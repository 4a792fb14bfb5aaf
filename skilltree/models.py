"""
Core domain models for curricula, units and questions.

Units and questions are authored elsewhere and are immutable for the duration of a
session, so they are frozen dataclasses. Derived values (unit state, grid cell) are
never stored on them.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

GRID_COLUMNS = 5

UnitId = Hashable


class UnitState(str, Enum):
    """Display state of a unit on the learning path."""

    LOCKED = "locked"
    AVAILABLE = "available"
    COMPLETED = "completed"


class QuestionType(str, Enum):
    """Question types with their own grading rule."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    FILL_IN_BLANK = "fill_in_blank"
    ORDER_WORDS = "order_words"


class AttemptKind(str, Enum):
    """What an attempt is testing."""

    UNIT = "unit"
    FINAL_TEST = "final_test"
    REVIEW = "review"


@dataclass(frozen=True)
class Unit:
    """One learning node placed on the grid."""

    id: UnitId
    position: int
    mandatory: bool = True
    name: str = ""
    description: str = ""
    experience_points: int = 10

    @property
    def row(self) -> int:
        return self.position // GRID_COLUMNS

    @property
    def column(self) -> int:
        return self.position % GRID_COLUMNS


@dataclass(frozen=True)
class FinalTest:
    """Terminal assessment of a curriculum."""

    id: Hashable
    passing_score: int = 70
    title: str = "Final test"


@dataclass(frozen=True)
class Curriculum:
    """Ordered units plus an optional final test."""

    id: Hashable
    title: str
    units: tuple[Unit, ...] = ()
    final_test: FinalTest | None = None

    @property
    def mandatory_units(self) -> tuple[Unit, ...]:
        return tuple(u for u in self.units if u.mandatory)

    def get_unit(self, unit_id: UnitId) -> Unit | None:
        """Find a unit by id, or None."""
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        return None


@dataclass(frozen=True)
class AnswerOption:
    """One selectable answer of a question."""

    id: Hashable
    text: str
    is_correct: bool = False
    order: int = 0


@dataclass(frozen=True)
class Question:
    """A question as delivered to a test attempt."""

    id: Hashable
    type: QuestionType
    title: str
    answers: tuple[AnswerOption, ...] = ()
    content: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    order: int = 0


@dataclass(frozen=True)
class AttemptTarget:
    """What a test attempt is for: a unit, a final test, or a review of mistakes."""

    kind: AttemptKind
    curriculum_id: Hashable
    unit_id: UnitId | None = None
    practice: bool = False

    @classmethod
    def for_unit(cls, unit_id: UnitId, curriculum_id: Hashable, practice: bool = False) -> AttemptTarget:
        return cls(kind=AttemptKind.UNIT, curriculum_id=curriculum_id, unit_id=unit_id, practice=practice)

    @classmethod
    def for_final_test(cls, curriculum_id: Hashable) -> AttemptTarget:
        return cls(kind=AttemptKind.FINAL_TEST, curriculum_id=curriculum_id)

    @classmethod
    def for_review(cls, curriculum_id: Hashable) -> AttemptTarget:
        return cls(kind=AttemptKind.REVIEW, curriculum_id=curriculum_id)

    @property
    def is_scored(self) -> bool:
        """Scored attempts cost hearts on wrong answers; practice attempts don't."""
        return not self.practice

    @property
    def is_final_test(self) -> bool:
        return self.kind is AttemptKind.FINAL_TEST


@dataclass(frozen=True)
class HeartsBalance:
    """Hearts as reported by the progress store."""

    balance: int
    unlimited: bool = False

    def __post_init__(self) -> None:
        if self.balance < 0:
            object.__setattr__(self, "balance", 0)


@dataclass(frozen=True)
class AnswerRecord:
    """A learner's recorded answer to one question."""

    question_id: Hashable
    answer: Any
    is_correct: bool
    time_spent_seconds: int = 0


@dataclass(frozen=True)
class AttemptResult:
    """Terminal result of a test attempt."""

    attempt_id: str
    target: AttemptTarget
    total_questions: int
    correct_answers: int
    score: int
    passing_score: int
    passed: bool
    experience_gained: int = 0
    total_answers: int = 0
    time_elapsed_seconds: int = 0
    wrong_question_ids: frozenset = frozenset()

    @property
    def incorrect_answers(self) -> int:
        return self.total_questions - self.correct_answers

    @property
    def perfect(self) -> bool:
        return self.total_questions > 0 and self.correct_answers == self.total_questions
