"""
In-memory progress store and question source.

Backs the CLI's offline mode and the test suite. Both protocols are served by one
object because attempts, answers and approvals share state, as they would on a real
backend. Hearts regenerate on reads the way the platform does it: one heart
every ``hours_per_heart`` since the last regeneration, up to ``max_hearts``. Calls can
be made to fail (``fail_next``) or to wait on a gate so tests can
exercise retry paths and in-flight races.
"""
from __future__ import annotations

import asyncio
import random
from collections import defaultdict
from collections.abc import Callable, Hashable, Iterable
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from skilltree import grading
from skilltree.collaborators import AttemptHandle, ResumableAttempt
from skilltree.errors import CollaboratorError, TransientError
from skilltree.hearts.regeneration import (
    HOURS_PER_HEART,
    ZAPS_PER_HEART_PURCHASE,
    can_purchase_heart,
    hours_until_next_heart,
    regenerated_balance,
)
from skilltree.models import (
    AnswerRecord,
    AttemptKind,
    AttemptResult,
    AttemptTarget,
    Curriculum,
    HeartsBalance,
    Question,
)
from skilltree.session.attempt_store import AttemptSnapshot, AttemptStore, new_attempt_id

DEFAULT_HEARTS = 5


class InMemoryPlatform:
    """Implements ProgressStore and QuestionSource over plain dicts."""

    def __init__(
        self,
        curriculum: Curriculum | None = None,
        unit_questions: dict[Hashable, list[Question]] | None = None,
        final_questions: list[Question] | None = None,
        hearts: int = DEFAULT_HEARTS,
        max_hearts: int = DEFAULT_HEARTS,
        hours_per_heart: int = HOURS_PER_HEART,
        zaps_per_heart_purchase: int = ZAPS_PER_HEART_PURCHASE,
        attempt_store: AttemptStore | None = None,
        review_limit: int = 10,
        seed: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.curriculum = curriculum
        self.unit_questions = {k: list(v) for k, v in (unit_questions or {}).items()}
        self.final_questions = list(final_questions or [])
        self.default_hearts = hearts
        self.max_hearts = max_hearts
        self.hours_per_heart = hours_per_heart
        self.heart_price = zaps_per_heart_purchase
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.attempt_store = attempt_store
        self.review_limit = review_limit
        self._rng = random.Random(seed)

        self.approved: dict[tuple[Hashable, Hashable], set[Hashable]] = defaultdict(set)
        self.final_passed: set[tuple[Hashable, Hashable]] = set()
        self.hearts: dict[Hashable, int] = {}
        self.unlimited_users: set[Hashable] = set()
        self.last_heart_reset: dict[Hashable, datetime] = {}
        self.zaps: dict[Hashable, int] = defaultdict(int)
        self.results: dict[str, AttemptResult] = {}
        self.mistakes: dict[tuple[Hashable, Hashable], set[Hashable]] = defaultdict(set)

        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self._failures: dict[str, list[Exception]] = defaultdict(list)
        self._snapshots: dict[str, AttemptSnapshot] = {}

        self._questions: dict[Hashable, Question] = {}
        for questions in self.unit_questions.values():
            self._index(questions)
        self._index(self.final_questions)

    def _index(self, questions: Iterable[Question]) -> None:
        for question in questions:
            self._questions[question.id] = question

    # =========================================================================
    # Test hooks
    # =========================================================================

    def fail_next(self, operation: str, error: Exception | None = None, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        error = error or TransientError(f"{operation} failed", operation=operation)
        self._failures[operation].extend([error] * times)

    def hold(self) -> asyncio.Event:
        """Block every call until the returned event is set."""
        self.gate = asyncio.Event()
        return self.gate

    def approve(self, user_id: Hashable, curriculum_id: Hashable, *unit_ids: Hashable) -> None:
        self.approved[(user_id, curriculum_id)].update(unit_ids)

    def set_hearts(
        self,
        user_id: Hashable,
        balance: int,
        unlimited: bool = False,
        last_reset: datetime | None = None,
    ) -> None:
        self.hearts[user_id] = balance
        if last_reset is not None:
            self.last_heart_reset[user_id] = last_reset
        if unlimited:
            self.unlimited_users.add(user_id)
        else:
            self.unlimited_users.discard(user_id)

    def set_zaps(self, user_id: Hashable, zaps: int) -> None:
        self.zaps[user_id] = zaps

    def can_purchase(self, user_id: Hashable) -> bool:
        balance = self._regenerate(user_id)
        return can_purchase_heart(balance, self.zaps[user_id], self.max_hearts, self.heart_price)

    def next_heart_in(self, user_id: Hashable) -> float | None:
        """Hours until the next regenerated heart, or None when already full."""
        balance = self._regenerate(user_id)
        last = self.last_heart_reset.get(user_id)
        if last is None:
            return None if balance >= self.max_hearts else float(self.hours_per_heart)
        return hours_until_next_heart(balance, last, self.clock(), self.max_hearts, self.hours_per_heart)

    async def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    # =========================================================================
    # ProgressStore
    # =========================================================================

    async def get_approved_unit_ids(self, user_id: Hashable, curriculum_id: Hashable) -> set[Hashable]:
        await self._enter("get_approved_unit_ids")
        return set(self.approved[(user_id, curriculum_id)])

    def _regenerate(self, user_id: Hashable) -> int:
        balance = self.hearts.get(user_id, self.default_hearts)
        last = self.last_heart_reset.get(user_id)
        if user_id in self.unlimited_users or last is None:
            return balance
        now = self.clock()
        regenerated = regenerated_balance(balance, last, now, self.max_hearts, self.hours_per_heart)
        if regenerated > balance:
            logger.debug("Regenerated {} heart(s) for {}", regenerated - balance, user_id)
            self.hearts[user_id] = regenerated
            self.last_heart_reset[user_id] = now
        return regenerated

    async def get_hearts(self, user_id: Hashable) -> HeartsBalance:
        await self._enter("get_hearts")
        return HeartsBalance(
            balance=self._regenerate(user_id),
            unlimited=user_id in self.unlimited_users,
        )

    async def debit_hearts(self, user_id: Hashable, amount: int) -> int:
        await self._enter("debit_hearts")
        current = self._regenerate(user_id)
        if user_id in self.unlimited_users:
            return current
        # The regeneration clock starts when a full balance is first spent.
        if current >= self.max_hearts or user_id not in self.last_heart_reset:
            self.last_heart_reset[user_id] = self.clock()
        balance = max(0, current - amount)
        self.hearts[user_id] = balance
        return balance

    async def credit_hearts(self, user_id: Hashable, amount: int) -> int:
        await self._enter("credit_hearts")
        balance = min(self.max_hearts, self._regenerate(user_id) + amount)
        self.hearts[user_id] = balance
        return balance

    async def purchase_heart(self, user_id: Hashable) -> int:
        await self._enter("purchase_heart")
        balance = self._regenerate(user_id)
        if not can_purchase_heart(balance, self.zaps[user_id], self.max_hearts, self.heart_price):
            raise CollaboratorError(
                f"cannot buy a heart: {balance} hearts, {self.zaps[user_id]} zaps "
                f"(price {self.heart_price})"
            )
        self.zaps[user_id] -= self.heart_price
        self.hearts[user_id] = balance + 1
        return balance + 1

    async def record_attempt_result(self, attempt_id: str, result: AttemptResult) -> None:
        await self._enter("record_attempt_result")
        snapshot = self._snapshots.get(attempt_id)
        if snapshot is None:
            raise CollaboratorError(f"unknown attempt {attempt_id}")
        self.results[attempt_id] = result
        snapshot.completed = True
        self._persist(snapshot)

        target = result.target
        if not result.passed or not target.is_scored:
            return
        key = (snapshot.user_id, target.curriculum_id)
        if target.kind is AttemptKind.UNIT:
            self.approved[key].add(target.unit_id)
        elif target.kind is AttemptKind.FINAL_TEST:
            self.final_passed.add(key)

    async def has_passed_final_test(self, user_id: Hashable, curriculum_id: Hashable) -> bool:
        await self._enter("has_passed_final_test")
        return (user_id, curriculum_id) in self.final_passed

    # =========================================================================
    # QuestionSource
    # =========================================================================

    def _persist(self, snapshot: AttemptSnapshot) -> None:
        self._snapshots[snapshot.attempt_id] = snapshot
        if self.attempt_store is not None:
            self.attempt_store.save(snapshot)

    def _open(self, user_id: Hashable, target: AttemptTarget, questions: list[Question], **kwargs: Any) -> AttemptHandle:
        snapshot = AttemptSnapshot.for_target(user_id, target, [q.id for q in questions], attempt_id=new_attempt_id(), **kwargs)
        self._persist(snapshot)
        return AttemptHandle(
            attempt_id=snapshot.attempt_id,
            target=target,
            questions=questions,
            passing_score=snapshot.passing_score,
            base_experience=snapshot.base_experience,
            is_first_attempt=snapshot.is_first_attempt,
        )

    async def start_attempt(self, user_id: Hashable, target: AttemptTarget) -> AttemptHandle:
        await self._enter("start_attempt")
        key = (user_id, target.curriculum_id)

        if target.kind is AttemptKind.FINAL_TEST:
            questions = sorted(self.final_questions, key=lambda q: q.order)
            passing = None
            if self.curriculum is not None and self.curriculum.final_test is not None:
                passing = self.curriculum.final_test.passing_score
            kwargs = {"passing_score": passing, "is_first_attempt": key not in self.final_passed}
        elif target.kind is AttemptKind.UNIT:
            questions = sorted(self.unit_questions.get(target.unit_id, []), key=lambda q: q.order)
            unit = self.curriculum.get_unit(target.unit_id) if self.curriculum else None
            kwargs = {
                "base_experience": unit.experience_points if unit else None,
                "is_first_attempt": target.unit_id not in self.approved[key],
            }
        else:
            raise CollaboratorError("review attempts are started with start_review_attempt")

        if not questions:
            raise CollaboratorError(f"no questions for {target.kind.value} {target.unit_id or target.curriculum_id}")
        return self._open(user_id, target, questions, **kwargs)

    async def grade_answer(self, question: Question, answer: Any) -> bool:
        await self._enter("grade_answer")
        return grading.grade(question, answer)

    async def record_answer(self, attempt_id: str, record: AnswerRecord) -> None:
        await self._enter("record_answer")
        snapshot = self._snapshots.get(attempt_id)
        if snapshot is None:
            raise CollaboratorError(f"unknown attempt {attempt_id}")
        snapshot.record_answer(record)
        self._persist(snapshot)

        mistakes = self.mistakes[(snapshot.user_id, snapshot.curriculum_id)]
        if not record.is_correct:
            mistakes.add(record.question_id)
        elif snapshot.kind == AttemptKind.REVIEW.value:
            mistakes.discard(record.question_id)

    async def load_attempt(self, attempt_id: str) -> ResumableAttempt | None:
        await self._enter("load_attempt")
        snapshot = self._snapshots.get(attempt_id)
        if snapshot is None and self.attempt_store is not None:
            snapshot = self.attempt_store.load(attempt_id)
        if snapshot is None or snapshot.completed or snapshot.is_expired():
            return None

        missing = [qid for qid in snapshot.question_ids if qid not in self._questions]
        if missing:
            logger.warning("Attempt {} references unknown questions {}", attempt_id, missing)
            return None
        self._snapshots[attempt_id] = snapshot
        return ResumableAttempt(
            attempt_id=snapshot.attempt_id,
            user_id=snapshot.user_id,
            target=snapshot.target,
            questions=[self._questions[qid] for qid in snapshot.question_ids],
            answers=snapshot.answer_records(),
            wrong_question_ids=set(snapshot.wrong_question_ids),
            passing_score=snapshot.passing_score,
            base_experience=snapshot.base_experience,
            is_first_attempt=snapshot.is_first_attempt,
        )

    async def start_review_attempt(self, user_id: Hashable, curriculum_id: Hashable) -> AttemptHandle | None:
        await self._enter("start_review_attempt")
        candidates = [qid for qid in self.mistakes[(user_id, curriculum_id)] if qid in self._questions]
        if not candidates:
            return None
        candidates.sort(key=str)
        self._rng.shuffle(candidates)
        questions = [self._questions[qid] for qid in candidates[: self.review_limit]]
        return self._open(user_id, AttemptTarget.for_review(curriculum_id), questions)
