"""
Test-Session State Machine.

Drives one learner through one attempt:

    idle -> testing -> (mistake_review_interrupt) -> reviewing -> results
         -> ad_interstitial -> closed

with ``success_celebration`` before results on a perfect first pass and
``no_hearts_interrupt`` whenever a wrong answer empties the hearts balance. Questions
answered wrong on the first pass are queued again at the end and must be answered in
the review pass; review answers never change the score.

Only one collaborator call may be in flight per session. A second call made while one
is pending raises SessionBusyError instead of racing it. Network failures leave the
session exactly as it was before the call.
"""
from __future__ import annotations

import asyncio
from collections.abc import Hashable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any

from loguru import logger

from skilltree.collaborators import AttemptHandle, ProgressStore, QuestionSource, ResumableAttempt
from skilltree.config import Settings, get_settings
from skilltree.errors import CollaboratorError, SessionBusyError, SessionStateError, SkillTreeError
from skilltree.hearts import HeartsLedger
from skilltree.models import AnswerRecord, AttemptKind, AttemptResult, AttemptTarget
from skilltree.session.attempt import TestAttempt
from skilltree.session.events import EventBus, SessionEvent
from skilltree.session.scoring import calculate_experience, compute_score, is_passed
from skilltree.session.timers import OverlayScheduler


class SessionState(str, Enum):
    """States of a test session."""

    IDLE = "idle"
    TESTING = "testing"
    REVIEWING = "reviewing"
    NO_HEARTS = "no_hearts_interrupt"
    MISTAKE_REVIEW = "mistake_review_interrupt"
    SUCCESS_CELEBRATION = "success_celebration"
    RESULTS = "results"
    AD_INTERSTITIAL = "ad_interstitial"
    CLOSED = "closed"


ANSWERING_STATES = frozenset({SessionState.TESTING, SessionState.REVIEWING})


class TestSession:
    """
    One learner's test session.

    Example:
        session = TestSession(user_id, store, source)
        await session.start(AttemptTarget.for_unit(3, "spanish"))
        await session.submit_answer(question.id, "12")
        await session.advance()
    """

    __test__ = False

    def __init__(
        self,
        user_id: Hashable,
        progress_store: ProgressStore,
        question_source: QuestionSource,
        ledger: HeartsLedger | None = None,
        events: EventBus | None = None,
        settings: Settings | None = None,
        scheduler: OverlayScheduler | None = None,
        show_ads: bool | None = None,
    ):
        self.user_id = user_id
        self.progress = progress_store
        self.questions = question_source
        self.ledger = ledger
        self.events = events or EventBus()
        self.settings = settings or get_settings()
        self.scheduler = scheduler or OverlayScheduler()
        self._show_ads = show_ads

        self.state = SessionState.IDLE
        self.attempt: TestAttempt | None = None
        self.result: AttemptResult | None = None
        self.streak = 0
        self.streak_overlay = False
        self.last_error: Exception | None = None

        self._celebrated_streak = 0
        self._resume_state = SessionState.IDLE
        self._lock = asyncio.Lock()

    # =========================================================================
    # Guards
    # =========================================================================

    @property
    def busy(self) -> bool:
        """True while a collaborator call is in flight."""
        return self._lock.locked()

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    @asynccontextmanager
    async def _exclusive(self, operation: str):
        if self._lock.locked():
            raise SessionBusyError(f"{operation}: another call is already in flight")
        async with self._lock:
            yield

    def _require(self, *states: SessionState, operation: str) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(f"{operation} not allowed in state {self.state.value} (needs {allowed})")

    def _require_attempt(self) -> TestAttempt:
        if self.attempt is None:
            raise SessionStateError("no attempt in progress")
        return self.attempt

    def _set_state(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug("Session {} -> {}", self.state.value, state.value)
        self.state = state

    async def _ensure_ledger(self) -> HeartsLedger:
        if self.ledger is None:
            self.ledger = await HeartsLedger.load(self.user_id, self.progress)
        return self.ledger

    # =========================================================================
    # Starting
    # =========================================================================

    async def start(self, target: AttemptTarget) -> TestAttempt | None:
        """
        Start an attempt.

        Returns:
            The new attempt, or None when a scored attempt can't start for lack of
            hearts (the session is then in ``no_hearts_interrupt``).
        """
        self._require(SessionState.IDLE, operation="start")
        async with self._exclusive("start"):
            ledger = await self._ensure_ledger()
            if target.is_scored and not ledger.can_start_attempt():
                logger.info("User {} has no hearts; attempt not started", self.user_id)
                self._resume_state = SessionState.IDLE
                self._set_state(SessionState.NO_HEARTS)
                return None
            handle = await self.questions.start_attempt(self.user_id, target)
            if self.closed:
                return None
            return self._begin(handle)

    async def start_review(self, curriculum_id: Hashable) -> TestAttempt | None:
        """Start a review test of previously failed questions; None when there are none."""
        self._require(SessionState.IDLE, operation="start_review")
        async with self._exclusive("start_review"):
            ledger = await self._ensure_ledger()
            if not ledger.can_start_attempt():
                self._resume_state = SessionState.IDLE
                self._set_state(SessionState.NO_HEARTS)
                return None
            handle = await self.questions.start_review_attempt(self.user_id, curriculum_id)
            if handle is None:
                logger.info("No previous mistakes to review for user {}", self.user_id)
                return None
            if self.closed:
                return None
            return self._begin(handle)

    def _defaults_for(self, target: AttemptTarget) -> tuple[int, int]:
        if target.kind is AttemptKind.FINAL_TEST:
            return self.settings.final_test_passing_score, self.settings.final_test_base_xp
        return self.settings.unit_passing_score, self.settings.unit_base_xp

    def _begin(self, handle: AttemptHandle) -> TestAttempt:
        if not handle.questions:
            raise CollaboratorError(f"attempt {handle.attempt_id} has no questions")
        passing, base_xp = self._defaults_for(handle.target)
        self.attempt = TestAttempt(
            attempt_id=handle.attempt_id,
            target=handle.target,
            questions=list(handle.questions),
            passing_score=handle.passing_score if handle.passing_score is not None else passing,
            base_experience=handle.base_experience if handle.base_experience is not None else base_xp,
            is_first_attempt=handle.is_first_attempt,
        )
        self.streak = 0
        self._celebrated_streak = 0
        self._set_state(SessionState.TESTING)
        logger.info(
            "Attempt {} started ({} {} questions)",
            handle.attempt_id,
            len(handle.questions),
            handle.target.kind.value,
        )
        return self.attempt

    async def restore(self, snapshot: ResumableAttempt) -> TestAttempt:
        """
        Re-enter an in-progress attempt at its first unanswered question.

        When every question already has an answer the cursor lands on the last one so
        the learner can advance to the results.
        """
        self._require(SessionState.IDLE, operation="restore")
        if not snapshot.questions:
            raise CollaboratorError(f"attempt {snapshot.attempt_id} has no questions")
        async with self._exclusive("restore"):
            ledger = await self._ensure_ledger()

        passing, base_xp = self._defaults_for(snapshot.target)
        attempt = TestAttempt(
            attempt_id=snapshot.attempt_id,
            target=snapshot.target,
            questions=list(snapshot.questions),
            passing_score=snapshot.passing_score if snapshot.passing_score is not None else passing,
            base_experience=snapshot.base_experience if snapshot.base_experience is not None else base_xp,
            is_first_attempt=snapshot.is_first_attempt,
        )
        for slot, question in enumerate(snapshot.questions):
            record = snapshot.answers.get(question.id)
            if record is None:
                continue
            attempt.slot_answers[slot] = record
            attempt.answers[question.id] = record
            attempt.history.append(record)

        wrong = {qid for qid, rec in snapshot.answers.items() if not rec.is_correct}
        wrong |= set(snapshot.wrong_question_ids)
        for question in snapshot.questions:
            if question.id not in wrong:
                continue
            attempt.wrong_question_ids.add(question.id)
            attempt.questions.append(question)
            record = attempt.answers.get(question.id)
            if record is not None and record.is_correct:
                # Already put right in the review pass
                attempt.slot_answers[len(attempt.questions) - 1] = record

        unanswered = [i for i in range(len(attempt.questions)) if i not in attempt.slot_answers]
        attempt.move_to(unanswered[0] if unanswered else len(attempt.questions) - 1)

        self.attempt = attempt
        self.streak = 0
        self._celebrated_streak = 0
        state = SessionState.TESTING if attempt.in_first_pass else SessionState.REVIEWING
        if attempt.target.is_scored and ledger.depleted:
            self._resume_state = state
            self._set_state(SessionState.NO_HEARTS)
        else:
            self._set_state(state)
        logger.info("Attempt {} resumed at question {}", attempt.attempt_id, attempt.cursor + 1)
        return attempt

    # =========================================================================
    # Answering
    # =========================================================================

    def _previous_answer(self, question_id: Hashable, slot: int | None = None) -> AnswerRecord | None:
        attempt = self._require_attempt()
        if slot is not None:
            record = attempt.slot_answers.get(slot)
            if record is not None and record.question_id == question_id:
                return record
            if slot != attempt.cursor:
                raise SessionStateError(f"slot {slot} is not the current question")
            return None
        current = attempt.current_question
        if current is not None and current.id == question_id and not attempt.current_answered:
            return None
        return attempt.answers.get(question_id)

    async def submit_answer(self, question_id: Hashable, answer: Any, slot: int | None = None) -> AnswerRecord:
        """
        Grade and record an answer to the current question.

        Submitting again for a question that already has an answer in this pass is a
        no-op that returns the recorded answer. Pass ``slot`` (the cursor the question
        was shown at) so a late resubmission from the first pass can't be taken as the
        review-pass answer to the same question.

        The heart is debited before the answer is recorded, so a stored wrong answer
        has always been paid for. If recording fails after the debit, retrying the
        same slot does not debit again.

        Raises:
            SessionStateError: Not answering, or not the current question
            SessionBusyError: Another call is in flight
            TransientError: Grading, the hearts debit or persistence failed; the
                answer was not recorded
        """
        attempt = self._require_attempt()
        previous = self._previous_answer(question_id, slot)
        if previous is not None:
            logger.debug("Ignoring duplicate answer for question {}", question_id)
            return previous

        self._require(*ANSWERING_STATES, operation="submit_answer")
        question = attempt.current_question
        if question is None or question.id != question_id:
            raise SessionStateError(f"question {question_id} is not the current question")

        async with self._exclusive("submit_answer"):
            cursor = attempt.cursor
            is_correct = bool(await self.questions.grade_answer(question, answer))
            record = AnswerRecord(
                question_id=question.id,
                answer=answer,
                is_correct=is_correct,
                time_spent_seconds=attempt.seconds_on_question(),
            )
            if self.closed:
                return record

            ledger = self.ledger
            costs_heart = not is_correct and attempt.target.is_scored
            if costs_heart and cursor not in attempt.debited_slots:
                await ledger.debit(1)
                attempt.debited_slots.add(cursor)
            if self.closed:
                return record

            await self.questions.record_answer(attempt.attempt_id, record)
            if self.closed:
                return record

            attempt.record(record)
            if is_correct:
                self.streak += 1
            else:
                self.streak = 0
                self._celebrated_streak = 0

            if costs_heart and ledger.depleted:
                self._resume_state = self.state
                self._set_state(SessionState.NO_HEARTS)
                self.events.emit(SessionEvent.HEARTS_DEPLETED, user_id=self.user_id, attempt_id=attempt.attempt_id)
        return record

    async def refill_hearts(self, amount: int = 0, purchase: bool = False) -> SessionState:
        """
        Leave ``no_hearts_interrupt`` after hearts were restored.

        Args:
            amount: Hearts to credit first (a grant); 0 just re-reads the balance,
                which picks up regenerated hearts
            purchase: Buy one heart with zaps instead

        Returns:
            The new state; still ``no_hearts_interrupt`` if the balance is still empty
        """
        self._require(SessionState.NO_HEARTS, operation="refill_hearts")
        async with self._exclusive("refill_hearts"):
            ledger = await self._ensure_ledger()
            if purchase:
                await ledger.purchase()
            elif amount > 0:
                await ledger.credit(amount)
            else:
                await ledger.reconcile()
            if self.closed:
                return self.state
            if ledger.can_start_attempt():
                self._set_state(self._resume_state)
        return self.state

    # =========================================================================
    # Moving on
    # =========================================================================

    async def advance(self) -> SessionState:
        """
        Move past the answered current question.

        At the end of the first pass this enters the success celebration (no
        mistakes), the mistake review interrupt (more unique mistakes than the
        threshold) or the review pass. After the last question it completes the
        attempt and reports the result.
        """
        attempt = self._require_attempt()
        self._require(*ANSWERING_STATES, operation="advance")
        if not attempt.current_answered:
            raise SessionStateError("answer the current question before advancing")

        async with self._exclusive("advance"):
            end_of_first_pass = self.state is SessionState.TESTING and attempt.at_end_of_first_pass
            perfect_finish = end_of_first_pass and not attempt.wrong_question_ids
            if not perfect_finish:
                self._maybe_celebrate_streak()

            if end_of_first_pass:
                if perfect_finish:
                    self._enter_success_celebration()
                elif len(attempt.wrong_question_ids) > self.settings.mistake_threshold:
                    self._enter_mistake_review()
                else:
                    self._start_review_pass()
            elif not attempt.is_last_slot:
                attempt.move_to(attempt.cursor + 1)
            else:
                await self._complete()
        return self.state

    def _maybe_celebrate_streak(self) -> None:
        threshold = self.settings.streak_threshold
        if self.streak == 0 or self.streak % threshold or self._celebrated_streak == self.streak:
            return
        self._celebrated_streak = self.streak
        self.streak_overlay = True
        self.events.emit(SessionEvent.STREAK_REACHED, user_id=self.user_id, streak=self.streak)
        self.scheduler.schedule("streak", self.settings.streak_overlay_seconds, self.dismiss_streak)

    def dismiss_streak(self) -> None:
        """Hide the streak overlay; it never blocks answering."""
        self.scheduler.cancel("streak")
        self.streak_overlay = False

    def _enter_mistake_review(self) -> None:
        self._set_state(SessionState.MISTAKE_REVIEW)
        self.scheduler.schedule("mistakes", self.settings.mistake_overlay_seconds, self._auto_acknowledge)

    def _auto_acknowledge(self) -> None:
        if self.state is SessionState.MISTAKE_REVIEW:
            self._start_review_pass()

    async def acknowledge_mistakes(self) -> SessionState:
        """Dismiss the mistake analysis and start the review pass."""
        self._require(SessionState.MISTAKE_REVIEW, operation="acknowledge_mistakes")
        self.scheduler.cancel("mistakes")
        self._start_review_pass()
        return self.state

    def _start_review_pass(self) -> None:
        attempt = self._require_attempt()
        self._set_state(SessionState.REVIEWING)
        attempt.move_to(attempt.cursor + 1)

    def _enter_success_celebration(self) -> None:
        self._set_state(SessionState.SUCCESS_CELEBRATION)
        self.scheduler.schedule("success", self.settings.success_overlay_seconds, self._finish_celebration)

    async def _finish_celebration(self) -> None:
        async with self._lock:
            if self.state is not SessionState.SUCCESS_CELEBRATION:
                return
            try:
                await self._complete()
            except SkillTreeError as e:
                # Stay in the celebration; dismiss_celebration() retries
                self.last_error = e
                logger.warning("Could not record attempt result: {}", e)

    async def dismiss_celebration(self) -> SessionState:
        """End the success celebration now and report the result."""
        self._require(SessionState.SUCCESS_CELEBRATION, operation="dismiss_celebration")
        self.scheduler.cancel("success")
        async with self._exclusive("dismiss_celebration"):
            await self._complete()
        return self.state

    async def _complete(self) -> AttemptResult | None:
        attempt = self._require_attempt()
        total = attempt.first_pass_count
        correct = attempt.correct_first_pass
        score = compute_score(correct, total)
        passed = is_passed(score, attempt.passing_score)

        experience = 0
        if passed and attempt.target.is_scored:
            experience = calculate_experience(
                base_experience=attempt.base_experience,
                total_questions=total,
                correct_answers=correct,
                total_answers=len(attempt.history),
                time_elapsed_seconds=attempt.seconds_elapsed(),
                is_first_attempt=attempt.is_first_attempt,
                ideal_seconds_per_question=self.settings.ideal_seconds_per_question,
            ).final

        result = AttemptResult(
            attempt_id=attempt.attempt_id,
            target=attempt.target,
            total_questions=total,
            correct_answers=correct,
            score=score,
            passing_score=attempt.passing_score,
            passed=passed,
            experience_gained=experience,
            total_answers=len(attempt.history),
            time_elapsed_seconds=attempt.seconds_elapsed(),
            wrong_question_ids=frozenset(attempt.wrong_question_ids),
        )
        await self.progress.record_attempt_result(attempt.attempt_id, result)
        if self.closed:
            return None

        self.result = result
        self.last_error = None
        self.dismiss_streak()
        self._set_state(SessionState.RESULTS)
        logger.info(
            "Attempt {} finished: {}% ({}/{}) {}",
            attempt.attempt_id,
            score,
            correct,
            total,
            "passed" if passed else "failed",
        )
        self._emit_completion(result)
        return result

    def _emit_completion(self, result: AttemptResult) -> None:
        if not result.passed or not result.target.is_scored:
            return
        target = result.target
        if target.kind is AttemptKind.UNIT:
            self.events.emit(
                SessionEvent.UNIT_APPROVED,
                user_id=self.user_id,
                unit_id=target.unit_id,
                curriculum_id=target.curriculum_id,
                experience=result.experience_gained,
            )
        elif target.kind is AttemptKind.FINAL_TEST:
            self.events.emit(
                SessionEvent.FINAL_TEST_PASSED,
                user_id=self.user_id,
                curriculum_id=target.curriculum_id,
                experience=result.experience_gained,
            )
            self.events.emit(
                SessionEvent.COURSE_TOKEN_GRANTED,
                user_id=self.user_id,
                curriculum_id=target.curriculum_id,
            )

    # =========================================================================
    # Leaving
    # =========================================================================

    @property
    def show_ads(self) -> bool:
        if self._show_ads is not None:
            return self._show_ads
        unlimited = self.ledger is not None and self.ledger.unlimited
        return self.settings.ads_enabled and not unlimited

    async def finish(self) -> SessionState:
        """Leave the results screen, via the ad interstitial after a pass."""
        self._require(SessionState.RESULTS, operation="finish")
        if self.result is not None and self.result.passed and self.show_ads:
            self._set_state(SessionState.AD_INTERSTITIAL)
            self.scheduler.schedule("ad", self.settings.ad_interstitial_seconds, self.close)
        else:
            self.close()
        return self.state

    def close(self) -> None:
        """Abandon or end the session. Always allowed; hearts already spent stay spent."""
        if self.closed:
            return
        self.scheduler.cancel_all()
        self.streak_overlay = False
        if self.attempt is not None and self.result is None:
            logger.info("Attempt {} abandoned", self.attempt.attempt_id)
        self._set_state(SessionState.CLOSED)

    def __repr__(self) -> str:
        attempt = self.attempt.attempt_id if self.attempt else None
        return f"TestSession(user={self.user_id!r}, state={self.state.value}, attempt={attempt!r})"
