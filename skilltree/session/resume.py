"""
Attempt Resume Controller.

Given an attempt reference (from a deep link or the attempt store) and the curriculum's
units, re-enter the test session at the first unanswered question. Every failure mode
ends in ``None`` so the caller simply starts a fresh attempt.
"""
from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence

from loguru import logger

from skilltree.collaborators import QuestionSource
from skilltree.errors import SkillTreeError
from skilltree.models import AttemptKind, Unit
from skilltree.session.machine import SessionState, TestSession


class ResumeController:
    """
    Resumes in-progress unit attempts.

    Resuming the same reference twice returns the same unit and session rather than
    creating a second session.
    """

    def __init__(self, question_source: QuestionSource, session_factory: Callable[[], TestSession]):
        self.question_source = question_source
        self.session_factory = session_factory
        self._resumed: dict[str, tuple[Unit, TestSession]] = {}

    def session_for(self, attempt_ref: str) -> TestSession | None:
        entry = self._resumed.get(attempt_ref)
        return entry[1] if entry else None

    async def resume(self, attempt_ref: str | None, units: Sequence[Unit], user_id: Hashable | None = None) -> Unit | None:
        """
        Resume an attempt.

        Args:
            attempt_ref: Opaque attempt id; None or empty means nothing to resume
            units: Units of the curriculum being shown
            user_id: When given, attempts owned by someone else are refused

        Returns:
            The unit whose attempt was resumed, or None
        """
        if not attempt_ref:
            return None

        existing = self._resumed.get(attempt_ref)
        if existing is not None and existing[1].state is not SessionState.CLOSED:
            return existing[0]

        try:
            snapshot = await self.question_source.load_attempt(attempt_ref)
        except SkillTreeError as e:
            logger.warning("Could not load attempt {} for resume: {}", attempt_ref, e)
            return None

        if snapshot is None:
            logger.info("Attempt {} not found; starting fresh", attempt_ref)
            return None
        if user_id is not None and snapshot.user_id != user_id:
            logger.warning("Attempt {} belongs to another user", attempt_ref)
            return None
        if snapshot.target.kind is not AttemptKind.UNIT:
            logger.info("Attempt {} is a {} attempt; only unit attempts resume", attempt_ref, snapshot.target.kind.value)
            return None

        unit = next((u for u in units if u.id == snapshot.target.unit_id), None)
        if unit is None:
            logger.warning("Attempt {} references unit {} not in this curriculum", attempt_ref, snapshot.target.unit_id)
            return None
        if not snapshot.questions:
            logger.warning("Attempt {} has no questions", attempt_ref)
            return None

        session = self.session_factory()
        try:
            await session.restore(snapshot)
        except SkillTreeError as e:
            logger.warning("Could not restore attempt {}: {}", attempt_ref, e)
            session.close()
            return None

        self._resumed[attempt_ref] = (unit, session)
        return unit
