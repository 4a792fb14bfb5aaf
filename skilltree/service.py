"""
Learning path service.

Ties the pure path engine to the collaborators: fetches the learner's approved set,
builds the path view, checks that a clicked node is actually clickable, starts test
sessions for it and refetches progress once a session reports its result.
"""
from __future__ import annotations

from collections.abc import Hashable

from loguru import logger

from skilltree.collaborators import ProgressStore, QuestionSource
from skilltree.config import Settings, get_settings
from skilltree.errors import SessionStateError
from skilltree.models import AttemptTarget, Curriculum
from skilltree.path import AdjacencyGraph, LearningPathView, build_learning_path
from skilltree.session import EventBus, ResumeController, SessionState, TestSession


class LearningPathService:
    """One learner's view of one curriculum."""

    def __init__(
        self,
        user_id: Hashable,
        curriculum: Curriculum,
        progress_store: ProgressStore,
        question_source: QuestionSource,
        graph: AdjacencyGraph | None = None,
        settings: Settings | None = None,
        events: EventBus | None = None,
    ):
        self.user_id = user_id
        self.curriculum = curriculum
        self.progress_store = progress_store
        self.question_source = question_source
        self.graph = graph
        self.settings = settings or get_settings()
        self.events = events or EventBus()
        self.view: LearningPathView | None = None
        self.resumer = ResumeController(question_source, self.new_session)

    async def load_path(self) -> LearningPathView:
        """Fetch progress and rebuild the path view."""
        approved = await self.progress_store.get_approved_unit_ids(self.user_id, self.curriculum.id)
        final_passed = False
        if self.curriculum.final_test is not None:
            final_passed = await self.progress_store.has_passed_final_test(self.user_id, self.curriculum.id)
        self.view = build_learning_path(
            self.curriculum,
            approved,
            final_test_passed=final_passed,
            graph=self.graph,
            columns=self.settings.grid_columns,
        )
        return self.view

    def new_session(self) -> TestSession:
        return TestSession(
            self.user_id,
            self.progress_store,
            self.question_source,
            events=self.events,
            settings=self.settings,
        )

    async def _current_view(self) -> LearningPathView:
        return self.view or await self.load_path()

    async def start_unit(self, unit_id: Hashable, practice: bool = False) -> TestSession:
        """
        Start an attempt on a unit.

        Raises:
            SessionStateError: The unit is unknown or locked
        """
        view = await self._current_view()
        node = view.node(unit_id)
        if node is None:
            raise SessionStateError(f"unit {unit_id} is not part of {self.curriculum.id}")
        if not node.clickable:
            raise SessionStateError(f"unit {unit_id} is locked")

        session = self.new_session()
        await session.start(AttemptTarget.for_unit(unit_id, self.curriculum.id, practice=practice))
        return session

    async def start_final_test(self) -> TestSession:
        """
        Start the final test.

        Raises:
            SessionStateError: No final test, or it is not available yet
        """
        view = await self._current_view()
        if view.final_test is None:
            raise SessionStateError(f"{self.curriculum.id} has no final test")
        if not view.final_test.clickable:
            raise SessionStateError(f"final test is {view.final_test.state.value}")

        session = self.new_session()
        await session.start(AttemptTarget.for_final_test(self.curriculum.id))
        return session

    async def start_review(self) -> TestSession | None:
        """Start a review of previous mistakes; None when there is nothing to review."""
        session = self.new_session()
        attempt = await session.start_review(self.curriculum.id)
        if attempt is None and session.state is SessionState.IDLE:
            session.close()
            return None
        return session

    async def resume(self, attempt_ref: str | None) -> TestSession | None:
        """Re-enter an in-progress unit attempt, or None to start fresh."""
        unit = await self.resumer.resume(attempt_ref, self.curriculum.units, user_id=self.user_id)
        if unit is None:
            return None
        logger.info("Resuming unit {} for user {}", unit.id, self.user_id)
        return self.resumer.session_for(attempt_ref)

    async def refresh_after(self, session: TestSession) -> LearningPathView:
        """Refetch progress after a session produced its result."""
        if session.result is not None and session.result.passed:
            logger.debug("Attempt {} passed; refreshing path", session.result.attempt_id)
        return await self.load_path()
