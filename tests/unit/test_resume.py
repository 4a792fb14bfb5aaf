"""
Unit tests for resuming attempts.
"""

import pytest

from skilltree.collaborators.memory import InMemoryPlatform
from skilltree.models import AttemptTarget, Unit
from skilltree.session import AttemptStore, ResumeController, SessionState, TestSession

from factories import RIGHT, WRONG, answer_current, questions_for

UNIT_1 = AttemptTarget.for_unit(1, "spanish")


@pytest.fixture
def controller(platform, make_session):
    return ResumeController(platform, make_session)


async def abandon_after(make_session, answers):
    """Start unit 1, answer the given sequence, then close the session."""
    session = make_session()
    await session.start(UNIT_1)
    for answer in answers:
        await answer_current(session, answer)
    attempt_id = session.attempt.attempt_id
    session.close()
    return attempt_id


class TestResumeController:
    @pytest.mark.asyncio
    async def test_resumes_at_first_unanswered_question(self, controller, make_session, units):
        attempt_id = await abandon_after(make_session, [RIGHT, RIGHT])

        unit = await controller.resume(attempt_id, units)

        session = controller.session_for(attempt_id)
        assert unit.id == 1
        assert session.state is SessionState.TESTING
        assert session.attempt.cursor == 2
        assert session.attempt.current_question.id == "u1-q3"

    @pytest.mark.asyncio
    async def test_is_idempotent(self, controller, make_session, units, platform):
        attempt_id = await abandon_after(make_session, [RIGHT])

        first = await controller.resume(attempt_id, units)
        session = controller.session_for(attempt_id)
        second = await controller.resume(attempt_id, units)

        assert first == second
        assert controller.session_for(attempt_id) is session
        assert platform.calls.count("load_attempt") == 1

    @pytest.mark.asyncio
    async def test_unit_missing_from_curriculum(self, controller, make_session):
        attempt_id = await abandon_after(make_session, [RIGHT])

        other_units = [Unit(id=99, position=0)]

        assert await controller.resume(attempt_id, other_units) is None
        assert controller.session_for(attempt_id) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ref", [None, "", "does-not-exist"])
    async def test_unknown_reference(self, controller, units, ref):
        assert await controller.resume(ref, units) is None

    @pytest.mark.asyncio
    async def test_load_failure_returns_none(self, controller, make_session, units, platform, log_messages):
        attempt_id = await abandon_after(make_session, [RIGHT])
        platform.fail_next("load_attempt")

        assert await controller.resume(attempt_id, units) is None
        assert any("Could not load attempt" in m for m in log_messages)

    @pytest.mark.asyncio
    async def test_other_users_attempt(self, controller, make_session, units):
        attempt_id = await abandon_after(make_session, [RIGHT])

        assert await controller.resume(attempt_id, units, user_id="bob") is None

    @pytest.mark.asyncio
    async def test_completed_attempt_is_not_resumable(self, controller, make_session, units):
        session = make_session()
        await session.start(UNIT_1)
        for _ in range(5):
            await answer_current(session, RIGHT)
        await session.dismiss_celebration()

        assert await controller.resume(session.attempt.attempt_id, units) is None

    @pytest.mark.asyncio
    async def test_final_test_attempts_do_not_resume(self, controller, make_session, units):
        session = make_session()
        await session.start(AttemptTarget.for_final_test("spanish"))
        session.close()

        assert await controller.resume(session.attempt.attempt_id, units) is None

    @pytest.mark.asyncio
    async def test_mistakes_are_restored(self, controller, make_session, units):
        attempt_id = await abandon_after(make_session, [WRONG, RIGHT])

        await controller.resume(attempt_id, units)
        attempt = controller.session_for(attempt_id).attempt

        assert attempt.wrong_question_ids == {"u1-q1"}
        assert attempt.cursor == 2
        assert [q.id for q in attempt.questions[5:]] == ["u1-q1"]

    @pytest.mark.asyncio
    async def test_fully_answered_attempt_lands_on_review(self, controller, make_session, units):
        attempt_id = await abandon_after(make_session, [RIGHT, WRONG, RIGHT, RIGHT, RIGHT])

        await controller.resume(attempt_id, units)
        session = controller.session_for(attempt_id)

        assert session.state is SessionState.REVIEWING
        assert session.attempt.current_question.id == "u1-q2"

        await answer_current(session, RIGHT)
        assert session.state is SessionState.RESULTS
        assert session.result.score == 80

    @pytest.mark.asyncio
    async def test_all_answered_correctly_lands_on_last(self, controller, platform, settings, units):
        session = TestSession("ana", platform, platform, settings=settings)
        await session.start(UNIT_1)
        for _ in range(4):
            await answer_current(session, RIGHT)
        await answer_current(session, RIGHT, advance=False)
        attempt_id = session.attempt.attempt_id
        session.close()

        await controller.resume(attempt_id, units)
        resumed = controller.session_for(attempt_id)

        assert resumed.attempt.cursor == 4
        assert resumed.attempt.current_answered
        await resumed.advance()
        assert resumed.state is SessionState.SUCCESS_CELEBRATION

    @pytest.mark.asyncio
    async def test_resume_without_hearts_is_interrupted(self, controller, make_session, units, platform):
        attempt_id = await abandon_after(make_session, [RIGHT])
        platform.set_hearts("ana", 0)

        await controller.resume(attempt_id, units)

        assert controller.session_for(attempt_id).state is SessionState.NO_HEARTS

    @pytest.mark.asyncio
    async def test_resume_from_disk_in_a_new_process(self, curriculum, settings, units, tmp_path):
        store = AttemptStore(tmp_path / "disk")
        questions = {1: questions_for("disk", 3)}
        before = InMemoryPlatform(curriculum=curriculum, unit_questions=questions, attempt_store=store)
        session = TestSession("ana", before, before, settings=settings)
        await session.start(UNIT_1)
        await answer_current(session, RIGHT)
        attempt_id = session.attempt.attempt_id

        after = InMemoryPlatform(curriculum=curriculum, unit_questions=questions, attempt_store=store)
        controller = ResumeController(after, lambda: TestSession("ana", after, after, settings=settings))

        unit = await controller.resume(attempt_id, units)

        assert unit.id == 1
        assert controller.session_for(attempt_id).attempt.cursor == 1
