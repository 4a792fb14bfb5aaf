"""
Unit tests for final-test gating and the path presentation graph.
"""

import pytest

from skilltree.models import Curriculum, FinalTest, Unit, UnitState
from skilltree.path import build_learning_path, final_test_state


class TestFinalTestState:
    """Tests for final_test_state()."""

    def test_locked_until_every_mandatory_unit_is_approved(self, units):
        assert final_test_state(units, {1, 2, 3}) is UnitState.LOCKED

    def test_available_when_all_mandatory_approved(self, units):
        # Optional unit 4 is not required
        assert final_test_state(units, {1, 2, 3, 5}) is UnitState.AVAILABLE

    def test_completed_when_passed(self, units):
        assert final_test_state(units, set(), final_test_passed=True) is UnitState.COMPLETED

    @pytest.mark.parametrize("approved", [set(), {"o"}])
    def test_no_mandatory_units_never_unlocks(self, approved):
        units = [Unit(id="o", position=0, mandatory=False)]
        assert final_test_state(units, approved) is UnitState.LOCKED

    def test_empty_curriculum_is_locked(self):
        assert final_test_state([], set()) is UnitState.LOCKED

    def test_scenario_nothing_approved(self):
        units = [Unit(id="m0", position=0), Unit(id="o1", position=1, mandatory=False), Unit(id="m5", position=5)]
        assert final_test_state(units, []) is UnitState.LOCKED


class TestBuildLearningPath:
    """Tests for the presentation graph."""

    def test_rows_and_states(self, curriculum):
        view = build_learning_path(curriculum, {1})

        assert len(view.rows) == 2
        assert all(len(row) == 5 for row in view.rows)
        assert view.rows[0][0].state is UnitState.COMPLETED
        assert view.rows[0][1].state is UnitState.AVAILABLE
        assert view.rows[0][3] is None
        assert view.rows[1][0].unit.id == 4
        assert view.rows[1][0].clickable
        assert not view.node(5).clickable

    def test_progress(self, curriculum):
        assert build_learning_path(curriculum, {1, 2}).progress == (2, 5)

    def test_final_test_node(self, curriculum):
        locked = build_learning_path(curriculum, {1, 2})
        available = build_learning_path(curriculum, {1, 2, 3, 5})
        passed = build_learning_path(curriculum, {1, 2, 3, 5}, final_test_passed=True)

        assert locked.final_test.state is UnitState.LOCKED and not locked.final_test.clickable
        assert available.final_test.clickable
        assert passed.final_test.state is UnitState.COMPLETED
        assert not passed.final_test.clickable

    def test_without_final_test(self, units):
        view = build_learning_path(Curriculum(id="c", title="C", units=tuple(units)), set())
        assert view.final_test is None

    def test_authoring_errors_are_reported(self):
        curriculum = Curriculum(
            id="c",
            title="C",
            units=(Unit(id=1, position=0), Unit(id=2, position=0)),
            final_test=FinalTest(id="f"),
        )

        view = build_learning_path(curriculum, set())

        assert view.authoring_errors == ["position 0 shared by units [1, 2]"]

    def test_unknown_node(self, curriculum):
        assert build_learning_path(curriculum, set()).node("nope") is None
