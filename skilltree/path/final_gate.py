"""Final-Exam Gate: state of the curriculum's terminal assessment node."""
from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence

from skilltree.models import Unit, UnitState


def final_test_state(
    units: Sequence[Unit],
    approved_ids: Iterable[Hashable],
    final_test_passed: bool = False,
) -> UnitState:
    """
    Derive the final test's state.

    A curriculum without mandatory units never unlocks its final test, so a
    curriculum with no required content cannot expose the exam by accident.

    Args:
        units: All units of the curriculum
        approved_ids: Ids of units the learner has passed
        final_test_passed: Whether the learner has a recorded passing final attempt

    Returns:
        COMPLETED, AVAILABLE or LOCKED
    """
    if final_test_passed:
        return UnitState.COMPLETED

    approved = frozenset(approved_ids)
    mandatory_ids = [u.id for u in units if u.mandatory]
    if mandatory_ids and all(uid in approved for uid in mandatory_ids):
        return UnitState.AVAILABLE
    return UnitState.LOCKED
