"""
Unit State Engine.

Computes the display state of every unit from the unit list and the learner's
approved set. Recomputed on every render from the authoritative snapshot; nothing here
caches or persists state.

Rules:
    1. Approved units are COMPLETED.
    2. Mandatory units form the main path ordered by position. The first one is
       AVAILABLE until it is completed, which bootstraps the very first lesson; every
       other mandatory unit is AVAILABLE once its predecessor on the main path is
       completed.
    3. Optional units are AVAILABLE once any neighbour is completed.
    4. Everything else is LOCKED.

Availability depends only on neighbours' COMPLETED status, never on other units'
AVAILABLE status, so a single pass over the fixed approved set is enough.
"""
from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence

from loguru import logger

from skilltree.models import GRID_COLUMNS, Unit, UnitId, UnitState
from skilltree.path.grid import AdjacencyGraph, find_duplicate_positions


def main_path(units: Iterable[Unit]) -> list[Unit]:
    """Mandatory units ordered by ascending position (ties broken by id)."""
    return sorted((u for u in units if u.mandatory), key=lambda u: (u.position, str(u.id)))


def compute_states(
    units: Sequence[Unit],
    approved_ids: Iterable[Hashable],
    graph: AdjacencyGraph | None = None,
    columns: int = GRID_COLUMNS,
) -> dict[UnitId, UnitState]:
    """
    Compute each unit's state.

    Never raises on malformed input: approved ids that match no unit are ignored and
    duplicate positions are logged.

    Args:
        units: All units of the curriculum
        approved_ids: Ids of units the learner has passed at least once
        graph: Neighbour relation; derived from grid positions when omitted
        columns: Grid width used when deriving the graph

    Returns:
        Mapping of unit id to UnitState
    """
    if not units:
        return {}

    known_ids = {u.id for u in units}
    approved = frozenset(approved_ids)

    dangling = approved - known_ids
    if dangling:
        logger.warning("Ignoring approved ids with no matching unit: {}", sorted(map(str, dangling)))
    for position, ids in find_duplicate_positions(units).items():
        logger.warning("Units {} share grid position {}", ids, position)

    completed = approved & known_ids
    if graph is None:
        graph = AdjacencyGraph.from_grid(units, columns)

    available: set[UnitId] = set()

    path = main_path(units)
    if path:
        if path[0].id not in completed:
            available.add(path[0].id)
        for previous, current in zip(path, path[1:]):
            if previous.id in completed and current.id not in completed:
                available.add(current.id)

    for unit in units:
        if unit.mandatory or unit.id in completed:
            continue
        if any(n in completed for n in graph.neighbors(unit.id)):
            available.add(unit.id)

    states: dict[UnitId, UnitState] = {}
    for unit in units:
        if unit.id in completed:
            states[unit.id] = UnitState.COMPLETED
        elif unit.id in available:
            states[unit.id] = UnitState.AVAILABLE
        else:
            states[unit.id] = UnitState.LOCKED
    return states


def clickable_unit_ids(states: dict[UnitId, UnitState]) -> set[UnitId]:
    """Units the learner may start an attempt on (available or re-attempting completed)."""
    return {uid for uid, state in states.items() if state is not UnitState.LOCKED}
