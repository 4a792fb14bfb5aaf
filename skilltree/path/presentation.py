"""
Presentation graph for the learning path.

Combines layout, unit states and the final-exam gate into the structure a UI walks to
decide what to draw and which nodes are clickable.
"""
from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field

from skilltree.models import GRID_COLUMNS, Curriculum, FinalTest, Unit, UnitId, UnitState
from skilltree.path.final_gate import final_test_state
from skilltree.path.grid import AdjacencyGraph, find_duplicate_positions, layout
from skilltree.path.states import compute_states


@dataclass(frozen=True)
class NodeView:
    """One unit as rendered on the path."""

    unit: Unit
    state: UnitState

    @property
    def clickable(self) -> bool:
        return self.state is not UnitState.LOCKED


@dataclass(frozen=True)
class FinalTestView:
    """The terminal assessment node."""

    final_test: FinalTest
    state: UnitState

    @property
    def clickable(self) -> bool:
        return self.state is UnitState.AVAILABLE


@dataclass(frozen=True)
class LearningPathView:
    """Rows of fixed-width cells (None for empty cells) plus the final test node."""

    curriculum_id: Hashable
    rows: list[list[NodeView | None]]
    states: dict[UnitId, UnitState]
    final_test: FinalTestView | None = None
    authoring_errors: list[str] = field(default_factory=list)

    def node(self, unit_id: UnitId) -> NodeView | None:
        for row in self.rows:
            for cell in row:
                if cell is not None and cell.unit.id == unit_id:
                    return cell
        return None

    @property
    def progress(self) -> tuple[int, int]:
        """(completed, total) unit counts."""
        done = sum(1 for s in self.states.values() if s is UnitState.COMPLETED)
        return done, len(self.states)


def build_learning_path(
    curriculum: Curriculum,
    approved_ids: Iterable[Hashable],
    final_test_passed: bool = False,
    graph: AdjacencyGraph | None = None,
    columns: int = GRID_COLUMNS,
) -> LearningPathView:
    """Build the presentation graph for one learner and one curriculum."""
    approved = frozenset(approved_ids)
    units = list(curriculum.units)
    states = compute_states(units, approved, graph=graph, columns=columns)

    rows: list[list[NodeView | None]] = []
    for grid_row in layout(units, columns):
        rows.append(
            [
                NodeView(unit=cell, state=states[cell.id]) if cell is not None else None
                for cell in grid_row.cells()
            ]
        )

    final_view = None
    if curriculum.final_test is not None:
        final_view = FinalTestView(
            final_test=curriculum.final_test,
            state=final_test_state(units, approved, final_test_passed),
        )

    errors = [
        f"position {pos} shared by units {ids}"
        for pos, ids in sorted(find_duplicate_positions(units).items())
    ]

    return LearningPathView(
        curriculum_id=curriculum.id,
        rows=rows,
        states=states,
        final_test=final_view,
        authoring_errors=errors,
    )
