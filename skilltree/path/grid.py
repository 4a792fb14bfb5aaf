"""
Grid Layout Resolver.

Maps a flat list of units onto a fixed-width grid (row = position // columns,
column = position % columns) and derives the neighbour relation used to unlock
optional units. Everything here is pure and side-effect free apart from logging.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass

from loguru import logger

from skilltree.models import GRID_COLUMNS, Unit, UnitId


@dataclass(frozen=True)
class GridRow:
    """Units sharing one grid row, ordered by column."""

    index: int
    units: tuple[Unit, ...]
    columns: int = GRID_COLUMNS

    def cells(self) -> list[Unit | None]:
        """Row as a fixed-width list; unoccupied columns are None."""
        cells: list[Unit | None] = [None] * self.columns
        for unit in self.units:
            cells[unit.position % self.columns] = unit
        return cells

    @property
    def is_full(self) -> bool:
        return len(self.units) == self.columns


def cell_of(position: int, columns: int = GRID_COLUMNS) -> tuple[int, int]:
    """Return (row, column) for a grid position."""
    return divmod(position, columns)


def find_duplicate_positions(units: Iterable[Unit]) -> dict[int, list[UnitId]]:
    """Positions claimed by more than one unit (an authoring error)."""
    by_position: dict[int, list[UnitId]] = defaultdict(list)
    for unit in units:
        by_position[unit.position].append(unit.id)
    return {pos: ids for pos, ids in by_position.items() if len(ids) > 1}


def layout(units: Iterable[Unit], columns: int = GRID_COLUMNS) -> list[GridRow]:
    """
    Group units into grid rows.

    Rows are returned in ascending row index and only for rows holding at least one
    unit. Gaps are not filled; callers render empty cells via ``GridRow.cells()``.

    Args:
        units: Units of one curriculum
        columns: Grid width

    Returns:
        List of GridRow
    """
    units = list(units)
    rows: dict[int, list[Unit]] = defaultdict(list)
    for unit in units:
        rows[unit.position // columns].append(unit)

    for position, ids in find_duplicate_positions(units).items():
        logger.warning("Units {} share grid position {}; layout is undefined", ids, position)

    return [
        GridRow(
            index=index,
            units=tuple(sorted(rows[index], key=lambda u: (u.position, str(u.id)))),
            columns=columns,
        )
        for index in sorted(rows)
    ]


def are_adjacent(a: Unit, b: Unit, columns: int = GRID_COLUMNS) -> bool:
    """4-directional grid adjacency (no diagonals)."""
    row_a, col_a = cell_of(a.position, columns)
    row_b, col_b = cell_of(b.position, columns)
    row_diff = abs(row_a - row_b)
    col_diff = abs(col_a - col_b)
    return (row_diff == 0 and col_diff == 1) or (row_diff == 1 and col_diff == 0)


class AdjacencyGraph:
    """
    Undirected neighbour relation between units.

    Built either from grid positions or from an explicit list of authored edges, so
    curricula that are not laid out on a grid can still unlock optional branches.
    """

    def __init__(self, edges: Iterable[tuple[Hashable, Hashable]] = ()):
        self._neighbors: dict[Hashable, set[Hashable]] = defaultdict(set)
        for a, b in edges:
            self.add_edge(a, b)

    @classmethod
    def from_grid(cls, units: Sequence[Unit], columns: int = GRID_COLUMNS) -> AdjacencyGraph:
        """Derive edges from grid positions."""
        graph = cls()
        # Lists, so units sharing a cell all keep their neighbours
        by_cell: dict[tuple[int, int], list[Unit]] = defaultdict(list)
        for unit in units:
            by_cell[cell_of(unit.position, columns)].append(unit)
            graph._neighbors.setdefault(unit.id, set())

        for (row, col), cell_units in list(by_cell.items()):
            for d_row, d_col in ((0, 1), (1, 0)):
                for other in by_cell.get((row + d_row, col + d_col), ()):
                    for unit in cell_units:
                        graph.add_edge(unit.id, other.id)
        return graph

    @classmethod
    def from_edges(cls, edges: Iterable[tuple[Hashable, Hashable]]) -> AdjacencyGraph:
        """Use authored edges as-is."""
        return cls(edges)

    def add_edge(self, a: Hashable, b: Hashable) -> None:
        if a == b:
            return
        self._neighbors[a].add(b)
        self._neighbors[b].add(a)

    def neighbors(self, unit_id: Hashable) -> frozenset[Hashable]:
        return frozenset(self._neighbors.get(unit_id, ()))

    def edges(self) -> set[frozenset[Hashable]]:
        return {frozenset((a, b)) for a, nbrs in self._neighbors.items() for b in nbrs}

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._neighbors
