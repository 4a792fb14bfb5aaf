"""
Unit tests for the grid layout resolver and adjacency graph.
"""

import pytest

from skilltree.models import Unit
from skilltree.path import AdjacencyGraph, are_adjacent, cell_of, find_duplicate_positions, layout


class TestLayout:
    """Tests for grouping units into rows."""

    def test_groups_by_row_and_orders_by_column(self):
        units = [Unit(id="c", position=6), Unit(id="a", position=0), Unit(id="b", position=4)]

        rows = layout(units)

        assert [r.index for r in rows] == [0, 1]
        assert [u.id for u in rows[0].units] == ["a", "b"]
        assert [u.id for u in rows[1].units] == ["c"]

    def test_sparse_row_has_empty_cells(self):
        rows = layout([Unit(id=1, position=1), Unit(id=2, position=3)])

        cells = rows[0].cells()
        assert len(cells) == 5
        assert cells[0] is None and cells[2] is None and cells[4] is None
        assert cells[1].id == 1 and cells[3].id == 2
        assert not rows[0].is_full

    def test_empty_rows_are_skipped(self):
        rows = layout([Unit(id=1, position=0), Unit(id=2, position=12)])
        assert [r.index for r in rows] == [0, 2]

    def test_empty_input(self):
        assert layout([]) == []

    def test_custom_width(self):
        rows = layout([Unit(id=i, position=i) for i in range(6)], columns=3)
        assert [len(r.units) for r in rows] == [3, 3]
        assert all(r.is_full for r in rows)

    def test_duplicate_positions_are_reported(self, log_messages):
        units = [Unit(id=1, position=2), Unit(id=2, position=2)]

        layout(units)

        assert find_duplicate_positions(units) == {2: [1, 2]}
        assert any("share grid position 2" in m for m in log_messages)


class TestAdjacency:
    """Tests for 4-directional adjacency."""

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            (0, 1, True),    # same row, next column
            (0, 5, True),    # next row, same column
            (0, 6, False),   # diagonal
            (4, 5, False),   # end of row 0 and start of row 1
            (2, 12, False),  # two rows apart
            (3, 3, False),   # same cell
        ],
    )
    def test_are_adjacent(self, a, b, expected):
        assert are_adjacent(Unit(id="a", position=a), Unit(id="b", position=b)) is expected

    def test_cell_of(self):
        assert cell_of(0) == (0, 0)
        assert cell_of(7) == (1, 2)
        assert cell_of(7, columns=3) == (2, 1)

    def test_graph_from_grid_is_symmetric(self):
        units = [Unit(id=1, position=0), Unit(id=2, position=1), Unit(id=3, position=5)]

        graph = AdjacencyGraph.from_grid(units)

        assert graph.neighbors(1) == {2, 3}
        assert graph.neighbors(2) == {1}
        assert graph.neighbors(3) == {1}
        assert 3 in graph

    def test_graph_ignores_iteration_order(self):
        units = [Unit(id=i, position=p) for i, p in enumerate([0, 1, 5, 6, 11])]

        forward = AdjacencyGraph.from_grid(units).edges()
        backward = AdjacencyGraph.from_grid(list(reversed(units))).edges()

        assert forward == backward

    def test_isolated_unit_has_no_neighbors(self):
        graph = AdjacencyGraph.from_grid([Unit(id=1, position=0), Unit(id=2, position=3)])
        assert graph.neighbors(1) == frozenset()
        assert graph.neighbors("missing") == frozenset()

    def test_authored_edges(self):
        graph = AdjacencyGraph.from_edges([(1, 9), (9, 9)])
        assert graph.neighbors(9) == {1}
        assert graph.edges() == {frozenset((1, 9))}
