"""
Learning-path progression: grid layout, unit states and final-exam gating.

All functions in this package are pure; call them on every render.
"""

from .final_gate import final_test_state
from .grid import AdjacencyGraph, GridRow, are_adjacent, cell_of, find_duplicate_positions, layout
from .presentation import FinalTestView, LearningPathView, NodeView, build_learning_path
from .states import clickable_unit_ids, compute_states, main_path

__all__ = [
    "AdjacencyGraph",
    "FinalTestView",
    "GridRow",
    "LearningPathView",
    "NodeView",
    "are_adjacent",
    "build_learning_path",
    "cell_of",
    "clickable_unit_ids",
    "compute_states",
    "final_test_state",
    "find_duplicate_positions",
    "layout",
    "main_path",
]
