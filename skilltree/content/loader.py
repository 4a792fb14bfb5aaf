"""
Curriculum file loader.

Reads a JSON curriculum (units with their questions, an optional final test and
optional authored edges) into domain objects. Structural problems that make the file
unusable raise AuthoringError; softer authoring mistakes are logged and reported on
the result, or raised too when ``strict`` is set.
"""
from __future__ import annotations

import json
from collections import Counter
from collections.abc import Hashable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from skilltree.content.schemas import CurriculumSchema
from skilltree.errors import AuthoringError
from skilltree.grading import get_grader
from skilltree.models import Curriculum, Question
from skilltree.path.grid import AdjacencyGraph, find_duplicate_positions


@dataclass
class LoadedCurriculum:
    """A curriculum plus the content that travels with it."""

    curriculum: Curriculum
    unit_questions: dict[Hashable, list[Question]] = field(default_factory=dict)
    final_questions: list[Question] = field(default_factory=list)
    graph: AdjacencyGraph | None = None
    authoring_errors: list[str] = field(default_factory=list)


def parse_curriculum(data: dict[str, Any], strict: bool = False) -> LoadedCurriculum:
    """
    Build a LoadedCurriculum from already-decoded JSON.

    Args:
        data: Decoded curriculum document
        strict: Raise on duplicate positions, dangling edges and ungradable questions

    Raises:
        AuthoringError: Schema violations or duplicate unit ids, plus soft errors when strict
    """
    try:
        schema = CurriculumSchema.model_validate(data)
    except ValidationError as e:
        raise AuthoringError(f"Invalid curriculum: {e}") from e

    duplicates = [uid for uid, n in Counter(u.id for u in schema.units).items() if n > 1]
    if duplicates:
        raise AuthoringError(f"Duplicate unit ids: {duplicates}")

    curriculum = schema.to_domain()
    problems: list[str] = []

    for position, ids in sorted(find_duplicate_positions(curriculum.units).items()):
        problems.append(f"position {position} shared by units {ids}")

    graph = None
    if schema.edges is not None:
        known = {u.id for u in curriculum.units}
        edges = []
        for a, b in schema.edges:
            if a in known and b in known:
                edges.append((a, b))
            else:
                problems.append(f"edge ({a}, {b}) references an unknown unit")
        graph = AdjacencyGraph.from_edges(edges)

    unit_questions: dict[Hashable, list[Question]] = {}
    for unit in schema.units:
        unit_questions[unit.id] = [q.to_domain() for q in unit.questions]
    final_questions = [q.to_domain() for q in schema.final_test.questions] if schema.final_test else []

    for question in [q for qs in unit_questions.values() for q in qs] + final_questions:
        grader = get_grader(question.type)
        if grader is None or not grader.validate(question):
            problems.append(f"question {question.id} ({question.type.value}) cannot be graded")

    if problems:
        if strict:
            raise AuthoringError("; ".join(problems))
        for problem in problems:
            logger.warning("Curriculum {}: {}", curriculum.id, problem)

    logger.debug(
        "Loaded curriculum {} with {} units and {} final questions",
        curriculum.id,
        len(curriculum.units),
        len(final_questions),
    )
    return LoadedCurriculum(
        curriculum=curriculum,
        unit_questions=unit_questions,
        final_questions=final_questions,
        graph=graph,
        authoring_errors=problems,
    )


def load_curriculum(path: str | Path, strict: bool = False) -> LoadedCurriculum:
    """Load a curriculum JSON file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise AuthoringError(f"{path.name} is not valid JSON: {e}") from e
    return parse_curriculum(data, strict=strict)
