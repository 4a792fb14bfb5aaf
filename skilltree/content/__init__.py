"""Curriculum content: file schemas and loading."""

from .loader import LoadedCurriculum, load_curriculum, parse_curriculum
from .schemas import CurriculumSchema, QuestionSchema

__all__ = [
    "CurriculumSchema",
    "LoadedCurriculum",
    "QuestionSchema",
    "load_curriculum",
    "parse_curriculum",
]
