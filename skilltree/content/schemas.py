"""
Pydantic schemas for curriculum files and platform payloads.

Field names accept both snake_case (curriculum files) and camelCase (platform API).
"""
from __future__ import annotations

from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from skilltree.models import AnswerOption, Curriculum, FinalTest, Question, QuestionType, Unit

Identifier = Union[int, str]


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AnswerSchema(_Schema):
    id: Identifier
    text: str
    is_correct: bool = False
    order: int = 0

    def to_domain(self) -> AnswerOption:
        return AnswerOption(id=self.id, text=self.text, is_correct=self.is_correct, order=self.order)


class QuestionSchema(_Schema):
    id: Identifier
    type: QuestionType
    title: str
    answers: list[AnswerSchema] = Field(default_factory=list)
    content: dict[str, Any] = Field(default_factory=dict)
    order: int = 0

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        # Platform sends MULTIPLE_CHOICE, files use multiple_choice
        if isinstance(value, str):
            return value.lower()
        return value

    def to_domain(self) -> Question:
        return Question(
            id=self.id,
            type=self.type,
            title=self.title,
            answers=tuple(a.to_domain() for a in sorted(self.answers, key=lambda a: a.order)),
            content=dict(self.content),
            order=self.order,
        )


class UnitSchema(_Schema):
    id: Identifier
    position: int = Field(ge=0)
    mandatory: bool = True
    name: str = ""
    description: str = ""
    experience_points: int = Field(default=10, ge=0)
    questions: list[QuestionSchema] = Field(default_factory=list)

    def to_domain(self) -> Unit:
        return Unit(
            id=self.id,
            position=self.position,
            mandatory=self.mandatory,
            name=self.name,
            description=self.description,
            experience_points=self.experience_points,
        )


class FinalTestSchema(_Schema):
    id: Identifier
    title: str = "Final test"
    passing_score: int = Field(default=70, ge=0, le=100)
    questions: list[QuestionSchema] = Field(default_factory=list)

    def to_domain(self) -> FinalTest:
        return FinalTest(id=self.id, passing_score=self.passing_score, title=self.title)


class CurriculumSchema(_Schema):
    id: Identifier
    title: str
    units: list[UnitSchema] = Field(default_factory=list)
    final_test: FinalTestSchema | None = None
    edges: list[tuple[Identifier, Identifier]] | None = None

    def to_domain(self) -> Curriculum:
        return Curriculum(
            id=self.id,
            title=self.title,
            units=tuple(u.to_domain() for u in self.units),
            final_test=self.final_test.to_domain() if self.final_test else None,
        )
