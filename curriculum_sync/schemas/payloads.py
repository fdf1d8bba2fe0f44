"""Payload Schemas — request bodies for the course persistence REST API.

Invariants:
    - Python names are snake_case, wire names camelCase (alias generator)
    - Entity payloads drop None fields on the wire (absent, not null)
    - CoursePayload drops *unset* fields only: a dirty field cleared to None is sent as null

Design Decisions:
    - Shared _WireModel base: one place for alias + dump conventions
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class SectionPayload(_WireModel):
    title: str | None = None
    description: str | None = None
    order: int | None = Field(None, ge=0)
    is_published: bool | None = None


class LessonContentMetadata(_WireModel):
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None
    title: str | None = None
    url: str | None = None


class LessonPayload(_WireModel):
    title: str | None = None
    description: str | None = None
    order: int | None = Field(None, ge=0)
    is_published: bool | None = None
    estimated_duration: int | None = None
    content_type: str | None = None
    content_url: str | None = None
    is_preview: bool | None = None
    metadata: LessonContentMetadata | None = None


class QuizOptionPayload(_WireModel):
    value: str
    is_correct: bool = False


class QuizQuestionPayload(_WireModel):
    question: str
    type: str
    explanation: str | None = None
    points: int | None = None
    required: bool | None = None
    time_limit: int | None = None
    options: list[QuizOptionPayload] = Field(default_factory=list)


class QuizPayload(_WireModel):
    title: str
    description: str | None = None
    max_attempts: int | None = None
    show_results: bool | None = None
    is_required: bool | None = None
    passing_score: int | None = None
    time_limit: int | None = None
    randomize_questions: bool | None = None
    questions: list[QuizQuestionPayload] = Field(default_factory=list)


class CoursePayload(_WireModel):
    """Flat course metadata (basic + advanced info). Every field optional."""
    course_id: str | None = None
    title: str | None = None
    category: str | None = None
    sub_category: str | None = None
    language: str | None = None
    duration_unit: str | None = None
    duration_value: int | None = None
    level: str | None = None
    sub_title: str | None = None
    subtitle_language: str | None = None
    topics: list[str] | None = None
    price: float | None = None
    discount_price: float | None = None
    currency: str | None = None
    description: str | None = None
    learning_outcomes: list[str] | None = None
    target_audience: list[str] | None = None
    requirements: list[str] | None = None
    thumbnail: str | None = None
    trailer: str | None = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True)
