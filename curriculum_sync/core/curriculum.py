"""Curriculum Entities — the shapes the editable tree holds and the snapshot returns.

Invariants:
    - Entities are plain mutable dataclasses owned by the caller's tree
    - The engine reads them at execution time and never keeps references across commits
    - field_names() is the set of keys accepted by the controller's field-update methods

Design Decisions:
    - Dataclasses, not ORM or pydantic: the tree is a form-state layer, wire shapes
      live in schemas/payloads.py
"""

from dataclasses import dataclass, field, fields
from typing import Any

from curriculum_sync.core.domain_types import EntityId


@dataclass
class ContentFile:
    """Uploaded file behind a lesson's content (S3 key or URL)."""
    id: str
    url: str
    name: str | None = None
    size: str | None = None  # the upload widget reports size as a string
    type: str | None = None  # MIME type
    duration: float | None = None


@dataclass
class Content:
    id: EntityId
    type: str = "video"
    file: ContentFile | None = None
    url: str | None = None
    is_preview: bool = True
    is_required: bool = True
    metadata: dict[str, Any] | None = None


@dataclass
class QuizOption:
    text: str
    is_correct: bool = False
    id: str | None = None


@dataclass
class QuizQuestion:
    question: str
    type: str = "multiple-choice"
    options: list[QuizOption] = field(default_factory=list)
    points: int = 1
    explanation: str | None = None
    required: bool = True
    time_limit: int | None = None
    id: str | None = None


@dataclass
class Quiz:
    id: EntityId
    title: str
    description: str | None = None
    questions: list[QuizQuestion] = field(default_factory=list)
    passing_score: int = 70
    max_attempts: int = 3
    time_limit: int = 60
    randomize_questions: bool = False
    show_results: bool = True
    is_required: bool = False


@dataclass
class Lesson:
    id: EntityId
    title: str
    description: str | None = None
    content: Content | None = None
    estimated_duration: int | None = None
    is_published: bool = False
    order: int = 0


@dataclass
class Section:
    id: EntityId
    title: str
    description: str | None = None
    lessons: list[Lesson] = field(default_factory=list)
    quiz: Quiz | None = None
    is_published: bool = False
    order: int = 0


def field_names(entity_type: type) -> frozenset[str]:
    """Names of the dataclass fields of an entity type."""
    return frozenset(f.name for f in fields(entity_type))


def shallow_fields(entity: object) -> dict[str, Any]:
    """Top-level field values of an entity, nested objects kept by reference."""
    return {f.name: getattr(entity, f.name) for f in fields(entity)}
