"""Boundary Protocols — contracts between the sync engine and its two collaborators.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - The editable tree (CurriculumForm/MetadataForm) and the persistence service
      (CoursePersistence) are accessed only through these Protocols
    - snapshot() always reflects the live tree at the moment it is called

Design Decisions:
    - Protocol over ABC: structural subtyping, adapters need no inheritance
    - Async only on CoursePersistence: it is the only boundary that does IO
"""

from dataclasses import dataclass
from typing import Any, Protocol

from curriculum_sync.core.curriculum import Lesson, Quiz, Section
from curriculum_sync.core.domain_types import EntityId, PersistedId


@dataclass(frozen=True)
class ServiceResult:
    """Envelope returned by every persistence call: `{success, data?, message?}`."""
    success: bool
    data: dict[str, Any] | None = None
    message: str | None = None

    @property
    def new_id(self) -> PersistedId | None:
        raw = (self.data or {}).get("id")
        return PersistedId(str(raw)) if raw not in (None, "") else None


class DocumentSnapshot(Protocol):
    """Read-only view into the live editable tree."""
    def get_section(self, section_id: EntityId) -> Section | None: ...
    def get_lesson(self, section_id: EntityId, lesson_id: EntityId) -> Lesson | None: ...
    def get_quiz(self, section_id: EntityId) -> Quiz | None: ...


class CurriculumForm(Protocol):
    """Caller-owned editable curriculum tree (form state + dirty tracking)."""

    @property
    def is_dirty(self) -> bool: ...

    def get_sections(self) -> list[Section]: ...
    def get_section(self, index: int) -> Section | None: ...
    def append_section(self, section: Section) -> None: ...
    def set_section_field(self, index: int, key: str, value: Any) -> None: ...
    def remove_section(self, index: int) -> Section | None: ...
    def move_section(self, from_index: int, to_index: int) -> None: ...
    def set_lessons(self, section_index: int, lessons: list[Lesson]) -> None: ...
    def set_lesson_field(
        self, section_index: int, lesson_index: int, key: str, value: Any,
    ) -> None: ...
    def set_quiz(self, section_index: int, quiz: Quiz | None) -> None: ...
    def mark_clean(self) -> None: ...
    def snapshot(self) -> DocumentSnapshot: ...


class MetadataForm(Protocol):
    """Caller-owned flat form (basic or advanced course info)."""

    @property
    def is_dirty(self) -> bool: ...

    def values(self) -> dict[str, Any]: ...
    def dirty_fields(self) -> set[str]: ...
    def reset(self, values: dict[str, Any]) -> None: ...


class CoursePersistence(Protocol):
    """Remote persistence service — implemented by infrastructure adapters."""
    async def create_section(self, course_id: str, payload: dict) -> ServiceResult: ...
    async def update_section(
        self, course_id: str, section_id: str, payload: dict,
    ) -> ServiceResult: ...
    async def delete_section(self, course_id: str, section_id: str) -> ServiceResult: ...
    async def create_lesson(
        self, course_id: str, section_id: str, payload: dict,
    ) -> ServiceResult: ...
    async def update_lesson(
        self, course_id: str, section_id: str, lesson_id: str, payload: dict,
    ) -> ServiceResult: ...
    async def delete_lesson(
        self, course_id: str, section_id: str, lesson_id: str,
    ) -> ServiceResult: ...
    async def create_quiz(
        self, course_id: str, section_id: str, payload: dict,
    ) -> ServiceResult: ...
    async def update_quiz(
        self, course_id: str, section_id: str, quiz_id: str, payload: dict,
    ) -> ServiceResult: ...
    async def delete_quiz(
        self, course_id: str, section_id: str, quiz_id: str,
    ) -> ServiceResult: ...
    async def update_course(self, course_id: str, payload: dict) -> ServiceResult: ...
