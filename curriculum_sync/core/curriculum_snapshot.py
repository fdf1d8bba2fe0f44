"""Curriculum Snapshot — read-only id lookups over the live section list."""

from curriculum_sync.core.curriculum import Lesson, Quiz, Section
from curriculum_sync.core.domain_types import EntityId


class CurriculumSnapshot:
    """DocumentSnapshot over a list of sections, addressed by the ids the tree holds."""

    def __init__(self, sections: list[Section]):
        self._sections = sections

    def get_section(self, section_id: EntityId) -> Section | None:
        return next((s for s in self._sections if s.id == section_id), None)

    def get_lesson(self, section_id: EntityId, lesson_id: EntityId) -> Lesson | None:
        section = self.get_section(section_id)
        if section is None:
            return None
        return next((l for l in section.lessons if l.id == lesson_id), None)

    def get_quiz(self, section_id: EntityId) -> Quiz | None:
        section = self.get_section(section_id)
        return section.quiz if section else None
