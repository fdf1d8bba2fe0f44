"""In-Memory Forms — CurriculumForm and MetadataForm adapters backed by plain Python objects.

Invariants:
    - InMemoryCurriculumForm mutates the Section/Lesson objects it holds; snapshot()
      is a live view over the same list, never a copy
    - A MetadataForm field is dirty while its value differs from the last reset() baseline

Design Decisions:
    - Used by scripts, the editor factory and tests; UI bindings implement the same
      Protocols against their own form state
"""

import copy
from typing import Any

from curriculum_sync.core.curriculum import Lesson, Quiz, Section
from curriculum_sync.core.curriculum_snapshot import CurriculumSnapshot


class InMemoryCurriculumForm:
    """Editable section list with a single dirty flag."""

    def __init__(self, sections: list[Section] | None = None):
        self._sections: list[Section] = list(sections or [])
        self._dirty = False

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    def get_sections(self) -> list[Section]:
        return list(self._sections)

    def get_section(self, index: int) -> Section | None:
        if 0 <= index < len(self._sections):
            return self._sections[index]
        return None

    def append_section(self, section: Section) -> None:
        self._sections.append(section)
        self._dirty = True

    def set_section_field(self, index: int, key: str, value: Any) -> None:
        setattr(self._sections[index], key, value)
        self._dirty = True

    def remove_section(self, index: int) -> Section | None:
        if not 0 <= index < len(self._sections):
            return None
        self._dirty = True
        return self._sections.pop(index)

    def move_section(self, from_index: int, to_index: int) -> None:
        self._sections.insert(to_index, self._sections.pop(from_index))
        self._dirty = True

    def set_lessons(self, section_index: int, lessons: list[Lesson]) -> None:
        self._sections[section_index].lessons = list(lessons)
        self._dirty = True

    def set_lesson_field(
        self, section_index: int, lesson_index: int, key: str, value: Any,
    ) -> None:
        setattr(self._sections[section_index].lessons[lesson_index], key, value)
        self._dirty = True

    def set_quiz(self, section_index: int, quiz: Quiz | None) -> None:
        self._sections[section_index].quiz = quiz
        self._dirty = True

    def mark_clean(self) -> None:
        self._dirty = False

    def snapshot(self) -> CurriculumSnapshot:
        return CurriculumSnapshot(self._sections)


class InMemoryMetadataForm:
    """Flat key/value form compared against its last reset() baseline."""

    def __init__(self, values: dict[str, Any] | None = None):
        self._baseline: dict[str, Any] = copy.deepcopy(values or {})
        self._values: dict[str, Any] = copy.deepcopy(self._baseline)

    @property
    def is_dirty(self) -> bool:
        return bool(self.dirty_fields())

    def values(self) -> dict[str, Any]:
        return copy.deepcopy(self._values)

    def set_value(self, key: str, value: Any) -> None:
        self._values[key] = value

    def dirty_fields(self) -> set[str]:
        keys = set(self._values) | set(self._baseline)
        return {
            k for k in keys
            if self._values.get(k) != self._baseline.get(k)
        }

    def reset(self, values: dict[str, Any]) -> None:
        self._baseline = copy.deepcopy(values)
        self._values = copy.deepcopy(values)
