"""In-memory form adapter tests — tree mutation, dirty tracking, live snapshots."""

from curriculum_sync.core.curriculum import Lesson, Quiz, Section
from curriculum_sync.core.domain_types import PersistedId, TemporaryId
from curriculum_sync.infrastructure.memory_forms import (
    InMemoryCurriculumForm, InMemoryMetadataForm,
)


def _form():
    return InMemoryCurriculumForm([
        Section(id=PersistedId("S-1"), title="A"),
        Section(id=PersistedId("S-2"), title="B"),
    ])


# --- Curriculum form ------------------------------------------------------------

def test_starts_clean_and_mutations_mark_dirty():
    form = _form()
    assert not form.is_dirty
    form.set_section_field(0, "title", "A2")
    assert form.is_dirty
    form.mark_clean()
    assert not form.is_dirty


def test_get_section_out_of_range_is_none():
    assert _form().get_section(2) is None
    assert _form().get_section(-1) is None


def test_move_and_remove_sections():
    form = _form()
    form.move_section(0, 1)
    assert [s.title for s in form.get_sections()] == ["B", "A"]
    removed = form.remove_section(0)
    assert removed.title == "B"
    assert form.remove_section(5) is None


def test_lessons_and_quiz_setters():
    form = _form()
    form.set_lessons(0, [Lesson(id=TemporaryId("les_1"), title="L")])
    form.set_lesson_field(0, 0, "title", "L2")
    form.set_quiz(1, Quiz(id=TemporaryId("quiz_1"), title="Q"))

    snapshot = form.snapshot()
    assert snapshot.get_lesson(PersistedId("S-1"), TemporaryId("les_1")).title == "L2"
    assert snapshot.get_quiz(PersistedId("S-2")).title == "Q"


def test_snapshot_is_live():
    form = _form()
    snapshot = form.snapshot()
    form.append_section(Section(id=TemporaryId("sec_1"), title="C"))
    assert snapshot.get_section(TemporaryId("sec_1")).title == "C"


# --- Metadata form --------------------------------------------------------------

def test_metadata_dirty_fields_against_baseline():
    form = InMemoryMetadataForm({"title": "T", "price": 10})
    form.set_value("price", 12)
    form.set_value("level", "beginner")
    assert form.dirty_fields() == {"price", "level"}
    form.set_value("price", 10)
    assert form.dirty_fields() == {"level"}


def test_metadata_dirty_fields_is_a_plain_set():
    form = InMemoryMetadataForm({"title": "T"})
    form.set_value("title", "U")
    assert type(form.dirty_fields()) is set
    assert not hasattr(form, "set")


def test_metadata_reset_sets_new_baseline():
    form = InMemoryMetadataForm({"title": "T"})
    form.set_value("title", "U")
    form.reset(form.values())
    assert not form.is_dirty
    assert form.values() == {"title": "U"}


def test_metadata_values_are_copies():
    form = InMemoryMetadataForm({"topics": ["a"]})
    form.values()["topics"].append("b")
    assert form.values() == {"topics": ["a"]}
