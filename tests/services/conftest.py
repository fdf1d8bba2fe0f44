"""Service test fixtures — fake persistence, in-memory forms, a wired controller.

Invariants:
    - Every test gets a fresh FakePersistence and fresh forms
    - `events` records callback invocations in call order as (name, message) pairs
    - The curriculum form starts with one persisted section (S-100) holding one
      persisted lesson (L-200) and one persisted quiz (Q-300)
"""

import pytest

from curriculum_sync.core.curriculum import Lesson, Quiz, Section
from curriculum_sync.core.domain_types import PersistedId
from curriculum_sync.infrastructure.memory_forms import (
    InMemoryCurriculumForm, InMemoryMetadataForm,
)
from curriculum_sync.services.course_controller import (
    CourseController, CourseControllerConfig,
)

from tests.services.fake_persistence import FakePersistence

COURSE_ID = "course-1"


def persisted_section() -> Section:
    return Section(
        id=PersistedId("S-100"),
        title="Getting started",
        lessons=[Lesson(id=PersistedId("L-200"), title="Welcome", order=0)],
        quiz=Quiz(id=PersistedId("Q-300"), title="Warm-up quiz"),
    )


@pytest.fixture
def persistence():
    return FakePersistence()


@pytest.fixture
def curriculum_form():
    return InMemoryCurriculumForm([persisted_section()])


@pytest.fixture
def empty_form():
    return InMemoryCurriculumForm()


@pytest.fixture
def basic_form():
    return InMemoryMetadataForm({
        "title": "Intro to Python",
        "price": 19.99,
        "duration": {"unit": "weeks", "value": 4},
    })


@pytest.fixture
def advanced_form():
    return InMemoryMetadataForm({
        "description": "Learn Python",
        "learning_outcomes": [{"text": "Write scripts"}],
    })


@pytest.fixture
def events():
    return []


def _config(form, basic_form, advanced_form, events, **overrides):
    config = CourseControllerConfig(
        course_id=COURSE_ID,
        curriculum_form=form,
        basic_form=basic_form,
        advanced_form=advanced_form,
        on_success=lambda msg: events.append(("success", msg)),
        on_error=lambda msg: events.append(("error", msg)),
        on_settled=lambda: events.append(("settled", None)),
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


@pytest.fixture
def make_controller(persistence, basic_form, advanced_form, events):
    """Factory: controller over a given form, with optional config overrides."""
    def _make(form, **overrides):
        prune = overrides.pop("prune_succeeded_on_partial_failure", True)
        return CourseController(
            _config(form, basic_form, advanced_form, events, **overrides),
            persistence,
            prune_succeeded_on_partial_failure=prune,
        )
    return _make


@pytest.fixture
def controller(make_controller, curriculum_form):
    return make_controller(curriculum_form)
