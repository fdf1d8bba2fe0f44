"""Operation Model — tagged records for one structural change each.

Invariants:
    - CurriculumOp.id is the temp id for CREATE variants, temp or server id otherwise
    - Lesson/Quiz operations always carry section_id; Section operations never do
    - CREATE carries an order hint, UPDATE a partial field payload, REORDER a new order
    - Operations are frozen: coalescing builds new records, never mutates queued ones

Design Decisions:
    - One record type tagged by OpType instead of 13 classes: the coalescing table
      and the phase planner dispatch on (kind, action), not on class
"""

from dataclasses import dataclass, field, replace
from typing import Any

from curriculum_sync.core.domain_types import (
    EntityId, EntityKind, OpAction, OpType, PersistedId,
)


@dataclass(frozen=True)
class CurriculumOp:
    """One queued change to a section, lesson or quiz."""
    type: OpType
    id: EntityId
    section_id: EntityId | None = None
    data: dict[str, Any] = field(default_factory=dict)
    order: int | None = None
    new_order: int | tuple[int, ...] | None = None

    @property
    def kind(self) -> EntityKind:
        return self.type.kind  # type: ignore[return-value]

    @property
    def action(self) -> OpAction:
        return self.type.action

    @property
    def entity_key(self) -> str:
        """Grouping key used by normalize(): `kind:id`."""
        return f"{self.kind.value}:{self.id}"

    def with_data(self, updates: dict[str, Any]) -> "CurriculumOp":
        """Copy with `updates` shallow-merged over data (right-biased)."""
        return replace(self, data={**self.data, **updates})


@dataclass(frozen=True)
class CourseOp:
    """Flat course metadata change (BASIC_UPDATE / ADVANCED_UPDATE)."""
    type: OpType
    data: dict[str, Any] = field(default_factory=dict)


AnyOp = CurriculumOp | CourseOp


@dataclass(frozen=True)
class OpResult:
    """Outcome of executing one operation."""
    success: bool
    op: AnyOp
    error: str | None = None
    error_code: str | None = None
    new_id: PersistedId | None = None
    details: dict[str, Any] | None = None  # to_dict() envelope of a raised CurriculumSyncError


@dataclass(frozen=True)
class CommitResult:
    """Outcome of commit(). failed_ops is None for abort/veto, a list on partial failure."""
    success: bool
    failed_ops: list[OpResult] | None = None


# ─── Constructors (one per variant) ─────────────────────────────

def section_create(temp_id: EntityId, data: dict, order: int) -> CurriculumOp:
    return CurriculumOp(OpType.SECTION_CREATE, temp_id, data=data, order=order)


def section_update(section_id: EntityId, data: dict) -> CurriculumOp:
    return CurriculumOp(OpType.SECTION_UPDATE, section_id, data=data)


def section_delete(section_id: EntityId) -> CurriculumOp:
    return CurriculumOp(OpType.SECTION_DELETE, section_id)


def section_reorder(section_id: EntityId, new_order: int) -> CurriculumOp:
    return CurriculumOp(OpType.SECTION_REORDER, section_id, new_order=new_order)


def lesson_create(
    section_id: EntityId, temp_id: EntityId, data: dict, order: int,
) -> CurriculumOp:
    return CurriculumOp(
        OpType.LESSON_CREATE, temp_id, section_id=section_id, data=data, order=order,
    )


def lesson_update(section_id: EntityId, lesson_id: EntityId, data: dict) -> CurriculumOp:
    return CurriculumOp(OpType.LESSON_UPDATE, lesson_id, section_id=section_id, data=data)


def lesson_delete(section_id: EntityId, lesson_id: EntityId) -> CurriculumOp:
    return CurriculumOp(OpType.LESSON_DELETE, lesson_id, section_id=section_id)


def lesson_reorder(
    section_id: EntityId, lesson_id: EntityId, new_order: tuple[int, ...],
) -> CurriculumOp:
    return CurriculumOp(
        OpType.LESSON_REORDER, lesson_id, section_id=section_id, new_order=new_order,
    )


def quiz_create(section_id: EntityId, temp_id: EntityId, data: dict) -> CurriculumOp:
    return CurriculumOp(OpType.QUIZ_CREATE, temp_id, section_id=section_id, data=data)


def quiz_update(section_id: EntityId, quiz_id: EntityId, data: dict) -> CurriculumOp:
    return CurriculumOp(OpType.QUIZ_UPDATE, quiz_id, section_id=section_id, data=data)


def quiz_delete(section_id: EntityId, quiz_id: EntityId) -> CurriculumOp:
    return CurriculumOp(OpType.QUIZ_DELETE, quiz_id, section_id=section_id)
