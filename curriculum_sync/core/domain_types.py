"""Domain Types — identity sum type and the closed enums of the operation model.

Invariants:
    - An entity id is exactly one of TemporaryId (client-assigned) or PersistedId (server-assigned)
    - "Is this real yet" is answered by isinstance, never by string prefixes
    - OpType is closed: 13 curriculum variants + 2 flat metadata variants
    - QUIZ has no REORDER variant

Design Decisions:
    - Frozen dataclasses for ids: hashable, usable as dict keys in IdentityMap
    - str Enums: serialize to JSON/log fields without custom encoders
"""

import uuid
from dataclasses import dataclass
from enum import Enum


# ─── Identity Types ──────────────────────────────────────────────

@dataclass(frozen=True)
class TemporaryId:
    """Placeholder id assigned before the service acknowledged a create."""
    token: str

    def __str__(self) -> str:
        return self.token


@dataclass(frozen=True)
class PersistedId:
    """Authoritative id returned by the persistence service."""
    value: str

    def __str__(self) -> str:
        return self.value


EntityId = TemporaryId | PersistedId


def is_temporary(entity_id: EntityId | None) -> bool:
    return isinstance(entity_id, TemporaryId)


# ─── Enums ───────────────────────────────────────────────────────

class EntityKind(str, Enum):
    """Curriculum entity kinds tracked by the identity map."""
    SECTION = "section"
    LESSON = "lesson"
    QUIZ = "quiz"


class OpAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    REORDER = "reorder"


class OpType(str, Enum):
    """Every operation variant — the tag of CurriculumOp / CourseOp."""
    SECTION_CREATE = "SECTION_CREATE"
    SECTION_UPDATE = "SECTION_UPDATE"
    SECTION_DELETE = "SECTION_DELETE"
    SECTION_REORDER = "SECTION_REORDER"
    LESSON_CREATE = "LESSON_CREATE"
    LESSON_UPDATE = "LESSON_UPDATE"
    LESSON_DELETE = "LESSON_DELETE"
    LESSON_REORDER = "LESSON_REORDER"
    QUIZ_CREATE = "QUIZ_CREATE"
    QUIZ_UPDATE = "QUIZ_UPDATE"
    QUIZ_DELETE = "QUIZ_DELETE"
    BASIC_UPDATE = "BASIC_UPDATE"
    ADVANCED_UPDATE = "ADVANCED_UPDATE"

    @property
    def kind(self) -> EntityKind | None:
        """Entity kind, or None for the flat metadata variants."""
        return _OP_TYPE_PARTS.get(self, (None, None))[0]

    @property
    def action(self) -> OpAction:
        parts = _OP_TYPE_PARTS.get(self)
        return parts[1] if parts else OpAction.UPDATE


_OP_TYPE_PARTS: dict[OpType, tuple[EntityKind, OpAction]] = {
    OpType.SECTION_CREATE: (EntityKind.SECTION, OpAction.CREATE),
    OpType.SECTION_UPDATE: (EntityKind.SECTION, OpAction.UPDATE),
    OpType.SECTION_DELETE: (EntityKind.SECTION, OpAction.DELETE),
    OpType.SECTION_REORDER: (EntityKind.SECTION, OpAction.REORDER),
    OpType.LESSON_CREATE: (EntityKind.LESSON, OpAction.CREATE),
    OpType.LESSON_UPDATE: (EntityKind.LESSON, OpAction.UPDATE),
    OpType.LESSON_DELETE: (EntityKind.LESSON, OpAction.DELETE),
    OpType.LESSON_REORDER: (EntityKind.LESSON, OpAction.REORDER),
    OpType.QUIZ_CREATE: (EntityKind.QUIZ, OpAction.CREATE),
    OpType.QUIZ_UPDATE: (EntityKind.QUIZ, OpAction.UPDATE),
    OpType.QUIZ_DELETE: (EntityKind.QUIZ, OpAction.DELETE),
}


def op_type_for(kind: EntityKind, action: OpAction) -> OpType:
    """Inverse of OpType.kind/action. Raises ValueError for QUIZ REORDER."""
    for op_type, parts in _OP_TYPE_PARTS.items():
        if parts == (kind, action):
            return op_type
    raise ValueError(f"No operation variant for {kind.value} {action.value}")


class Phase(str, Enum):
    """Execution phases, in the order the executor runs them."""
    DELETE = "delete"
    CREATE = "create"
    UPDATE = "update"
    REORDER = "reorder"


# ─── Temp id generation ──────────────────────────────────────────

_TEMP_PREFIXES = {
    EntityKind.SECTION: "sec",
    EntityKind.LESSON: "les",
    EntityKind.QUIZ: "quiz",
}


def new_temp_id(kind: EntityKind | str) -> TemporaryId:
    """Fresh client-side id. Accepts a kind or a free prefix ("content", "question")."""
    prefix = _TEMP_PREFIXES.get(kind, str(getattr(kind, "value", kind)))
    return TemporaryId(f"{prefix}_{uuid.uuid4().hex[:12]}")
