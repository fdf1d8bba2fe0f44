"""Identity Map — per-kind mapping from temporary id to server id.

Invariants:
    - Only grows: an entry, once recorded, is never removed or rebound
    - resolve() never maps backward (server → temp); persisted ids pass through unchanged
    - Unresolved temporary ids pass through resolve() unchanged; callers that need
      a server id use require() or is_resolved()

Design Decisions:
    - Plain dicts keyed by TemporaryId: the id types are hashable frozen dataclasses
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from curriculum_sync.core.domain_types import (
    EntityId, EntityKind, PersistedId, TemporaryId,
)
from curriculum_sync.core.errors import UnresolvedIdentityError

logger = logging.getLogger(__name__)


@dataclass
class IdentityMap:
    """Three temp → server mappings, populated as creates succeed."""

    sections: dict[TemporaryId, PersistedId] = field(default_factory=dict)
    lessons: dict[TemporaryId, PersistedId] = field(default_factory=dict)
    quizzes: dict[TemporaryId, PersistedId] = field(default_factory=dict)

    def _table(self, kind: EntityKind) -> dict[TemporaryId, PersistedId]:
        return {
            EntityKind.SECTION: self.sections,
            EntityKind.LESSON: self.lessons,
            EntityKind.QUIZ: self.quizzes,
        }[kind]

    def record(
        self, kind: EntityKind, temp_id: TemporaryId, server_id: PersistedId,
    ) -> None:
        """Bind temp_id to server_id. An existing binding is kept."""
        table = self._table(kind)
        existing = table.get(temp_id)
        if existing is not None:
            if existing != server_id:
                logger.warning(
                    f"Ignoring rebind of {kind.value} {temp_id}: "
                    f"already {existing}, got {server_id}",
                    extra={"entity_id": str(temp_id)},
                )
            return
        table[temp_id] = server_id

    def lookup(self, kind: EntityKind, temp_id: TemporaryId) -> PersistedId | None:
        return self._table(kind).get(temp_id)

    def resolve(self, kind: EntityKind, entity_id: EntityId) -> EntityId:
        """Server id if known, otherwise the id unchanged."""
        if isinstance(entity_id, TemporaryId):
            return self._table(kind).get(entity_id, entity_id)
        return entity_id

    def is_resolved(self, kind: EntityKind, entity_id: EntityId) -> bool:
        """True when entity_id is (or maps to) a server id."""
        return isinstance(self.resolve(kind, entity_id), PersistedId)

    def require(self, kind: EntityKind, entity_id: EntityId) -> PersistedId:
        """Server id for entity_id. Raises UnresolvedIdentityError for orphans."""
        resolved = self.resolve(kind, entity_id)
        if not isinstance(resolved, PersistedId):
            raise UnresolvedIdentityError(kind.value, str(entity_id))
        return resolved

    def view(self) -> dict[str, Mapping[TemporaryId, PersistedId]]:
        """Read-only view of all three tables."""
        return {
            "sections": MappingProxyType(self.sections),
            "lessons": MappingProxyType(self.lessons),
            "quizzes": MappingProxyType(self.quizzes),
        }
