"""Coalescing — reduce the queued operations of each entity to its net effect.

Invariants:
    - normalize() yields at most one net group per entity key, groups in first-seen order
    - CREATE absorbs later UPDATEs (right-biased shallow merge of data)
    - CREATE followed by DELETE cancels the whole group: nothing is sent
    - UPDATE + UPDATE merges right-biased; merging is associative
    - DELETE dominates UPDATE/REORDER on the same entity
    - Pure: input list is not mutated, output ops are new records where merged

Design Decisions:
    - Every (held, incoming) action pair has an explicit Rule in _RULES; a missing
      pair is a KeyError, so the table stays exhaustive
    - A group holds at most one op per action; incoming ops are matched against held
      ops in _SCAN_ORDER and the first non-KEEP_BOTH rule decides
"""

import logging
from dataclasses import replace
from enum import Enum

from curriculum_sync.core.domain_types import EntityKind, OpAction
from curriculum_sync.core.operations import CurriculumOp

logger = logging.getLogger(__name__)


class Rule(str, Enum):
    """What happens when `incoming` meets a `held` op of the same entity."""
    MERGE = "merge"                            # held absorbs incoming data
    MERGE_INTO_INCOMING = "merge_into_incoming"  # incoming absorbs held data, held dropped
    ABSORB = "absorb"                          # incoming dropped, held unchanged
    SUPERSEDE = "supersede"                    # held dropped, incoming continues
    CANCEL = "cancel"                          # both dropped, entity has no net effect
    KEEP_BOTH = "keep_both"


_C, _U, _D, _R = OpAction.CREATE, OpAction.UPDATE, OpAction.DELETE, OpAction.REORDER

_RULES: dict[tuple[OpAction, OpAction], Rule] = {
    (_C, _C): Rule.SUPERSEDE,
    (_C, _U): Rule.MERGE,
    (_C, _D): Rule.CANCEL,
    (_C, _R): Rule.ABSORB,
    (_U, _C): Rule.MERGE_INTO_INCOMING,
    (_U, _U): Rule.MERGE,
    (_U, _D): Rule.SUPERSEDE,
    (_U, _R): Rule.KEEP_BOTH,
    (_D, _C): Rule.SUPERSEDE,
    (_D, _U): Rule.ABSORB,
    (_D, _D): Rule.SUPERSEDE,
    (_D, _R): Rule.ABSORB,
    (_R, _C): Rule.SUPERSEDE,
    (_R, _U): Rule.KEEP_BOTH,
    (_R, _D): Rule.SUPERSEDE,
    (_R, _R): Rule.SUPERSEDE,
}

_SCAN_ORDER = (_C, _D, _U, _R)


def coalesce_rule(kind: EntityKind, held: OpAction, incoming: OpAction) -> Rule:
    """Rule for an (entity kind, held action, incoming action) triple."""
    if kind is EntityKind.QUIZ and _R in (held, incoming):
        raise ValueError("Quizzes have no reorder operation")
    return _RULES[(held, incoming)]


def coalesce_group(ops: list[CurriculumOp]) -> list[CurriculumOp]:
    """Net operations for one entity's ops, in enqueue order. [] when cancelled."""
    held: dict[OpAction, CurriculumOp] = {}
    cancelled = False

    for op in ops:
        if cancelled:
            logger.warning(
                f"Ignoring {op.type.value} for cancelled entity {op.entity_key}",
                extra={"op_type": op.type.value, "entity_id": str(op.id)},
            )
            continue
        incoming: CurriculumOp | None = op
        for action in _SCAN_ORDER:
            current = held.get(action)
            if current is None or incoming is None:
                continue
            rule = coalesce_rule(op.kind, action, incoming.action)
            if rule is Rule.MERGE:
                held[action] = current.with_data(incoming.data)
                incoming = None
            elif rule is Rule.MERGE_INTO_INCOMING:
                del held[action]
                incoming = replace(incoming, data={**current.data, **incoming.data})
            elif rule is Rule.ABSORB:
                incoming = None
            elif rule is Rule.SUPERSEDE:
                del held[action]
            elif rule is Rule.CANCEL:
                held.clear()
                cancelled = True
                incoming = None
        if incoming is not None:
            held[incoming.action] = incoming

    return [held[a] for a in _SCAN_ORDER if a in held]


def normalize(ops: list[CurriculumOp]) -> list[CurriculumOp]:
    """Group by entity key (`kind:id`) and coalesce each group.

    Groups that reduce to nothing are dropped with a diagnostic.
    """
    groups: dict[str, list[CurriculumOp]] = {}
    for op in ops:
        groups.setdefault(op.entity_key, []).append(op)

    normalized: list[CurriculumOp] = []
    for key, entity_ops in groups.items():
        net = coalesce_group(entity_ops)
        if not net:
            logger.warning(
                f"Dropped {len(entity_ops)} op(s) for entity {key}: no net effect",
                extra={"entity_id": key},
            )
            continue
        normalized.extend(net)
    return normalized
