"""Phase Planning — order normalized operations into dependency-respecting steps.

Invariants:
    - Steps run strictly in sequence: DELETE, CREATE (sections), CREATE (lessons/quizzes),
      UPDATE, REORDER
    - Section creates are sequential and keep enqueue order
    - Every other step is concurrent
    - Empty steps are omitted; every input op appears in exactly one step
"""

from dataclasses import dataclass

from curriculum_sync.core.domain_types import EntityKind, OpAction, Phase
from curriculum_sync.core.operations import CurriculumOp

_PHASE_FOR_ACTION = {
    OpAction.DELETE: Phase.DELETE,
    OpAction.CREATE: Phase.CREATE,
    OpAction.UPDATE: Phase.UPDATE,
    OpAction.REORDER: Phase.REORDER,
}


@dataclass(frozen=True)
class PhaseStep:
    phase: Phase
    ops: tuple[CurriculumOp, ...]
    sequential: bool = False


def plan_phases(ops: list[CurriculumOp]) -> list[PhaseStep]:
    """Split normalized ops into ordered execution steps."""
    by_phase: dict[Phase, list[CurriculumOp]] = {phase: [] for phase in Phase}
    for op in ops:
        by_phase[_PHASE_FOR_ACTION[op.action]].append(op)

    creates = by_phase[Phase.CREATE]
    section_creates = tuple(op for op in creates if op.kind is EntityKind.SECTION)
    child_creates = tuple(op for op in creates if op.kind is not EntityKind.SECTION)

    steps = [
        PhaseStep(Phase.DELETE, tuple(by_phase[Phase.DELETE])),
        PhaseStep(Phase.CREATE, section_creates, sequential=True),
        PhaseStep(Phase.CREATE, child_creates),
        PhaseStep(Phase.UPDATE, tuple(by_phase[Phase.UPDATE])),
        PhaseStep(Phase.REORDER, tuple(by_phase[Phase.REORDER])),
    ]
    return [step for step in steps if step.ops]
