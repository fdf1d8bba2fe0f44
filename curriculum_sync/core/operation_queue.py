"""Operation Queue — pending operation buffer plus an independent results log.

Invariants:
    - Pending ops and results are independent: results never decide what is sent next
    - get_all()/get_results() return copies; callers cannot mutate internals
    - update_create_op()/remove_create_op() only ever touch CREATE operations
    - discard() matches records by value: a CREATE patched after it was sent is a
      different record and stays pending
    - A newer result for the same operation (type + entity) supersedes an older
      failure, so get_failed_ops() reports what is failed *now*; successes accumulate

Design Decisions:
    - Synchronous and IO-free: the executor appends results, the controller owns
      the instance (one queue per controller, not re-entrant)
"""

from typing import Callable

from curriculum_sync.core.coalesce import normalize
from curriculum_sync.core.domain_types import OpAction
from curriculum_sync.core.operations import AnyOp, CurriculumOp, OpResult


def _result_key(op: AnyOp) -> tuple[str, str]:
    if isinstance(op, CurriculumOp):
        return op.type.value, op.entity_key
    return op.type.value, ""


class OperationQueue:
    """Pending curriculum operations and their execution results."""

    def __init__(self) -> None:
        self._ops: list[CurriculumOp] = []
        self._results: list[OpResult] = []

    # --- Pending operations ---------------------------------------------------

    def push(self, op: CurriculumOp) -> None:
        self._ops.append(op)

    def push_multiple(self, ops: list[CurriculumOp]) -> None:
        self._ops.extend(ops)

    def update_create_op(
        self,
        predicate: Callable[[CurriculumOp], bool],
        updater: Callable[[CurriculumOp], CurriculumOp],
    ) -> int:
        """Patch matching pending CREATEs in place. Returns how many matched."""
        updated = 0
        for i, op in enumerate(self._ops):
            if op.action is OpAction.CREATE and predicate(op):
                self._ops[i] = updater(op)
                updated += 1
        return updated

    def remove_create_op(self, predicate: Callable[[CurriculumOp], bool]) -> int:
        """Drop matching pending CREATEs. Returns how many were removed."""
        kept = [
            op for op in self._ops
            if not (op.action is OpAction.CREATE and predicate(op))
        ]
        removed = len(self._ops) - len(kept)
        self._ops = kept
        return removed

    def normalize(self) -> list[CurriculumOp]:
        """Coalesce pending ops in place; returns a copy of the result."""
        self._ops = normalize(self._ops)
        return list(self._ops)

    def discard(self, ops: list[CurriculumOp]) -> int:
        """Remove the given ops (by value) from the pending queue."""
        kept = [op for op in self._ops if op not in ops]
        removed = len(self._ops) - len(kept)
        self._ops = kept
        return removed

    def get_all(self) -> list[CurriculumOp]:
        return list(self._ops)

    def clear(self) -> None:
        self._ops = []

    def size(self) -> int:
        return len(self._ops)

    def is_empty(self) -> bool:
        return not self._ops

    # --- Results log ----------------------------------------------------------

    def add_result(self, result: OpResult) -> None:
        key = _result_key(result.op)
        self._results = [
            r for r in self._results
            if r.success or _result_key(r.op) != key
        ]
        self._results.append(result)

    def get_results(self) -> list[OpResult]:
        return list(self._results)

    def get_failed_ops(self) -> list[AnyOp]:
        return [r.op for r in self._results if not r.success]

    def has_failures(self) -> bool:
        return any(not r.success for r in self._results)
