"""Operation Executor — runs normalized operations against the persistence service.

Invariants:
    - Steps from plan_phases() run in order; a step finishes before the next starts
    - Section creates are awaited one at a time; every other step runs concurrently
    - One operation's failure is recorded as its own failed OpResult and never
      aborts siblings; only CommitAbortedError stops the run
    - Payloads are built from a fresh snapshot per call, never from op.data
    - Snapshot lookups use the ids the tree holds; remote calls use ids resolved
      through the IdentityMap
    - A dependent call whose temporary id cannot be resolved fails fast with
      UnresolvedIdentityError, nothing is sent
    - A CREATE whose temporary id is already resolved is sent as an UPDATE of the
      server entity
    - Deleting an id that never reached the server is a no-op success
    - Reorders report success without a remote call

Design Decisions:
    - Explicit dispatch dicts per action: every (kind, action) → handler mapping
      visible in one place
    - Every remote call goes through CancellationToken.guard()
"""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable

from curriculum_sync.core.boundary_protocols import (
    CoursePersistence, DocumentSnapshot, ServiceResult,
)
from curriculum_sync.core.domain_types import (
    EntityKind, OpAction, OpType, PersistedId, TemporaryId,
)
from curriculum_sync.core.errors import (
    CommitAbortedError, CurriculumSyncError, ErrorContext, SnapshotMissingError,
)
from curriculum_sync.core.identity_map import IdentityMap
from curriculum_sync.core.operation_queue import OperationQueue
from curriculum_sync.core.operations import AnyOp, CourseOp, CurriculumOp, OpResult
from curriculum_sync.core.phase_plan import PhaseStep, plan_phases
from curriculum_sync.services.cancellation import CancellationToken
from curriculum_sync.services.payload_builders import (
    build_course_payload,
    build_lesson_payload,
    build_quiz_payload,
    build_section_payload,
)

logger = logging.getLogger(__name__)

SnapshotFactory = Callable[[], DocumentSnapshot]


def _service_outcome(
    op: CurriculumOp, result: ServiceResult, new_id: PersistedId | None = None,
) -> OpResult:
    if result.success:
        return OpResult(success=True, op=op, new_id=new_id)
    return OpResult(
        success=False, op=op,
        error=result.message or "Service rejected the operation",
        error_code="SERVICE_REJECTED",
    )


class OperationExecutor:
    """Executes queued operations in dependency order for one course."""

    def __init__(
        self,
        course_id: str,
        persistence: CoursePersistence,
        snapshot_factory: SnapshotFactory,
        identity_map: IdentityMap | None = None,
    ):
        self._course_id = course_id
        self._persistence = persistence
        self._snapshot_factory = snapshot_factory
        self.identity_map = identity_map or IdentityMap()

        self._handlers: dict[OpAction, Callable[..., Awaitable[OpResult]]] = {
            OpAction.DELETE: self._execute_delete,
            OpAction.CREATE: self._execute_create,
            OpAction.UPDATE: self._execute_update,
            OpAction.REORDER: self._execute_reorder,
        }

    async def execute_all(
        self,
        queue: OperationQueue,
        token: CancellationToken | None = None,
        sink: list[OpResult] | None = None,
    ) -> list[OpResult]:
        """Run every pending op of `queue`; results are added to the queue and returned.

        Each result is recorded (in the queue and in `sink`) as soon as its op
        finishes. Raises CommitAbortedError if `token` is aborted; results
        recorded before the abort stay recorded.
        """
        token = token or CancellationToken()
        run_results = sink if sink is not None else []

        def record(result: OpResult) -> OpResult:
            queue.add_result(result)
            run_results.append(result)
            return result

        for step in plan_phases(queue.get_all()):
            logger.info(
                f"Executing {step.phase.value} step: {len(step.ops)} op(s)"
                f"{' (sequential)' if step.sequential else ''}",
                extra={"course_id": self._course_id, "phase": step.phase.value},
            )
            await self._run_step(step, token, record)
        return run_results

    async def execute_course_update(
        self, basic_changes: dict, advanced_changes: dict,
    ) -> OpResult:
        """Send one combined flat-metadata update (not queued, not phased)."""
        op = CourseOp(OpType.BASIC_UPDATE, {**basic_changes, **advanced_changes})
        try:
            payload = build_course_payload(basic_changes, advanced_changes)
            result = await self._persistence.update_course(self._course_id, payload)
        except Exception as e:
            logger.warning(
                f"Course metadata update failed: {e}",
                extra={"course_id": self._course_id, "op_type": op.type.value},
            )
            return _failed_result(op, e)
        if not result.success:
            return OpResult(
                success=False, op=op, error=result.message or "Update failed",
                error_code="SERVICE_REJECTED",
            )
        return OpResult(success=True, op=op)

    def get_id_mapping(self) -> IdentityMap:
        return self.identity_map

    # --- Step scheduling ------------------------------------------------------

    async def _run_step(
        self,
        step: PhaseStep,
        token: CancellationToken,
        record: Callable[[OpResult], OpResult],
    ) -> None:
        if step.sequential:
            for op in step.ops:
                record(await self._run_isolated(op, token))
            return

        async def run_and_record(op: CurriculumOp) -> OpResult:
            return record(await self._run_isolated(op, token))

        outcomes = await asyncio.gather(
            *(run_and_record(op) for op in step.ops),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    async def _run_isolated(
        self, op: CurriculumOp, token: CancellationToken,
    ) -> OpResult:
        """Execute one op; any failure other than abort becomes a failed result."""
        token.raise_if_aborted()
        try:
            return await self._handlers[op.action](op, token)
        except CommitAbortedError:
            raise
        except Exception as e:
            logger.warning(
                f"{op.type.value} {op.id} failed: {e}",
                extra={
                    "course_id": self._course_id, "op_type": op.type.value,
                    "entity_id": str(op.id), "error_code": _code_of(e),
                },
            )
            return _failed_result(op, e)

    # --- Deletes ----------------------------------------------------------------

    async def _execute_delete(
        self, op: CurriculumOp, token: CancellationToken,
    ) -> OpResult:
        target = self.identity_map.resolve(op.kind, op.id)
        if isinstance(target, TemporaryId):
            logger.debug(
                f"{op.type.value} {op.id} never reached the server, nothing to delete",
                extra={"entity_id": str(op.id)},
            )
            return OpResult(success=True, op=op)

        if op.kind is EntityKind.SECTION:
            call = self._persistence.delete_section(self._course_id, target.value)
        else:
            section_id = self._require_section(op)
            deleter = {
                EntityKind.LESSON: self._persistence.delete_lesson,
                EntityKind.QUIZ: self._persistence.delete_quiz,
            }[op.kind]
            call = deleter(self._course_id, section_id, target.value)
        return _service_outcome(op, await token.guard(call))

    # --- Creates ----------------------------------------------------------------

    async def _execute_create(
        self, op: CurriculumOp, token: CancellationToken,
    ) -> OpResult:
        if not isinstance(op.id, TemporaryId):
            raise ValueError(f"{op.type.value} must carry a temporary id, got {op.id!r}")
        already = self.identity_map.lookup(op.kind, op.id)
        if already is not None:
            logger.info(
                f"{op.type.value} {op.id} already applied as {already}, sending as update",
                extra={"entity_id": str(op.id), "op_type": op.type.value},
            )
            result = await self._execute_update(op, token)
            return replace(result, new_id=already) if result.success else result

        snapshot = self._snapshot_factory()
        if op.kind is EntityKind.SECTION:
            section = snapshot.get_section(op.id)
            if section is None:
                raise SnapshotMissingError("section", str(op.id), self._context(op))
            call = self._persistence.create_section(
                self._course_id, build_section_payload(section),
            )
        elif op.kind is EntityKind.LESSON:
            section_id = self._require_section(op)
            lesson = snapshot.get_lesson(op.section_id, op.id)
            if lesson is None:
                raise SnapshotMissingError("lesson", str(op.id), self._context(op))
            call = self._persistence.create_lesson(
                self._course_id, section_id, build_lesson_payload(lesson),
            )
        else:
            section_id = self._require_section(op)
            quiz = snapshot.get_quiz(op.section_id)
            if quiz is None or quiz.id != op.id:
                raise SnapshotMissingError("quiz", str(op.id), self._context(op))
            call = self._persistence.create_quiz(
                self._course_id, section_id, build_quiz_payload(quiz),
            )

        result = await token.guard(call)
        new_id = result.new_id if result.success else None
        if result.success and new_id is None:
            return OpResult(
                success=False, op=op, error="Service returned no id for created entity",
                error_code="SERVICE_NO_ID",
            )
        if new_id is not None:
            self.identity_map.record(op.kind, op.id, new_id)
        return _service_outcome(op, result, new_id)

    # --- Updates ----------------------------------------------------------------

    async def _execute_update(
        self, op: CurriculumOp, token: CancellationToken,
    ) -> OpResult:
        target = self.identity_map.require(op.kind, op.id)
        snapshot = self._snapshot_factory()
        if op.kind is EntityKind.SECTION:
            section = snapshot.get_section(op.id)
            if section is None:
                raise SnapshotMissingError("section", str(op.id), self._context(op))
            call = self._persistence.update_section(
                self._course_id, target.value, build_section_payload(section),
            )
        elif op.kind is EntityKind.LESSON:
            section_id = self._require_section(op)
            lesson = snapshot.get_lesson(op.section_id, op.id)
            if lesson is None:
                raise SnapshotMissingError("lesson", str(op.id), self._context(op))
            call = self._persistence.update_lesson(
                self._course_id, section_id, target.value, build_lesson_payload(lesson),
            )
        else:
            section_id = self._require_section(op)
            quiz = snapshot.get_quiz(op.section_id)
            if quiz is None or quiz.id != op.id:
                raise SnapshotMissingError("quiz", str(op.id), self._context(op))
            call = self._persistence.update_quiz(
                self._course_id, section_id, target.value, build_quiz_payload(quiz),
            )
        return _service_outcome(op, await token.guard(call))

    # --- Reorders ---------------------------------------------------------------

    async def _execute_reorder(
        self, op: CurriculumOp, token: CancellationToken,
    ) -> OpResult:
        # TODO: persist once the service exposes a reorder endpoint
        logger.debug(
            f"{op.type.value} {op.id} -> {op.new_order} recorded without remote call",
            extra={"op_type": op.type.value, "entity_id": str(op.id)},
        )
        return OpResult(success=True, op=op)

    # --- Helpers ----------------------------------------------------------------

    def _require_section(self, op: CurriculumOp) -> str:
        """Server id of the op's owning section (orphans raise UnresolvedIdentityError)."""
        if op.section_id is None:
            raise ValueError(f"{op.type.value} carries no section id")
        return self.identity_map.require(EntityKind.SECTION, op.section_id).value

    def _context(self, op: CurriculumOp) -> ErrorContext:
        return ErrorContext(
            course_id=self._course_id, op_type=op.type.value, entity_id=str(op.id),
        )


def _code_of(error: Exception) -> str:
    return error.code if isinstance(error, CurriculumSyncError) else "REMOTE_ERROR"


def _failed_result(op: AnyOp, error: Exception) -> OpResult:
    """Failed OpResult for a raised error; sync errors carry their to_dict() envelope."""
    if isinstance(error, CurriculumSyncError):
        envelope = error.to_dict()["error"]
        return OpResult(
            success=False, op=op, error=envelope["message"],
            error_code=envelope["code"], details=envelope,
        )
    return OpResult(
        success=False, op=op, error=str(error) or repr(error), error_code="REMOTE_ERROR",
    )
