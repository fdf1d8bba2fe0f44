"""OperationExecutor tests — phased execution against a recording fake service.

Tests cover:
    - Dependent creates use the parent's resolved server id, never the temp id
    - Section creates are sequential; child creates run concurrently
    - Payloads come from the live snapshot, not from op.data
    - Failure isolation: one failed op never aborts siblings
    - Orphans fail fast with UNRESOLVED_IDENTITY and send nothing; raised errors
      carry their to_dict() envelope on the failed result
    - A CREATE already in the identity map is sent as an update of the server entity
    - Deleting a never-persisted entity is a no-op success
    - Reorders succeed without a remote call
    - Abort stops the run and keeps results recorded so far
"""

import asyncio

import pytest

from curriculum_sync.core.boundary_protocols import ServiceResult
from curriculum_sync.core.curriculum import Lesson, Quiz, Section
from curriculum_sync.core.domain_types import EntityKind, PersistedId, TemporaryId
from curriculum_sync.core.errors import CommitAbortedError, PersistenceServiceError
from curriculum_sync.core.operation_queue import OperationQueue
from curriculum_sync.core.operations import (
    lesson_create, lesson_reorder, lesson_update, quiz_create, quiz_delete,
    section_create, section_delete, section_update,
)
from curriculum_sync.infrastructure.memory_forms import InMemoryCurriculumForm
from curriculum_sync.services.cancellation import CancellationToken
from curriculum_sync.services.operation_executor import OperationExecutor

SEC_T = TemporaryId("sec_1")
LES_T = TemporaryId("les_1")
SEC_P = PersistedId("S-100")


# -- Helpers -------------------------------------------------------------------

def _executor(persistence, sections):
    form = InMemoryCurriculumForm(sections)
    return OperationExecutor("course-1", persistence, form.snapshot), form


def _queue(*ops):
    queue = OperationQueue()
    queue.push_multiple(list(ops))
    return queue


def _new_section_with_lesson():
    return Section(id=SEC_T, title="Basics", lessons=[Lesson(id=LES_T, title="First")])


# ==============================================================================
# Identity resolution
# ==============================================================================


async def test_lesson_create_uses_resolved_section_id(persistence):
    executor, _ = _executor(persistence, [_new_section_with_lesson()])
    queue = _queue(
        section_create(SEC_T, {"title": "Basics"}, 0),
        lesson_create(SEC_T, LES_T, {"title": "First"}, 0),
    )

    results = await executor.execute_all(queue)

    assert all(r.success for r in results)
    assert persistence.methods() == ["create_section", "create_lesson"]
    course_id, section_id, payload = persistence.calls_to("create_lesson")[0]
    assert course_id == "course-1"
    assert section_id == "S1"
    assert payload["title"] == "First"
    assert executor.identity_map.lookup(EntityKind.SECTION, SEC_T) == PersistedId("S1")
    assert executor.identity_map.lookup(EntityKind.LESSON, LES_T) == PersistedId("L1")


async def test_create_result_carries_new_id(persistence):
    executor, _ = _executor(persistence, [Section(id=SEC_T, title="A")])
    [result] = await executor.execute_all(_queue(section_create(SEC_T, {}, 0)))
    assert result.new_id == PersistedId("S1")


async def test_update_of_created_entity_targets_server_id(persistence):
    executor, _ = _executor(persistence, [Section(id=SEC_T, title="Renamed")])
    executor.identity_map.record(EntityKind.SECTION, SEC_T, PersistedId("S-9"))

    await executor.execute_all(_queue(section_update(SEC_T, {"title": "Renamed"})))

    [(course_id, section_id, payload)] = persistence.calls_to("update_section")
    assert section_id == "S-9"
    assert payload["title"] == "Renamed"


async def test_already_applied_create_is_sent_as_update(persistence):
    executor, _ = _executor(persistence, [Section(id=SEC_T, title="Renamed")])
    executor.identity_map.record(EntityKind.SECTION, SEC_T, PersistedId("S-9"))

    [result] = await executor.execute_all(
        _queue(section_create(SEC_T, {"title": "Renamed"}, 0)),
    )

    assert result.success
    assert result.new_id == PersistedId("S-9")
    assert persistence.methods() == ["update_section"]
    [(_, section_id, payload)] = persistence.calls_to("update_section")
    assert section_id == "S-9"
    assert payload["title"] == "Renamed"


async def test_already_applied_create_reports_update_failure(persistence):
    persistence.fail_next("update_lesson")
    executor, _ = _executor(persistence, [_new_section_with_lesson()])
    executor.identity_map.record(EntityKind.SECTION, SEC_T, PersistedId("S-9"))
    executor.identity_map.record(EntityKind.LESSON, LES_T, PersistedId("L-9"))

    [result] = await executor.execute_all(_queue(lesson_create(SEC_T, LES_T, {}, 0)))

    assert not result.success
    assert result.error_code == "SERVICE_REJECTED"
    assert persistence.calls_to("create_lesson") == []


async def test_orphan_fails_fast_without_remote_call(persistence):
    persistence.fail_next("create_section")
    executor, _ = _executor(persistence, [_new_section_with_lesson()])
    queue = _queue(
        section_create(SEC_T, {}, 0),
        lesson_create(SEC_T, LES_T, {}, 0),
    )

    results = await executor.execute_all(queue)

    by_type = {r.op.type.value: r for r in results}
    assert by_type["SECTION_CREATE"].error_code == "SERVICE_REJECTED"
    assert by_type["LESSON_CREATE"].error_code == "UNRESOLVED_IDENTITY"
    assert by_type["LESSON_CREATE"].details["code"] == "UNRESOLVED_IDENTITY"
    assert by_type["LESSON_CREATE"].details["category"] == "dependency"
    assert by_type["SECTION_CREATE"].details is None
    assert persistence.calls_to("create_lesson") == []


# ==============================================================================
# Scheduling
# ==============================================================================


async def test_section_creates_run_one_at_a_time_in_order(persistence):
    persistence.delay("create_section", 0.01)
    a, b = TemporaryId("sec_a"), TemporaryId("sec_b")
    executor, _ = _executor(persistence, [Section(id=a, title="A"), Section(id=b, title="B")])

    await executor.execute_all(_queue(section_create(a, {}, 0), section_create(b, {}, 1)))

    assert persistence.max_active == 1
    assert [args[1]["title"] for args in persistence.calls_to("create_section")] == ["A", "B"]


async def test_child_creates_run_concurrently(persistence):
    persistence.delay("create_lesson", 0.01)
    persistence.delay("create_quiz", 0.01)
    quiz_id = TemporaryId("quiz_1")
    section = Section(
        id=SEC_P, title="S",
        lessons=[Lesson(id=LES_T, title="L")],
        quiz=Quiz(id=quiz_id, title="Q"),
    )
    executor, _ = _executor(persistence, [section])

    await executor.execute_all(_queue(
        lesson_create(SEC_P, LES_T, {}, 0),
        quiz_create(SEC_P, quiz_id, {}),
    ))

    assert persistence.max_active == 2


async def test_phases_run_delete_create_update(persistence):
    executor, _ = _executor(persistence, [
        Section(id=SEC_P, title="Kept"),
        Section(id=SEC_T, title="New"),
    ])
    queue = _queue(
        section_update(SEC_P, {"title": "Kept"}),
        section_create(SEC_T, {}, 1),
        quiz_delete(SEC_P, PersistedId("Q-1")),
    )

    await executor.execute_all(queue)

    assert persistence.methods() == ["delete_quiz", "create_section", "update_section"]


# ==============================================================================
# Payloads and failures
# ==============================================================================


async def test_payload_built_from_snapshot_not_op_data(persistence):
    executor, _ = _executor(persistence, [Section(id=SEC_T, title="Fresh", description="d")])

    await executor.execute_all(_queue(section_create(SEC_T, {"title": "Stale"}, 0)))

    [(_, payload)] = persistence.calls_to("create_section")
    assert payload["title"] == "Fresh"
    assert payload["description"] == "d"


async def test_entity_missing_from_snapshot_fails(persistence):
    executor, _ = _executor(persistence, [Section(id=SEC_P, title="S")])

    [result] = await executor.execute_all(
        _queue(lesson_update(SEC_P, PersistedId("L-gone"), {"title": "x"})),
    )

    assert not result.success
    assert result.error_code == "SNAPSHOT_MISSING"
    assert persistence.calls == []


async def test_one_failure_does_not_abort_siblings(persistence):
    persistence.fail_next("update_lesson", RuntimeError("socket closed"))
    section = Section(id=SEC_P, title="S", lessons=[
        Lesson(id=PersistedId("L-1"), title="a"),
        Lesson(id=PersistedId("L-2"), title="b"),
    ])
    executor, _ = _executor(persistence, [section])
    queue = _queue(
        lesson_update(SEC_P, PersistedId("L-1"), {"title": "a"}),
        lesson_update(SEC_P, PersistedId("L-2"), {"title": "b"}),
    )

    results = await executor.execute_all(queue)

    assert len(persistence.calls_to("update_lesson")) == 2
    assert sorted(r.success for r in results) == [False, True]
    failed = next(r for r in results if not r.success)
    assert failed.error_code == "REMOTE_ERROR"
    assert failed.error == "socket closed"
    assert queue.has_failures()


async def test_service_rejection_carries_message(persistence):
    persistence.fail_next("delete_section", ServiceResult(success=False, message="Section locked"))
    executor, _ = _executor(persistence, [])

    [result] = await executor.execute_all(_queue(section_delete(SEC_P)))

    assert result.error == "Section locked"
    assert result.error_code == "SERVICE_REJECTED"


async def test_transport_error_code_is_kept(persistence):
    persistence.fail_next("delete_section", PersistenceServiceError("down", "connection_error"))
    executor, _ = _executor(persistence, [])

    [result] = await executor.execute_all(_queue(section_delete(SEC_P)))

    assert result.error_code == "PERSISTENCE_SERVICE_ERROR"


async def test_create_without_returned_id_fails(persistence):
    persistence.fail_next("create_section", ServiceResult(success=True, data={}))
    executor, _ = _executor(persistence, [Section(id=SEC_T, title="A")])

    [result] = await executor.execute_all(_queue(section_create(SEC_T, {}, 0)))

    assert result.error_code == "SERVICE_NO_ID"
    assert not executor.identity_map.is_resolved(EntityKind.SECTION, SEC_T)


async def test_delete_of_never_persisted_entity_is_noop(persistence):
    executor, _ = _executor(persistence, [])
    [result] = await executor.execute_all(_queue(section_delete(TemporaryId("sec_x"))))
    assert result.success
    assert persistence.calls == []


async def test_reorder_succeeds_without_remote_call(persistence):
    executor, _ = _executor(persistence, [])
    op = lesson_reorder(SEC_P, PersistedId("L-1"), (1, 0))
    [result] = await executor.execute_all(_queue(op))
    assert result.success
    assert persistence.calls == []


# ==============================================================================
# Abort
# ==============================================================================


async def test_abort_stops_run_and_keeps_recorded_results(persistence):
    persistence.delay("update_section", 10)
    executor, _ = _executor(persistence, [Section(id=SEC_P, title="S")])
    queue = _queue(
        quiz_delete(SEC_P, PersistedId("Q-1")),
        section_update(SEC_P, {"title": "S"}),
    )
    token = CancellationToken()
    sink = []

    run = asyncio.create_task(executor.execute_all(queue, token, sink))
    await asyncio.sleep(0.01)
    token.abort()

    with pytest.raises(CommitAbortedError):
        await run
    assert [r.op.type.value for r in sink] == ["QUIZ_DELETE"]
    assert persistence.cancelled == ["update_section"]


async def test_pre_aborted_token_sends_nothing(persistence):
    executor, _ = _executor(persistence, [])
    with pytest.raises(CommitAbortedError):
        await executor.execute_all(_queue(section_delete(SEC_P)), CancellationToken.pre_aborted())
    assert persistence.calls == []


# ==============================================================================
# Course metadata
# ==============================================================================


async def test_course_update_sends_combined_payload(persistence):
    executor, _ = _executor(persistence, [])

    result = await executor.execute_course_update({"title": "T"}, {"description": "D"})

    assert result.success
    [(course_id, payload)] = persistence.calls_to("update_course")
    assert course_id == "course-1"
    assert payload == {"title": "T", "description": "D"}


async def test_course_update_failure_becomes_result(persistence):
    persistence.fail_next("update_course", RuntimeError("offline"))
    executor, _ = _executor(persistence, [])

    result = await executor.execute_course_update({"title": "T"}, {})

    assert not result.success
    assert result.error == "offline"
