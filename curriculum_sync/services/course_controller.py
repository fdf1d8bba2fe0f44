"""Course Controller — the facade the editing UI talks to.

Invariants:
    - Every edit method mutates the caller's tree first, then enqueues (or patches/removes
      a pending CREATE for) the matching operation
    - An entity whose temporary id is not yet resolved is "pending": edits patch its
      CREATE, deleting it removes the CREATE, nothing separate is ever enqueued
    - An entity whose temporary id is resolved gets ordinary UPDATE/DELETE ops; the
      executor maps the id through the IdentityMap
    - Remote failures are only reported through commit()/retry_failed() return values
      and the on_error callback; edit methods raise only addressing errors
    - Not re-entrant: a second commit()/retry_failed() while one is in flight raises
      CommitInProgressError
    - abort_commit() with nothing in flight pre-arms an aborted token: the NEXT
      commit (or retry) is cancelled before it sends anything

Design Decisions:
    - Queue + IdentityMap + executor held per controller instance; the tree, the
      metadata forms and the persistence service are injected Protocols
    - Successful ops of a partially failed or aborted commit are pruned from the
      pending queue (prune_succeeded_on_partial_failure)
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable

from curriculum_sync.core.boundary_protocols import (
    CoursePersistence, CurriculumForm, MetadataForm,
)
from curriculum_sync.core.change_detector import form_changes, has_metadata_changes
from curriculum_sync.core.curriculum import (
    Content, Lesson, Quiz, QuizQuestion, Section, field_names, shallow_fields,
)
from curriculum_sync.core.domain_types import (
    EntityId, EntityKind, OpType, TemporaryId, is_temporary, new_temp_id,
)
from curriculum_sync.core.errors import (
    CommitAbortedError, CommitInProgressError, ErrorContext,
    ResourceNotFoundError, UnknownFieldError,
)
from curriculum_sync.core.identity_map import IdentityMap
from curriculum_sync.core.operation_queue import OperationQueue
from curriculum_sync.core.operations import (
    CommitResult, CurriculumOp, OpResult,
    lesson_create, lesson_delete, lesson_reorder, lesson_update,
    quiz_create, quiz_delete, quiz_update,
    section_create, section_delete, section_reorder, section_update,
)
from curriculum_sync.services.cancellation import CancellationToken
from curriculum_sync.services.operation_executor import OperationExecutor

logger = logging.getLogger(__name__)

IdFactory = Callable[[EntityKind | str], TemporaryId]

# Fields managed by dedicated methods, not by the generic field setters
_SECTION_MANAGED = frozenset({"id", "lessons", "quiz"})
_LESSON_MANAGED = frozenset({"id"})
_QUIZ_MANAGED = frozenset({"id"})


@dataclass
class CourseControllerConfig:
    """Collaborators and callbacks for one course editing screen."""
    course_id: str
    curriculum_form: CurriculumForm
    basic_form: MetadataForm
    advanced_form: MetadataForm
    on_success: Callable[[str], None] | None = None
    on_error: Callable[[str], None] | None = None
    on_settled: Callable[[], None] | None = None
    on_before_commit: Callable[[list[CurriculumOp]], bool] | None = None


def _check_fields(entity_type: type, keys, managed: frozenset[str]) -> None:
    allowed = field_names(entity_type) - managed
    for key in keys:
        if key not in allowed:
            raise UnknownFieldError(entity_type.__name__, key)


class CourseController:
    """Tracks curriculum edits as operations and synchronizes them on commit()."""

    def __init__(
        self,
        config: CourseControllerConfig,
        persistence: CoursePersistence,
        *,
        id_factory: IdFactory = new_temp_id,
        identity_map: IdentityMap | None = None,
        prune_succeeded_on_partial_failure: bool = True,
    ):
        self._config = config
        self._queue = OperationQueue()
        self._id_factory = id_factory
        self._prune_succeeded = prune_succeeded_on_partial_failure
        self._executor = OperationExecutor(
            config.course_id,
            persistence,
            lambda: self._config.curriculum_form.snapshot(),
            identity_map,
        )
        self._token: CancellationToken | None = None
        self._in_flight = False

    def update_config(self, config: CourseControllerConfig) -> None:
        """Swap forms/callbacks (e.g. after the UI re-mounted them)."""
        self._config = config

    @property
    def _form(self) -> CurriculumForm:
        return self._config.curriculum_form

    @property
    def _identity(self) -> IdentityMap:
        return self._executor.identity_map

    # ─── Sections ────────────────────────────────────────────────

    def create_section(self, title: str, **fields: Any) -> Section:
        """Append a new section; its CREATE is queued under a temporary id."""
        _check_fields(Section, fields, _SECTION_MANAGED | {"order"})
        temp_id = self._id_factory(EntityKind.SECTION)
        section = Section(
            id=temp_id, title=title, order=len(self._form.get_sections()), **fields,
        )
        self._form.append_section(section)
        self._queue.push(section_create(temp_id, shallow_fields(section), section.order))
        return section

    def update_section_field(self, section_index: int, key: str, value: Any) -> None:
        section = self._form.get_section(section_index)
        if section is None:
            return
        _check_fields(Section, [key], _SECTION_MANAGED)
        self._form.set_section_field(section_index, key, value)

        if self._is_pending(EntityKind.SECTION, section.id):
            self._update_pending_create(OpType.SECTION_CREATE, section.id, {key: value})
        else:
            self._queue.push(section_update(section.id, {key: value}))

    def delete_section(self, section_index: int) -> None:
        """Remove a section; queued child ops of that section are dropped with it."""
        section = self._form.get_section(section_index)
        self._form.remove_section(section_index)
        if section is None:
            return

        children = [op for op in self._queue.get_all() if op.section_id == section.id]
        self._queue.discard(children)
        if self._is_pending(EntityKind.SECTION, section.id):
            self._remove_pending_create(OpType.SECTION_CREATE, section.id)
        else:
            self._queue.push(section_delete(section.id))

    def reorder_sections(self, from_index: int, to_index: int) -> None:
        count = len(self._form.get_sections())
        if not (0 <= from_index < count and 0 <= to_index < count):
            return
        self._form.move_section(from_index, to_index)
        moved = self._form.get_section(to_index)
        if moved is None or self._is_pending(EntityKind.SECTION, moved.id):
            return
        self._queue.push(section_reorder(moved.id, to_index))

    # ─── Lessons ─────────────────────────────────────────────────

    def create_lesson(self, section_index: int, title: str, **fields: Any) -> Lesson:
        section = self._section_at(section_index)
        _check_fields(Lesson, fields, _LESSON_MANAGED)
        lessons = list(section.lessons)
        temp_id = self._id_factory(EntityKind.LESSON)
        fields.setdefault("order", len(lessons))
        lesson = Lesson(id=temp_id, title=title, **fields)

        self._form.set_lessons(section_index, [*lessons, lesson])
        self._queue.push(
            lesson_create(section.id, temp_id, shallow_fields(lesson), len(lessons)),
        )
        return lesson

    def update_lesson_field(
        self, section_index: int, lesson_index: int, key: str, value: Any,
    ) -> None:
        section = self._section_at(section_index)
        _check_fields(Lesson, [key], _LESSON_MANAGED)
        if self._lesson_at(section, lesson_index) is None:
            return
        self._form.set_lesson_field(section_index, lesson_index, key, value)
        lesson = self._lesson_at(self._section_at(section_index), lesson_index)
        self._record_lesson_change(section.id, lesson.id, {key: value})

    def add_lesson_content(
        self, section_index: int, lesson_index: int, **content_fields: Any,
    ) -> Content | None:
        """Attach new content (temporary id), replacing any existing content."""
        _check_fields(Content, content_fields, frozenset({"id"}))
        section = self._form.get_section(section_index)
        if section is None or self._lesson_at(section, lesson_index) is None:
            return None
        content = Content(id=self._id_factory("content"), **content_fields)
        self._set_lesson_content(section_index, lesson_index, content)
        return content

    def update_lesson_content(
        self, section_index: int, lesson_index: int, updates: dict[str, Any],
    ) -> None:
        """Shallow-merge `updates` into the lesson's existing content."""
        _check_fields(Content, updates, frozenset({"id"}))
        section = self._form.get_section(section_index)
        lesson = self._lesson_at(section, lesson_index) if section else None
        if lesson is None:
            return
        if lesson.content is not None:
            merged = replace(lesson.content, **updates)
        else:
            merged = Content(id=self._id_factory("content"), **updates)
        self._set_lesson_content(section_index, lesson_index, merged)

    def remove_lesson_content(self, section_index: int, lesson_index: int) -> None:
        section = self._form.get_section(section_index)
        if section is None or self._lesson_at(section, lesson_index) is None:
            return
        self._set_lesson_content(section_index, lesson_index, None)

    def delete_lesson(self, section_index: int, lesson_index: int) -> None:
        section = self._form.get_section(section_index)
        if section is None or self._lesson_at(section, lesson_index) is None:
            return
        lessons = list(section.lessons)
        removed = lessons.pop(lesson_index)
        self._form.set_lessons(section_index, lessons)

        if self._is_pending(EntityKind.LESSON, removed.id):
            self._remove_pending_create(OpType.LESSON_CREATE, removed.id)
        else:
            self._queue.push(lesson_delete(section.id, removed.id))

    def reorder_lessons(self, section_index: int, from_index: int, to_index: int) -> None:
        """Move a lesson. Queued only when the section and every lesson are persisted."""
        section = self._form.get_section(section_index)
        if section is None:
            return
        lessons = list(section.lessons)
        if not (0 <= from_index < len(lessons) and 0 <= to_index < len(lessons)):
            return
        moved = lessons.pop(from_index)
        lessons.insert(to_index, moved)
        self._form.set_lessons(section_index, lessons)

        persisted_order = tuple(
            l.order for l in lessons if not self._is_pending(EntityKind.LESSON, l.id)
        )
        if (
            not self._is_pending(EntityKind.SECTION, section.id)
            and len(persisted_order) == len(lessons)
        ):
            self._queue.push(lesson_reorder(section.id, moved.id, persisted_order))

    # ─── Quizzes ─────────────────────────────────────────────────

    def create_quiz(self, section_index: int, title: str, **fields: Any) -> Quiz:
        """Attach a new quiz to a section; an existing quiz is deleted first."""
        section = self._section_at(section_index)
        _check_fields(Quiz, fields, _QUIZ_MANAGED)
        if section.quiz is not None:
            self.delete_quiz(section_index, section.quiz.id)

        temp_id = self._id_factory(EntityKind.QUIZ)
        quiz = Quiz(id=temp_id, title=title, **fields)
        self._form.set_quiz(section_index, quiz)
        self._queue.push(quiz_create(section.id, temp_id, shallow_fields(quiz)))
        return quiz

    def update_quiz_field(
        self, section_index: int, quiz_id: EntityId, key: str, value: Any,
    ) -> None:
        _check_fields(Quiz, [key], _QUIZ_MANAGED)
        self._apply_quiz_change(section_index, quiz_id, {key: value})

    def update_quiz_question_field(
        self, section_index: int, quiz_id: EntityId, questions: list[QuizQuestion],
    ) -> None:
        """Replace the whole questions list of a quiz."""
        self._apply_quiz_change(section_index, quiz_id, {"questions": list(questions)})

    def delete_quiz(self, section_index: int, quiz_id: EntityId) -> None:
        section = self._form.get_section(section_index)
        if section is None or section.quiz is None or section.quiz.id != quiz_id:
            return
        self._form.set_quiz(section_index, None)

        if self._is_pending(EntityKind.QUIZ, quiz_id):
            self._remove_pending_create(OpType.QUIZ_CREATE, quiz_id)
        else:
            self._queue.push(quiz_delete(section.id, quiz_id))

    # ─── Course metadata (immediate, not queued) ─────────────────

    async def save_basic_advanced(self) -> bool:
        """Send the dirty basic/advanced fields as one course update."""
        basic, advanced = self._config.basic_form, self._config.advanced_form
        basic_changes = form_changes(basic)
        advanced_changes = form_changes(advanced)
        if not basic_changes and not advanced_changes:
            return True

        try:
            result = await self._executor.execute_course_update(
                basic_changes, advanced_changes,
            )
            if not result.success:
                self._notify_error(result.error or "Update failed")
                return False
            basic.reset(basic.values())
            advanced.reset(advanced.values())
            self._notify_success("Course information updated")
            return True
        finally:
            self._notify_settled()

    async def save_all(self) -> bool:
        """Course metadata first, then the curriculum commit."""
        if not await self.save_basic_advanced():
            return False
        return (await self.commit()).success

    # ─── Commit / retry / abort ──────────────────────────────────

    async def commit(self) -> CommitResult:
        """Normalize and execute every pending operation."""
        if self._in_flight:
            raise CommitInProgressError(ErrorContext(course_id=self._config.course_id))

        ops = self._queue.normalize()
        if not ops:
            return CommitResult(success=True)
        if not self._approve(ops):
            logger.warning(
                "Commit vetoed by on_before_commit",
                extra={"course_id": self._config.course_id},
            )
            return CommitResult(success=False)

        logger.info(
            f"Committing {len(ops)} operation(s)",
            extra={"course_id": self._config.course_id},
        )
        run_results: list[OpResult] = []
        token = self._arm()
        try:
            token.raise_if_aborted()
            await self._executor.execute_all(self._queue, token, run_results)

            failed = [r for r in run_results if not r.success]
            if failed:
                self._prune(run_results)
                self._notify_error(f"{len(failed)} operation(s) failed. You can retry.")
                return CommitResult(success=False, failed_ops=failed)

            self._queue.discard(ops)
            self._form.mark_clean()
            logger.info(
                "Commit completed", extra={"course_id": self._config.course_id},
            )
            self._notify_success("All changes saved successfully")
            return CommitResult(success=True)
        except CommitAbortedError:
            logger.warning(
                f"Commit aborted after {len(run_results)} result(s)",
                extra={"course_id": self._config.course_id},
            )
            self._prune(run_results)
            self._notify_error("Commit aborted")
            return CommitResult(success=False)
        finally:
            self._disarm()
            self._notify_settled()

    async def retry_failed(self) -> bool:
        """Re-execute only the currently failed operations in a one-shot queue."""
        failed_ops = [
            op for op in self._queue.get_failed_ops() if isinstance(op, CurriculumOp)
        ]
        if not failed_ops:
            return True
        if self._in_flight:
            raise CommitInProgressError(ErrorContext(course_id=self._config.course_id))

        retry_queue = OperationQueue()
        retry_queue.push_multiple(failed_ops)
        retry_queue.normalize()

        run_results: list[OpResult] = []
        token = self._arm()
        try:
            token.raise_if_aborted()
            await self._executor.execute_all(retry_queue, token, run_results)
            self._absorb_retry(run_results)
            if any(not r.success for r in run_results):
                self._notify_error("Some operations still failed")
                return False
            self._notify_success("All operations completed")
            return True
        except CommitAbortedError:
            self._absorb_retry(run_results)
            self._notify_error("Retry aborted")
            return False
        finally:
            self._disarm()
            self._notify_settled()

    def abort_commit(self) -> None:
        """Abort the in-flight commit, or pre-arm an abort for the next one."""
        if self._token is not None:
            self._token.abort()
        else:
            self._token = CancellationToken.pre_aborted()

    # ─── Introspection ───────────────────────────────────────────

    def has_unsaved_changes(self) -> bool:
        return (
            not self._queue.is_empty()
            or has_metadata_changes(self._config.basic_form, self._config.advanced_form)
            or self._form.is_dirty
        )

    def has_failures(self) -> bool:
        return self._queue.has_failures()

    def get_pending_operations(self) -> list[CurriculumOp]:
        return self._queue.get_all()

    def get_pending_operations_count(self) -> int:
        return self._queue.size()

    def clear_pending_operations(self) -> None:
        self._queue.clear()

    def get_results(self) -> list[OpResult]:
        return self._queue.get_results()

    def get_id_mapping(self):
        return self._identity.view()

    # ─── Internals ───────────────────────────────────────────────

    def _is_pending(self, kind: EntityKind, entity_id: EntityId) -> bool:
        return is_temporary(entity_id) and not self._identity.is_resolved(kind, entity_id)

    def _section_at(self, index: int) -> Section:
        section = self._form.get_section(index)
        if section is None:
            raise ResourceNotFoundError(
                "Section", f"index {index}",
                ErrorContext(course_id=self._config.course_id),
            )
        return section

    @staticmethod
    def _lesson_at(section: Section, index: int) -> Lesson | None:
        if 0 <= index < len(section.lessons):
            return section.lessons[index]
        return None

    def _set_lesson_content(
        self, section_index: int, lesson_index: int, content: Content | None,
    ) -> None:
        self._form.set_lesson_field(section_index, lesson_index, "content", content)
        section = self._section_at(section_index)
        lesson = self._lesson_at(section, lesson_index)
        self._record_lesson_change(section.id, lesson.id, {"content": content})

    def _record_lesson_change(
        self, section_id: EntityId, lesson_id: EntityId, updates: dict[str, Any],
    ) -> None:
        if self._is_pending(EntityKind.LESSON, lesson_id):
            self._update_pending_create(OpType.LESSON_CREATE, lesson_id, updates)
        else:
            self._queue.push(lesson_update(section_id, lesson_id, updates))

    def _apply_quiz_change(
        self, section_index: int, quiz_id: EntityId, updates: dict[str, Any],
    ) -> None:
        section = self._form.get_section(section_index)
        if section is None or section.quiz is None or section.quiz.id != quiz_id:
            return
        self._form.set_quiz(section_index, replace(section.quiz, **updates))

        if self._is_pending(EntityKind.QUIZ, quiz_id):
            self._update_pending_create(OpType.QUIZ_CREATE, quiz_id, updates)
        else:
            self._queue.push(quiz_update(section.id, quiz_id, updates))

    def _update_pending_create(
        self, op_type: OpType, temp_id: EntityId, updates: dict[str, Any],
    ) -> None:
        self._queue.update_create_op(
            lambda op: op.type is op_type and op.id == temp_id,
            lambda op: op.with_data(updates),
        )

    def _remove_pending_create(self, op_type: OpType, temp_id: EntityId) -> None:
        self._queue.remove_create_op(lambda op: op.type is op_type and op.id == temp_id)

    def _approve(self, ops: list[CurriculumOp]) -> bool:
        hook = self._config.on_before_commit
        if hook is None:
            return True
        try:
            return hook(list(ops)) is not False
        except Exception as e:
            logger.warning(
                f"on_before_commit raised: {e}",
                extra={"course_id": self._config.course_id},
            )
            self._notify_error(str(e) or "on_before_commit threw an error")
            return False

    def _arm(self) -> CancellationToken:
        """Take the pre-armed token if any, else a fresh one; mark in flight."""
        token = self._token or CancellationToken()
        self._token = token
        self._in_flight = True
        return token

    def _disarm(self) -> None:
        self._token = None
        self._in_flight = False

    def _prune(self, run_results: list[OpResult]) -> None:
        if not self._prune_succeeded:
            return
        succeeded = [
            r.op for r in run_results if r.success and isinstance(r.op, CurriculumOp)
        ]
        self._queue.discard(succeeded)

    def _absorb_retry(self, run_results: list[OpResult]) -> None:
        """Record retry outcomes on the main log; drop retried successes from pending."""
        for result in run_results:
            self._queue.add_result(result)
        self._queue.discard([
            r.op for r in run_results if r.success and isinstance(r.op, CurriculumOp)
        ])

    def _notify_success(self, message: str) -> None:
        if self._config.on_success:
            self._config.on_success(message)

    def _notify_error(self, message: str) -> None:
        if self._config.on_error:
            self._config.on_error(message)

    def _notify_settled(self) -> None:
        if self._config.on_settled:
            self._config.on_settled()
