"""Fake Persistence — recording CoursePersistence double for executor/controller tests.

Invariants:
    - Every call is appended to `calls` as (method, args) before any scripted outcome
    - Scripted outcomes (fail_next) are consumed in FIFO order per method
    - Creates return sequential server ids per kind: S1, S2.. / L1.. / Q1..
    - Optional per-method delays make concurrency and abort observable

Design Decisions:
    - Flat class, explicit methods: mirrors the Protocol one-to-one, easy to debug
    - max_active tracks peak concurrency so tests can assert sequential vs parallel steps
"""

import asyncio
import itertools

from curriculum_sync.core.boundary_protocols import ServiceResult

_ID_PREFIX = {"section": "S", "lesson": "L", "quiz": "Q"}


class FakePersistence:
    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self._outcomes: dict[str, list] = {}
        self._delays: dict[str, float] = {}
        self._counters = {kind: itertools.count(1) for kind in _ID_PREFIX}
        self.active = 0
        self.max_active = 0
        self.cancelled: list[str] = []

    # -- Scripting ---------------------------------------------------------------

    def fail_next(self, method: str, outcome=None, times: int = 1) -> None:
        """Next `times` calls to `method` return `outcome` (ServiceResult or raise Exception)."""
        outcome = outcome or ServiceResult(success=False, message=f"{method} rejected")
        self._outcomes.setdefault(method, []).extend([outcome] * times)

    def delay(self, method: str, seconds: float) -> None:
        self._delays[method] = seconds

    def calls_to(self, method: str) -> list[tuple]:
        return [args for name, args in self.calls if name == method]

    def methods(self) -> list[str]:
        return [name for name, _ in self.calls]

    # -- Dispatch ----------------------------------------------------------------

    async def _call(self, method: str, *args) -> ServiceResult:
        self.calls.append((method, args))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self._delays.get(method, 0))
        except asyncio.CancelledError:
            self.cancelled.append(method)
            raise
        finally:
            self.active -= 1

        scripted = self._outcomes.get(method)
        if scripted:
            outcome = scripted.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        if method.startswith("create_"):
            kind = method.removeprefix("create_")
            new_id = f"{_ID_PREFIX[kind]}{next(self._counters[kind])}"
            return ServiceResult(success=True, data={"id": new_id})
        return ServiceResult(success=True, data={})

    # -- CoursePersistence ---------------------------------------------------------

    async def create_section(self, course_id, payload):
        return await self._call("create_section", course_id, payload)

    async def update_section(self, course_id, section_id, payload):
        return await self._call("update_section", course_id, section_id, payload)

    async def delete_section(self, course_id, section_id):
        return await self._call("delete_section", course_id, section_id)

    async def create_lesson(self, course_id, section_id, payload):
        return await self._call("create_lesson", course_id, section_id, payload)

    async def update_lesson(self, course_id, section_id, lesson_id, payload):
        return await self._call("update_lesson", course_id, section_id, lesson_id, payload)

    async def delete_lesson(self, course_id, section_id, lesson_id):
        return await self._call("delete_lesson", course_id, section_id, lesson_id)

    async def create_quiz(self, course_id, section_id, payload):
        return await self._call("create_quiz", course_id, section_id, payload)

    async def update_quiz(self, course_id, section_id, quiz_id, payload):
        return await self._call("update_quiz", course_id, section_id, quiz_id, payload)

    async def delete_quiz(self, course_id, section_id, quiz_id):
        return await self._call("delete_quiz", course_id, section_id, quiz_id)

    async def update_course(self, course_id, payload):
        return await self._call("update_course", course_id, payload)
