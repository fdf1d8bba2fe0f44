"""Cancellation Token — cooperative abort threaded into every remote call.

Invariants:
    - abort() is idempotent and may be called from sync code, before or during a run
    - guard() never starts a call once the token is aborted
    - Aborting cancels every guarded in-flight call (the underlying task is cancelled,
      so the HTTP request is torn down) and raises CommitAbortedError in the awaiter
    - Writes the service already applied before the abort are not undone
"""

import asyncio
import contextlib
from typing import Awaitable, TypeVar

from curriculum_sync.core.errors import CommitAbortedError

T = TypeVar("T")


class CancellationToken:
    """One-shot abort flag shared by the calls of a single commit or retry."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self) -> None:
        self._event.set()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise CommitAbortedError()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, cancelling it if the token is aborted first."""
        if self.aborted:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CommitAbortedError()

        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not call.done():
                call.cancel()
            waiter.cancel()

        if not call.done() or call.cancelled():
            with contextlib.suppress(asyncio.CancelledError):
                await call
            raise CommitAbortedError()
        return call.result()

    @classmethod
    def pre_aborted(cls) -> "CancellationToken":
        token = cls()
        token.abort()
        return token
