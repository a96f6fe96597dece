"""
AbortSignal - caller-owned cancellation flag threaded to upstream fetches.
"""

import asyncio
import inspect
from collections.abc import Awaitable
from typing import TypeVar

from resource_server.services.errors import RequestAbortedError

T = TypeVar("T")


class AbortSignal:
    """
    One-shot cancellation signal.

    The caller keeps the signal and calls ``abort()``; whoever performs the
    cancellable work races it against the signal with ``guard()``.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str = "Request was aborted") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_aborted(self) -> None:
        if self.aborted:
            raise RequestAbortedError(self.reason or "Request was aborted")

    async def guard(self, work: Awaitable[T]) -> T:
        """
        Await work unless the signal fires first.

        Raises:
            RequestAbortedError: If the signal fired before work finished
        """
        if self.aborted and inspect.iscoroutine(work):
            work.close()
        self.raise_if_aborted()
        work_task = asyncio.ensure_future(work)
        abort_task = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {work_task, abort_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work_task.cancel()
            raise
        finally:
            abort_task.cancel()

        if work_task in done:
            return work_task.result()

        work_task.cancel()
        raise RequestAbortedError(self.reason or "Request was aborted")
