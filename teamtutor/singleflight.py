"""Per-key in-flight deduplication for async initializers.

Concurrent callers asking for the same key while a computation is running all
await the one in-flight task instead of starting their own. The computation
runs in its own task, so cancelling any caller (including the one that
started it) only cancels that caller's wait.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    def __init__(self) -> None:
        self._inflight: dict[str, asyncio.Future] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` once for ``key`` and share its outcome with concurrent callers."""
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda t, key=key: self._finish(key, t))
        return await asyncio.shield(task)

    def _finish(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark retrieved so a failure nobody awaited does not warn at GC time
            task.exception()


__all__ = ["SingleFlight"]
