"""
Collapse concurrent calls that share a key into a single execution.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, TypeVar

T = TypeVar("T")


class UniqueAsync(Generic[T]):
    """Wraps ``fn(key)`` so that concurrent callers with the same key share one call.

    The first caller starts the call; later callers for the same key attach
    to the pending task. The key is released exactly once when the task
    settles, whether it returned or raised, so the next call after that runs
    ``fn`` again.
    """

    def __init__(self, fn: Callable[[Any], Awaitable[T]]) -> None:
        self._fn = fn
        self._pending: Dict[Hashable, "asyncio.Task[T]"] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def in_flight(self, key: Hashable) -> bool:
        return key in self._pending

    async def __call__(self, key: Hashable) -> T:
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fn(key))
            self._pending[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        # Shielded so one caller being cancelled does not cancel the shared call.
        return await asyncio.shield(task)

    def _release(self, key: Hashable, task: "asyncio.Task[T]") -> None:
        if self._pending.get(key) is task:
            del self._pending[key]
        if not task.cancelled():
            # Mark the exception as retrieved; every waiter re-raises it already.
            task.exception()
