"""Small asyncio primitives: per-key locks and single-flight calls."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


class KeyedLock:
    """One ``asyncio.Lock`` per key, dropped again once nobody holds or awaits it.

    Two holders of different keys never block each other.
    """

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __contains__(self, key: Hashable) -> bool:
        return key in self._locks


class SingleFlight:
    """At most one in-flight call per key; duplicates await the first call.

    The call runs in its own task, so cancelling any one caller leaves
    the others waiting on the shared result.
    """

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def run(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark retrieved so a flight nobody awaits any more leaves no warning
        if not task.cancelled():
            task.exception()
