"""Broadcast channel for section re-sync requests.

Any component may :meth:`SyncChannel.publish` section tags such as
``"history"`` or ``"bookmark"``; every active subscription receives
each tag, in publish order.  Nothing is buffered for subscribers that
do not exist yet.
"""

from __future__ import annotations

import asyncio
from typing import List, Optional

from anideck.core.constants import Section
from anideck.core.logging_setup import get_logger

log = get_logger("sync")

_CLOSED = object()


def _tag(value: Section | str) -> str:
    return value.value if isinstance(value, Section) else str(value)


class Subscription:
    """One subscriber's inbox.  Use as a (async) context manager or iterate."""

    def __init__(self, channel: SyncChannel) -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def _deliver(self, tag: object) -> None:
        self._queue.put_nowait(tag)

    async def get(self) -> Optional[str]:
        """Next tag, or ``None`` once the subscription is closed."""
        if self.closed and self._queue.empty():
            return None
        item = await self._queue.get()
        return None if item is _CLOSED else item

    def pending(self) -> List[str]:
        """Drain and return every tag delivered so far without waiting."""
        tags: List[str] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                tags.append(item)
        return tags

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._channel._unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc: object) -> None:
        self.close()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> str:
        tag = await self.get()
        if tag is None:
            raise StopAsyncIteration
        return tag


class SyncChannel:
    def __init__(self) -> None:
        self._subscribers: List[Subscription] = []

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        self._subscribers.append(sub)
        log.debug("Subscriber added (%d active)", len(self._subscribers))
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)
            log.debug("Subscriber removed (%d active)", len(self._subscribers))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, *tags: Section | str) -> int:
        """Deliver *tags* to every current subscriber; returns the subscriber count."""
        names = [_tag(t) for t in tags]
        targets = list(self._subscribers)
        for sub in targets:
            for name in names:
                sub._deliver(name)
        if not targets:
            log.debug("Publish %s with no subscribers", names)
        return len(targets)
