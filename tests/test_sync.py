from __future__ import annotations

import asyncio

from anideck.core.constants import Section
from anideck.services.sync import SyncChannel

from conftest import run


def test_every_subscriber_receives_tags_in_order() -> None:
    channel = SyncChannel()
    with channel.subscribe() as a, channel.subscribe() as b:
        assert channel.publish("history", Section.BOOKMARK) == 2
        channel.publish("history")

        assert a.pending() == ["history", "bookmark", "history"]
        assert b.pending() == ["history", "bookmark", "history"]


def test_publish_without_subscribers_is_lost() -> None:
    channel = SyncChannel()
    assert channel.publish("history") == 0
    with channel.subscribe() as late:
        assert late.pending() == []


def test_unsubscribe_on_scope_exit() -> None:
    channel = SyncChannel()
    with channel.subscribe():
        assert channel.subscriber_count == 1
    assert channel.subscriber_count == 0

    sub = channel.subscribe()
    sub.close()
    sub.close()
    assert channel.subscriber_count == 0
    channel.publish("bookmark")
    assert sub.pending() == []


def test_async_iteration_ends_when_closed() -> None:
    channel = SyncChannel()

    async def scenario():
        received = []
        sub = channel.subscribe()

        async def consume():
            async for tag in sub:
                received.append(tag)

        task = asyncio.create_task(consume())
        channel.publish("history")
        channel.publish("bookmark")
        await asyncio.sleep(0)
        sub.close()
        await asyncio.wait_for(task, 1)
        return received

    assert run(scenario()) == ["history", "bookmark"]
