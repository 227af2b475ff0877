from __future__ import annotations

import asyncio
from itertools import count

from anideck.core.constants import Section
from anideck.database.models import EmbeddedListEntry, HistoryRecord, ListEntry
from anideck.services.playback import PlaybackTracker
from anideck.services.sync import SyncChannel
from anideck.utils.concurrency import KeyedLock, SingleFlight

from conftest import make_entity, run


def _tracker(store, channel=None):
    ticks = count(100)
    return PlaybackTracker(store, channel or SyncChannel(), clock=lambda: float(next(ticks)))


def test_progress_creates_record_and_logs_episode(store) -> None:
    channel = SyncChannel()
    tracker = _tracker(store, channel)
    entry = ListEntry(media_id=1, media=make_entity(1, total_episodes=12))

    with channel.subscribe() as sub:
        record = run(tracker.record_progress(1, 3, position=600, duration=1400, entry=entry))
        assert sub.pending() == [Section.HISTORY.value]

    assert record.snapshot.progress == 0  # not finished yet
    assert store.get_history(1) is record
    assert store.last_watched(1).episode == 3
    assert store.last_watched(1).timestamp == record.timestamp


def test_completion_advances_progress_but_never_back(store) -> None:
    tracker = _tracker(store)
    entry = ListEntry(media_id=1, media=make_entity(1, total_episodes=12))

    run(tracker.complete(1, 5, entry=entry))
    run(tracker.complete(1, 2, entry=entry))

    assert store.get_history(1).snapshot.progress == 5


def test_progress_clamped_to_total_episodes(store) -> None:
    tracker = _tracker(store)
    entry = ListEntry(media_id=1, media=make_entity(1, total_episodes=12))
    run(tracker.complete(1, 13, entry=entry))
    assert store.get_history(1).snapshot.progress == 12


def test_episode_log_uses_resolved_identifier(store) -> None:
    media = make_entity(4, list_entry=EmbeddedListEntry(id=444, status="CURRENT", progress=1))
    store.put_history(HistoryRecord(media_id=4, snapshot=ListEntry(media_id=4, media=media)))

    run(_tracker(store).complete(4, 2))

    assert store.last_watched(444).episode == 2
    assert store.last_watched(4) is None


def test_concurrent_completions_for_same_media_keep_both(store) -> None:
    tracker = _tracker(store)
    entry = ListEntry(media_id=9, media=make_entity(9, total_episodes=24))

    async def scenario():
        await asyncio.gather(
            tracker.complete(9, 3, entry=entry),
            tracker.complete(9, 4, entry=entry),
        )

    run(scenario())
    assert store.get_history(9).snapshot.progress == 4
    assert sorted(store.episode_log(9)) == [3, 4]
    assert 9 not in tracker.locks


# ── Primitives ────────────────────────────────────────────────────────

def test_keyed_lock_serializes_same_key_only() -> None:
    locks = KeyedLock()
    events = []

    async def hold(key, tag, delay):
        async with locks.hold(key):
            events.append(f"{tag}+")
            await asyncio.sleep(delay)
            events.append(f"{tag}-")

    async def scenario():
        await asyncio.gather(hold("a", "a1", 0.05), hold("a", "a2", 0), hold("b", "b1", 0))

    run(scenario())
    # a2 waits for a1, b1 does not
    assert events.index("a1-") < events.index("a2+")
    assert events.index("b1+") < events.index("a1-")
    assert "a" not in locks


def test_single_flight_shares_one_call() -> None:
    flight = SingleFlight()
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0.01)
        return "payload"

    async def scenario():
        results = await asyncio.gather(*(flight.run(7, fetch) for _ in range(3)))
        return results, flight.in_flight(7)

    results, still_running = run(scenario())
    assert results == ["payload"] * 3
    assert calls == [1]
    assert not still_running


def test_single_flight_survives_first_caller_cancel() -> None:
    flight = SingleFlight()

    async def fetch():
        await asyncio.sleep(0.2)
        return 42

    async def scenario():
        first = asyncio.create_task(flight.run(7, fetch))
        await asyncio.sleep(0)
        follower = asyncio.create_task(flight.run(7, fetch))
        await asyncio.sleep(0.01)
        first.cancel()
        try:
            await first
        except asyncio.CancelledError:
            pass
        return await follower, first.cancelled(), flight.in_flight(7)

    result, first_cancelled, still_running = run(scenario())
    assert result == 42
    assert first_cancelled
    assert not still_running


def test_single_flight_shares_failures() -> None:
    flight = SingleFlight()

    async def fetch():
        await asyncio.sleep(0.01)
        raise ValueError("boom")

    async def scenario():
        return await asyncio.gather(flight.run(1, fetch), flight.run(1, fetch), return_exceptions=True)

    results = run(scenario())
    assert [type(r) for r in results] == [ValueError, ValueError]
