"""Playback progress and completion handling."""

from __future__ import annotations

import dataclasses
import time
from typing import Callable, Optional

from anideck.core.constants import Section
from anideck.core.logging_setup import get_logger
from anideck.database.models import EpisodeProgress, HistoryRecord, ListEntry
from anideck.database.store import WatchStateStore
from anideck.services.sync import SyncChannel
from anideck.utils.concurrency import KeyedLock

log = get_logger("playback")


class PlaybackTracker:
    """Writes history records and the episode log as episodes are watched.

    The read-modify-write of one media id's record happens under a
    per-media lock shared with the freshness refresh, so two completion
    events for the same title cannot interleave.  Different titles never
    wait on each other.
    """

    def __init__(
        self,
        store: WatchStateStore,
        channel: SyncChannel,
        locks: Optional[KeyedLock] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._channel = channel
        self.locks = locks if locks is not None else KeyedLock()
        self._clock = clock

    async def record_progress(
        self,
        media_id: int,
        episode: int,
        *,
        position: float = 0.0,
        duration: Optional[float] = None,
        entry: Optional[ListEntry] = None,
    ) -> HistoryRecord:
        """Store the position reached in *episode*.

        *entry* is the list entry the title was opened from; it seeds the
        snapshot when no history record exists yet and refreshes the
        embedded media when it carries one.
        """
        progress = EpisodeProgress(episode=episode, position=position, duration=duration)

        async with self.locks.hold(media_id):
            now = self._clock()
            progress.timestamp = now
            existing = self._store.get_history(media_id)

            if existing is not None:
                snapshot = existing.snapshot
                if entry is not None and entry.media is not None:
                    snapshot = dataclasses.replace(snapshot, media=entry.media)
            else:
                snapshot = entry if entry is not None else ListEntry(media_id=media_id)

            watched = max(snapshot.progress, entry.progress if entry is not None else 0)
            if progress.finished:
                watched = max(watched, episode)
            # ListEntry clamps to the known episode total
            snapshot = dataclasses.replace(snapshot, progress=watched)

            record = HistoryRecord(media_id=media_id, snapshot=snapshot, timestamp=now)
            self._store.log_episode(record.resolved_identifier(), progress)
            self._store.put_history(record)

        log.debug(
            "Progress media %d ep %d at %.0fs (watched=%d)",
            media_id, episode, position, record.snapshot.progress,
        )
        self._channel.publish(Section.HISTORY)
        return record

    async def complete(
        self,
        media_id: int,
        episode: int,
        *,
        duration: Optional[float] = None,
        entry: Optional[ListEntry] = None,
    ) -> HistoryRecord:
        """Mark *episode* as fully watched."""
        length = duration or 1.0
        return await self.record_progress(
            media_id, episode, position=length, duration=length, entry=entry,
        )
