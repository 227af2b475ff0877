"""Builds the ordered working sets for the bookmark and history sections.

Bookmarks are the viewer's CURRENT, REPEATING and PLANNING buckets
concatenated in that order, each bucket keeping the order the catalog
returned.  History is every local record sorted newest first by the
last-watched time logged under its resolved identifier.

Both builders are pure; :class:`Reconciler` fetches the inputs and keeps
the latest snapshot per section.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from anideck.core.constants import BOOKMARK_BUCKETS, Section
from anideck.core.exceptions import CatalogError, NetworkError
from anideck.core.logging_setup import get_logger
from anideck.database.models import EpisodeProgress, HistoryRecord, ListEntry, WorkingSet
from anideck.database.store import WatchStateStore
from anideck.services.catalog import CatalogService

log = get_logger("reconciler")

LastWatched = Callable[[int], Optional[EpisodeProgress]]


def bookmark_working_set(
    current: Sequence[ListEntry],
    repeating: Sequence[ListEntry],
    planning: Sequence[ListEntry],
) -> WorkingSet:
    return WorkingSet(
        Section.BOOKMARK.value,
        tuple(current) + tuple(repeating) + tuple(planning),
    )


def history_working_set(records: Iterable[HistoryRecord], last_watched: LastWatched) -> WorkingSet:
    """History snapshots ordered by the resolved identifier's last-watched time."""
    def sort_key(record: HistoryRecord):
        progress = last_watched(record.resolved_identifier())
        return (-(progress.timestamp if progress else 0.0), record.media_id)

    items: List[ListEntry] = []
    seen: set[int] = set()
    for record in sorted(records, key=sort_key):
        if record.media_id in seen:
            continue
        seen.add(record.media_id)
        items.append(record.snapshot)
    return WorkingSet(Section.HISTORY.value, tuple(items))


def reconcile(
    section: Section | str,
    *,
    remote_buckets: Optional[Mapping[str, Sequence[ListEntry]]] = None,
    history_records: Iterable[HistoryRecord] = (),
    last_watched: Optional[LastWatched] = None,
) -> WorkingSet:
    """Build the working set for *section* from already fetched inputs."""
    section = Section(section)
    if section is Section.BOOKMARK:
        buckets = remote_buckets or {}
        return bookmark_working_set(*(buckets.get(b.value, ()) for b in BOOKMARK_BUCKETS))
    return history_working_set(history_records, last_watched or (lambda _ident: None))


class Reconciler:
    """Owns the current working set of each section."""

    def __init__(self, store: WatchStateStore, catalog: Optional[CatalogService] = None) -> None:
        self._store = store
        self._catalog = catalog
        self._sets: Dict[str, WorkingSet] = {}

    def snapshot(self, section: Section | str) -> WorkingSet:
        name = Section(section).value
        return self._sets.get(name, WorkingSet(name))

    def reconcile_history(self) -> WorkingSet:
        ws = reconcile(
            Section.HISTORY,
            history_records=self._store.history_records(),
            last_watched=self._store.last_watched,
        )
        self._sets[ws.section] = ws
        log.debug("History reconciled: %d entries", len(ws))
        return ws

    async def reconcile_bookmarks(self, viewer_id: Optional[int]) -> WorkingSet:
        if self._catalog is None or viewer_id is None:
            ws = WorkingSet(Section.BOOKMARK.value)
            self._sets[ws.section] = ws
            return ws

        buckets: Dict[str, List[ListEntry]] = {}
        try:
            # one bucket at a time, CURRENT first
            for bucket in BOOKMARK_BUCKETS:
                buckets[bucket.value] = await self._catalog.viewer_list(viewer_id, bucket)
        except (NetworkError, CatalogError) as exc:
            log.warning("Bookmark refresh failed, keeping previous snapshot: %s", exc)
            return self.snapshot(Section.BOOKMARK)

        ws = reconcile(Section.BOOKMARK, remote_buckets=buckets)
        self._sets[ws.section] = ws
        log.debug(
            "Bookmarks reconciled: %s",
            ", ".join(f"{b}={len(buckets[b])}" for b in buckets),
        )
        return ws

    async def reconcile_section(self, section: Section | str, viewer_id: Optional[int] = None) -> WorkingSet:
        if Section(section) is Section.BOOKMARK:
            return await self.reconcile_bookmarks(viewer_id)
        return self.reconcile_history()
