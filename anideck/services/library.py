"""Home feed assembly and section re-sync."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from anideck.core.constants import ListBucket, Section
from anideck.core.exceptions import CatalogError, NetworkError
from anideck.core.logging_setup import get_logger
from anideck.database.models import ListEntry, WorkingSet
from anideck.database.store import WatchStateStore
from anideck.services.catalog import CatalogService, Viewer
from anideck.services.reconciler import Reconciler
from anideck.services.sync import SyncChannel

log = get_logger("library")

# Airing schedule window shown on the home feed
_SCHEDULE_WINDOW = 24 * 3600


@dataclass
class HomeFeed:
    viewer: Optional[Viewer] = None
    bookmarks: WorkingSet = field(default_factory=lambda: WorkingSet(Section.BOOKMARK.value))
    history: WorkingSet = field(default_factory=lambda: WorkingSet(Section.HISTORY.value))
    trending: List[ListEntry] = field(default_factory=list)
    popular: List[ListEntry] = field(default_factory=list)
    next_releases: List[ListEntry] = field(default_factory=list)
    airing: List[ListEntry] = field(default_factory=list)


class Library:
    def __init__(
        self,
        catalog: CatalogService,
        store: WatchStateStore,
        reconciler: Reconciler,
        channel: SyncChannel,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self.reconciler = reconciler
        self._channel = channel
        self.viewer: Optional[Viewer] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self._store.get_preference("logged", False)) or self._store.has_history

    @property
    def viewer_id(self) -> Optional[int]:
        return self.viewer.id if self.viewer else None

    # ═══════════════════════════════════════════════════════════════════
    # Loading
    # ═══════════════════════════════════════════════════════════════════

    async def load_viewer(self) -> Optional[Viewer]:
        if not self._catalog.authenticated:
            return None
        try:
            viewer_id = await self._catalog.viewer_id()
            self.viewer = await self._catalog.viewer_info(viewer_id)
        except (NetworkError, CatalogError) as exc:
            log.warning("Viewer lookup failed: %s", exc)
            return self.viewer
        if not self._store.get_preference("logged", False):
            self._store.set_preference("logged", True)
        return self.viewer

    async def load_home(self, *, now: Optional[float] = None) -> HomeFeed:
        viewer = await self.load_viewer()
        start = int(time.time() if now is None else now)

        feed = HomeFeed(viewer=viewer)
        feed.bookmarks = await self.reconciler.reconcile_bookmarks(self.viewer_id)
        feed.history = self.reconciler.reconcile_history()
        feed.trending = await self._feed("trending", self._catalog.trending)
        feed.popular = await self._feed("popular", self._catalog.popular)
        feed.next_releases = await self._feed("next releases", self._catalog.next_releases)
        feed.airing = await self._feed(
            "airing schedule",
            lambda: self._catalog.airing_schedule(start, start + _SCHEDULE_WINDOW),
        )
        log.info(
            "Home loaded: %d bookmarks, %d history, %d trending",
            len(feed.bookmarks), len(feed.history), len(feed.trending),
        )
        return feed

    async def load_planning(self) -> List[ListEntry]:
        if self.viewer_id is None:
            return []
        return await self._feed(
            "planning",
            lambda: self._catalog.viewer_list(self.viewer_id, ListBucket.PLANNING),
        )

    async def _feed(self, label: str, fetch: Callable[[], Awaitable[List[ListEntry]]]) -> List[ListEntry]:
        try:
            return await fetch()
        except (NetworkError, CatalogError) as exc:
            log.warning("Could not load %s: %s", label, exc)
            return []

    # ═══════════════════════════════════════════════════════════════════
    # Re-sync
    # ═══════════════════════════════════════════════════════════════════

    async def refresh(self, section: Section | str) -> WorkingSet:
        return await self.reconciler.reconcile_section(section, self.viewer_id)

    async def listen(self, ready: Optional[asyncio.Event] = None) -> None:
        """Re-reconcile every section tag published until cancelled."""
        with self._channel.subscribe() as sub:
            if ready is not None:
                ready.set()
            async for tag in sub:
                try:
                    section = Section(tag)
                except ValueError:
                    log.debug("Ignoring unknown section tag %r", tag)
                    continue
                await self.refresh(section)
