"""Wires the services together from a loaded config.

The API and the CLI both build one :class:`Services` and pass it
around; nothing here is a module-level singleton.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from anideck.core.config import data_dir
from anideck.core.logging_setup import get_logger
from anideck.database.connection import db_path
from anideck.database.models import ListEntry
from anideck.database.store import SqliteWatchStateStore, WatchStateStore
from anideck.services.catalog import CatalogClient, CatalogService
from anideck.services.details import AnimeDetails
from anideck.services.freshness import FreshnessChecker
from anideck.services.library import Library
from anideck.services.playback import PlaybackTracker
from anideck.services.providers import build_providers
from anideck.services.reconciler import Reconciler
from anideck.services.resolver import Resolver
from anideck.services.sync import SyncChannel
from anideck.utils.concurrency import KeyedLock
from anideck.utils.http_client import HttpClient

log = get_logger("container")

# Detail views kept alive at once; the least recently used idle one goes first
MAX_OPEN_VIEWS = 32


@dataclass
class Services:
    cfg: Dict[str, Any]
    http: HttpClient
    store: WatchStateStore
    catalog: CatalogService
    resolver: Resolver
    channel: SyncChannel
    freshness: FreshnessChecker
    reconciler: Reconciler
    playback: PlaybackTracker
    library: Library
    _views: OrderedDict[int, AnimeDetails] = field(default_factory=OrderedDict)

    def details(self, media_id: int) -> AnimeDetails:
        """Detail view for *media_id*, reused so its resolve slot is shared."""
        entry = self._entry_for(media_id)
        view = self._views.pop(media_id, None)
        if view is None:
            view = AnimeDetails(
                entry,
                catalog=self.catalog,
                store=self.store,
                resolver=self.resolver,
                freshness=self.freshness,
                http=self.http,
                episodes_url=self.cfg["episodes_info"]["url"],
            )
        else:
            view.entry = entry
        self._views[media_id] = view
        self._evict()
        return view

    def _entry_for(self, media_id: int) -> ListEntry:
        record = self.store.get_history(media_id)
        if record is not None:
            return record.snapshot
        return ListEntry(media_id=media_id, media=self.catalog.index.get(media_id))

    def _evict(self) -> None:
        # the most recently requested view is never dropped
        idle = [mid for mid, view in list(self._views.items())[:-1] if not view.is_busy]
        for media_id in idle[: max(0, len(self._views) - MAX_OPEN_VIEWS)]:
            self._views.pop(media_id).close()
            log.debug("Dropped detail view for media %d", media_id)

    async def aclose(self) -> None:
        for view in self._views.values():
            view.close()
        self._views.clear()
        await self.http.aclose()


def build_services(
    cfg: Dict[str, Any],
    *,
    store: Optional[WatchStateStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """Create every service; loads the SQLite store unless one is injected."""
    if store is None:
        store = SqliteWatchStateStore(db_path(data_dir()))
    if not store.loaded:
        store.load()

    http = HttpClient(cfg["http"]["timeout"], transport=transport)
    catalog = CatalogService(CatalogClient(
        http,
        api_url=cfg["anilist"]["api_url"],
        token=cfg["anilist"].get("token"),
    ))
    prov_cfg = cfg["providers"]
    resolver = Resolver(
        build_providers(cfg, http),
        timeout=prov_cfg["timeout"],
        min_similarity=prov_cfg["min_similarity"],
    )
    channel = SyncChannel()
    # shared so freshness refreshes and playback writes exclude each other
    locks = KeyedLock()
    reconciler = Reconciler(store, catalog)

    log.debug("Providers: %s", [p.name for p in resolver.providers])
    return Services(
        cfg=cfg,
        http=http,
        store=store,
        catalog=catalog,
        resolver=resolver,
        channel=channel,
        freshness=FreshnessChecker(catalog, store, locks),
        reconciler=reconciler,
        playback=PlaybackTracker(store, channel, locks),
        library=Library(catalog, store, reconciler, channel),
    )
