"""One opened title: fresh metadata, related/recommended lists and playback."""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from typing import List, Optional

from anideck.core.constants import EPISODES_INFO_URL, SOURCE_NOT_FOUND_NOTICE, MediaType
from anideck.core.exceptions import CatalogError, NetworkError, NoSourceFound
from anideck.core.logging_setup import get_logger
from anideck.database.models import (
    AnimeEntity,
    EpisodesInfo,
    EpisodeStreamDescriptor,
    ListEntry,
    MediaIndex,
)
from anideck.database.store import WatchStateStore
from anideck.services.catalog import CatalogService
from anideck.services.episodes_info import fetch_episodes_info
from anideck.services.freshness import FreshnessChecker
from anideck.services.normalizer import effective_format
from anideck.services.resolver import ResolveSlot, Resolver
from anideck.utils.http_client import HttpClient

log = get_logger("details")


@dataclass
class PlaybackResult:
    """Outcome of :meth:`AnimeDetails.play`.

    Exactly one of *descriptor* / *notice* is set, unless the request was
    superseded by a newer one (``cancelled``).
    """
    descriptor: Optional[EpisodeStreamDescriptor] = None
    notice: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.descriptor is not None


def related_entries(index: MediaIndex, media: AnimeEntity) -> List[ListEntry]:
    """Anime relations of *media* with their filter format applied."""
    entries: List[ListEntry] = []
    for rel, target in index.related(media):
        if target.media_type not in (None, MediaType.ANIME.value):
            continue
        shown = dataclasses.replace(target, format=effective_format(rel.kind, target.format))
        entries.append(_entry_for(shown))
    return entries


def recommended_entries(index: MediaIndex, media: AnimeEntity) -> List[ListEntry]:
    return [_entry_for(m) for m in index.resolve(media.recommendations or [])]


def _entry_for(media: AnimeEntity) -> ListEntry:
    embedded = media.list_entry
    return ListEntry(
        media_id=media.id,
        progress=(embedded.progress or 0) if embedded else 0,
        bucket=embedded.status if embedded else None,
        media=media,
    )


def _missing_targets(index: MediaIndex, media: AnimeEntity) -> bool:
    if not media.has_details:
        return True
    ids = [r.media_id for r in media.relations or []] + list(media.recommendations or [])
    return any(i not in index for i in ids)


class AnimeDetails:
    """State behind a title's detail view.

    Call :meth:`open` once, then :meth:`play` per episode request and
    :meth:`close` when the view goes away.
    """

    def __init__(
        self,
        entry: ListEntry,
        *,
        catalog: CatalogService,
        store: WatchStateStore,
        resolver: Resolver,
        freshness: FreshnessChecker,
        http: Optional[HttpClient] = None,
        episodes_url: str = EPISODES_INFO_URL,
    ) -> None:
        self.entry = entry
        self.media: Optional[AnimeEntity] = entry.media
        self.related: List[ListEntry] = []
        self.recommended: List[ListEntry] = []
        self.episodes_info = EpisodesInfo()

        self._catalog = catalog
        self._store = store
        self._freshness = freshness
        self._http = http
        self._episodes_url = episodes_url
        self._slot = ResolveSlot(resolver)
        self._last_fetched: Optional[int] = None

    @property
    def media_id(self) -> int:
        return self.entry.media_id

    @property
    def is_busy(self) -> bool:
        return self._slot.busy

    @property
    def banner(self) -> Optional[str]:
        if self.episodes_info.alternative_banner:
            return self.episodes_info.alternative_banner
        return self.media.banner_image if self.media else None

    def snapshot_entry(self) -> ListEntry:
        """The opened entry carrying the freshest media this view has seen."""
        if self.media is None or self.entry.media is self.media:
            return self.entry
        return dataclasses.replace(self.entry, media=self.media)

    async def open(self) -> AnimeDetails:
        record = self._store.get_history(self.media_id)
        if self.media is None and record is not None:
            self.media = record.snapshot.media

        if self.media is not None:
            self.media = await self._freshness.ensure_fresh(self.media, record)

        index = self._catalog.index
        if self.media is None or _missing_targets(index, self.media):
            await self._load_full()

        if self.media is not None:
            self.related = related_entries(index, self.media)
            self.recommended = recommended_entries(index, self.media)

        if self._http is not None:
            self.episodes_info = await fetch_episodes_info(
                self._http,
                self.media_id,
                light_mode=bool(self._store.get_preference("light_mode", False)),
                url=self._episodes_url,
            )
        return self

    async def _load_full(self) -> None:
        # the same id is never requested twice by one view
        if self._last_fetched == self.media_id:
            return
        self._last_fetched = self.media_id
        try:
            full = await self._catalog.anime_info(self.media_id)
        except (NetworkError, CatalogError) as exc:
            log.warning("Detail fetch for media %d failed: %s", self.media_id, exc)
            self._last_fetched = None
            return
        self.media = full.media

    async def play(self, episode: int) -> PlaybackResult:
        # claimed before any await so a newer request always wins
        abort = self._slot.begin()
        try:
            return await self._play(episode, abort)
        finally:
            self._slot.release(abort)

    async def _play(self, episode: int, abort: asyncio.Event) -> PlaybackResult:
        if self.media is None:
            await self.open()
        if abort.is_set():
            return PlaybackResult(cancelled=True)
        if self.media is None:
            return PlaybackResult(notice=SOURCE_NOT_FOUND_NOTICE)

        record = self._store.get_history(self.media_id)
        media = await self._freshness.ensure_fresh(self.media, record)
        if abort.is_set():
            return PlaybackResult(cancelled=True)
        self.media = media
        try:
            descriptor = await self._slot.resolve(media, episode, abort)
        except NoSourceFound as exc:
            log.info("%s", exc)
            return PlaybackResult(notice=SOURCE_NOT_FOUND_NOTICE)
        if descriptor is None:
            return PlaybackResult(cancelled=True)
        return PlaybackResult(descriptor=descriptor)

    def close(self) -> None:
        self._slot.cancel()
