"""Airing freshness: detect cached entities whose airing data fell behind.

Checked lazily, right before a cached entity is shown or resolved
against.  A stale entity is re-fetched by id; when a history record
exists its snapshot is overwritten and persisted.  Network trouble
leaves the cached entity in place.
"""

from __future__ import annotations

import dataclasses
import time
from typing import Optional

from anideck.core.constants import MediaStatus
from anideck.core.exceptions import CatalogError, NetworkError
from anideck.core.logging_setup import get_logger
from anideck.database.models import AnimeEntity, HistoryRecord
from anideck.database.store import WatchStateStore
from anideck.services.catalog import CatalogService
from anideck.utils.concurrency import KeyedLock
from anideck.utils.helpers import available_episodes

log = get_logger("freshness")


def is_stale(
    entity: AnimeEntity,
    history_record: Optional[HistoryRecord] = None,
    *,
    now: Optional[float] = None,
) -> bool:
    """True when *entity*'s airing pointer or episode count cannot be trusted."""
    now = time.time() if now is None else now
    na = entity.next_airing

    if na is not None and na.airing_at is not None:
        if na.airing_at - now < 0:
            return True
    elif entity.status == MediaStatus.RELEASING.value:
        # Still airing but the feed lost the airing time
        return True
    elif na is not None and na.seconds_until_airing is not None and na.seconds_until_airing < 0:
        return True

    if history_record is not None:
        released = available_episodes(entity)
        if released is not None and history_record.snapshot.progress > released:
            return True
    return False


class FreshnessChecker:
    def __init__(
        self,
        catalog: CatalogService,
        store: WatchStateStore,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._locks = locks if locks is not None else KeyedLock()

    async def ensure_fresh(
        self,
        entity: AnimeEntity,
        history_record: Optional[HistoryRecord] = None,
        *,
        now: Optional[float] = None,
    ) -> AnimeEntity:
        """Return *entity*, or its re-fetched replacement when it was stale."""
        if not is_stale(entity, history_record, now=now):
            return entity

        log.debug("Media %d is stale, refreshing", entity.id)
        try:
            full = await self._catalog.anime_info(entity.id)
        except (NetworkError, CatalogError) as exc:
            log.warning("Keeping stale data for media %d: %s", entity.id, exc)
            return entity

        if history_record is not None:
            async with self._locks.hold(history_record.media_id):
                current = self._store.get_history(history_record.media_id) or history_record
                snapshot = dataclasses.replace(current.snapshot, media=full.media)
                self._store.put_history(dataclasses.replace(current, snapshot=snapshot))
            log.info("Refreshed history snapshot for media %d", history_record.media_id)
        return full.media
