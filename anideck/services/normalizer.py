"""Converts raw catalog payloads into :class:`AnimeEntity` / :class:`ListEntry`.

Every feed the catalog serves (trending, popular, upcoming, airing
schedule, viewer lists, relation edges, recommendations, single media
detail) plus the history snapshots we persist ourselves goes through
:func:`normalize`.  Only a missing ``id`` is fatal; every other field
degrades to ``None`` / empty.
"""

from __future__ import annotations

import dataclasses
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from anideck.core.constants import (
    FEED_KINDS,
    FORMAT_EQUIVALENT_RELATIONS,
    MediaType,
    SourceKind,
)
from anideck.core.exceptions import MalformedResponse
from anideck.core.logging_setup import get_logger
from anideck.database.models import (
    AnimeEntity,
    CoverImage,
    EmbeddedListEntry,
    ListEntry,
    MediaIndex,
    NextAiring,
    Relation,
    Titles,
)

log = get_logger("normalizer")

Normalized = Union[AnimeEntity, List[ListEntry]]


def normalize(
    raw: Any,
    source_kind: SourceKind | str,
    *,
    index: Optional[MediaIndex] = None,
    now: Optional[float] = None,
) -> Normalized:
    """Normalize *raw* according to *source_kind*.

    ``SourceKind.MEDIA`` returns one :class:`AnimeEntity`; every other
    kind returns a list of :class:`ListEntry`.  Entities met on the way,
    including relation and recommendation targets, are registered in
    *index* when one is given.
    """
    kind = SourceKind(source_kind)
    ctx = _Context(index=index, now=time.time() if now is None else now)
    handler = _HANDLERS[kind]
    return handler(_unwrap(raw), ctx)


@dataclasses.dataclass
class _Context:
    index: Optional[MediaIndex]
    now: float

    def register(self, entity: AnimeEntity) -> AnimeEntity:
        if self.index is not None:
            return self.index.add(entity)
        return entity


# ═══════════════════════════════════════════════════════════════════════
# Media
# ═══════════════════════════════════════════════════════════════════════

def normalize_media(raw: Any, ctx: _Context) -> AnimeEntity:
    if not isinstance(raw, Mapping):
        raise MalformedResponse(f"Expected a media object, got {type(raw).__name__}")
    media_id = _int(raw.get("id"))
    if media_id is None:
        raise MalformedResponse("Media object without 'id'")

    title = raw.get("title")
    titles = Titles(
        romaji=_str(_get(title, "romaji")),
        english=_str(_get(title, "english")),
        native=_str(_get(title, "native")),
    ) if isinstance(title, Mapping) else Titles(romaji=_str(title))

    cover = raw.get("coverImage")
    entity = AnimeEntity(
        id=media_id,
        titles=titles,
        format=_str(raw.get("format")),
        status=_str(raw.get("status")),
        total_episodes=_int(raw.get("episodes")),
        next_airing=_next_airing(raw.get("nextAiringEpisode"), ctx.now),
        cover_image=CoverImage(
            large=_str(_get(cover, "large")),
            medium=_str(_get(cover, "medium")),
            color=_str(_get(cover, "color")),
        ),
        banner_image=_str(raw.get("bannerImage")),
        genres=_unique_strings(raw.get("genres")),
        relations=_relations(raw.get("relations"), ctx),
        recommendations=_recommendation_ids(raw.get("recommendations"), ctx),
        media_type=_str(raw.get("type")),
        description=_str(raw.get("description")),
        season=_str(raw.get("season")),
        season_year=_int(raw.get("seasonYear")),
        mean_score=_int(raw.get("meanScore")),
        is_adult=bool(raw.get("isAdult") or False),
        synonyms=_unique_strings(raw.get("synonyms")),
        trailer_id=_str(_get(raw.get("trailer"), "id")),
        list_entry=_embedded_entry(raw.get("mediaListEntry")),
    )
    return ctx.register(entity)


def _next_airing(raw: Any, now: float) -> Optional[NextAiring]:
    if not isinstance(raw, Mapping):
        return None
    airing_at = _int(raw.get("airingAt"))
    seconds = _float(raw.get("timeUntilAiring"))
    if seconds is None and airing_at is not None:
        seconds = airing_at - now
    return NextAiring(
        episode=_int(raw.get("episode")),
        airing_at=airing_at,
        seconds_until_airing=seconds,
    )


def _embedded_entry(raw: Any) -> Optional[EmbeddedListEntry]:
    if not isinstance(raw, Mapping):
        return None
    return EmbeddedListEntry(
        id=_int(raw.get("id")),
        status=_str(raw.get("status")),
        progress=_int(raw.get("progress")),
    )


def _relations(raw: Any, ctx: _Context) -> Optional[List[Relation]]:
    if raw is None:
        return None
    relations: List[Relation] = []
    for edge in _items(raw, "edges"):
        node = _get(edge, "node")
        kind = _str(_get(edge, "relationType"))
        try:
            target = normalize_media(node, ctx)
        except MalformedResponse:
            log.debug("Dropping relation edge without target id: %r", edge)
            continue
        relations.append(Relation(kind=kind or "OTHER", media_id=target.id))
    return relations


def _recommendation_ids(raw: Any, ctx: _Context) -> Optional[List[int]]:
    if raw is None:
        return None
    ids: List[int] = []
    for node in _items(raw, "nodes"):
        rec = _get(node, "mediaRecommendation")
        if rec is None:
            # the catalog nulls out recommendations of removed titles
            continue
        try:
            target = normalize_media(rec, ctx)
        except MalformedResponse:
            continue
        if target.id not in ids:
            ids.append(target.id)
    return ids


# ═══════════════════════════════════════════════════════════════════════
# List-shaped sources
# ═══════════════════════════════════════════════════════════════════════

def _from_media_list(medias: Iterable[Any], ctx: _Context, source: str) -> List[ListEntry]:
    entries: List[ListEntry] = []
    for raw in medias:
        try:
            media = normalize_media(raw, ctx)
        except MalformedResponse as exc:
            log.warning("Skipping %s item: %s", source, exc)
            continue
        entries.append(_synthesized(media))
    return entries


def _synthesized(media: AnimeEntity) -> ListEntry:
    embedded = media.list_entry
    return ListEntry(
        media_id=media.id,
        entry_id=None,
        progress=(embedded.progress or 0) if embedded else 0,
        bucket=embedded.status if embedded else None,
        media=media,
    )


def _feed(raw: Any, ctx: _Context) -> List[ListEntry]:
    return _from_media_list(_items(_get(raw, "Page") or raw, "media"), ctx, "feed")


def _airing_schedule(raw: Any, ctx: _Context) -> List[ListEntry]:
    entries: List[ListEntry] = []
    for item in _items(_get(raw, "Page") or raw, "airingSchedules"):
        try:
            media = normalize_media(_get(item, "media"), ctx)
        except MalformedResponse as exc:
            log.warning("Skipping airing schedule item: %s", exc)
            continue
        if media.next_airing is None:
            media.next_airing = _next_airing(item, ctx.now)
        entries.append(_synthesized(media))
    return entries


def _user_list(raw: Any, ctx: _Context) -> List[ListEntry]:
    collection = _get(raw, "MediaListCollection") or raw
    if isinstance(collection, Mapping) and "lists" in collection:
        raw_entries: List[Any] = []
        for lst in _items(collection, "lists"):
            raw_entries.extend(_items(lst, "entries"))
    else:
        raw_entries = list(_items(collection, "entries"))

    entries: List[ListEntry] = []
    seen: set[tuple] = set()
    for raw_entry in raw_entries:
        try:
            entry = _list_entry(raw_entry, ctx)
        except MalformedResponse as exc:
            log.warning("Skipping list entry: %s", exc)
            continue
        key = (entry.media_id, entry.bucket)
        if key in seen:
            continue
        seen.add(key)
        entries.append(entry)
    return entries


def _list_entry(raw: Any, ctx: _Context) -> ListEntry:
    if not isinstance(raw, Mapping):
        raise MalformedResponse(f"Expected a list entry, got {type(raw).__name__}")
    media: Optional[AnimeEntity] = None
    if isinstance(raw.get("media"), Mapping):
        media = normalize_media(raw["media"], ctx)
    media_id = _int(raw.get("mediaId")) or (media.id if media else None)
    if media_id is None:
        raise MalformedResponse("List entry without 'mediaId' or 'media.id'")
    return ListEntry(
        media_id=media_id,
        entry_id=_int(raw.get("id")),
        progress=_int(raw.get("progress")) or 0,
        bucket=_str(raw.get("status")),
        media=media,
    )


def _relation_edges(raw: Any, ctx: _Context) -> List[ListEntry]:
    entries: List[ListEntry] = []
    for edge in _items(_get(raw, "relations") or raw, "edges"):
        node = _get(edge, "node")
        node_type = _str(_get(node, "type"))
        if node_type is not None and node_type != MediaType.ANIME.value:
            continue
        try:
            target = normalize_media(node, ctx)
        except MalformedResponse as exc:
            log.warning("Skipping relation edge: %s", exc)
            continue
        kind = _str(_get(edge, "relationType"))
        shown = dataclasses.replace(target, format=effective_format(kind, target.format))
        entries.append(_synthesized(shown))
    return entries


def effective_format(relation_kind: Optional[str], node_format: Optional[str]) -> Optional[str]:
    """Format used to filter a related title.

    Sequels, prequels, alternatives, parents and spin-offs are grouped by
    their relation kind instead of the format the catalog reports.
    """
    if relation_kind in FORMAT_EQUIVALENT_RELATIONS:
        return relation_kind
    return node_format


def _recommendations(raw: Any, ctx: _Context) -> List[ListEntry]:
    nodes = _items(_get(raw, "recommendations") or raw, "nodes")
    medias = [_get(n, "mediaRecommendation") for n in nodes]
    return _from_media_list((m for m in medias if m is not None), ctx, "recommendation")


def _media_detail(raw: Any, ctx: _Context) -> AnimeEntity:
    return normalize_media(_get(raw, "Media") or raw, ctx)


def _history_snapshot(raw: Any, ctx: _Context) -> List[ListEntry]:
    # Older snapshots were stored as {"data": <entry>, "history": {...}}
    if isinstance(raw, Mapping) and isinstance(raw.get("data"), Mapping):
        raw = raw["data"]
    return [_list_entry(raw, ctx)]


_HANDLERS: Dict[SourceKind, Callable[[Any, _Context], Normalized]] = {
    **{kind: _feed for kind in FEED_KINDS},
    SourceKind.AIRING_SCHEDULE: _airing_schedule,
    SourceKind.USER_LIST: _user_list,
    SourceKind.RELATION_EDGES: _relation_edges,
    SourceKind.RECOMMENDATIONS: _recommendations,
    SourceKind.MEDIA: _media_detail,
    SourceKind.HISTORY_SNAPSHOT: _history_snapshot,
}


# ── Helpers ───────────────────────────────────────────────────────────

def _unwrap(raw: Any) -> Any:
    """Strip the GraphQL ``{"data": ...}`` envelope if present."""
    if isinstance(raw, Mapping) and set(raw) <= {"data", "errors"} and isinstance(raw.get("data"), Mapping):
        return raw["data"]
    return raw


def _get(obj: Any, key: str) -> Any:
    return obj.get(key) if isinstance(obj, Mapping) else None


def _items(obj: Any, key: str) -> List[Any]:
    """``obj[key]`` when *obj* is a mapping, *obj* itself when it is a list."""
    value = obj.get(key) if isinstance(obj, Mapping) else obj
    return list(value) if isinstance(value, list) else []


def _int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _unique_strings(values: Any) -> List[str]:
    out: List[str] = []
    if not isinstance(values, list):
        return out
    for v in values:
        s = _str(v)
        if s and s not in out:
            out.append(s)
    return out
