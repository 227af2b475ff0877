"""Dataclass models for catalog entities, list entries and watch state.

Entities reference each other by catalog id only.  Related and
recommended titles live in a :class:`MediaIndex`, so a title that
recommends another title which recommends it back never nests.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple


@dataclass
class Titles:
    romaji: Optional[str] = None
    english: Optional[str] = None
    native: Optional[str] = None

    def variants(self) -> List[str]:
        """Non-empty titles in search order: romanized, native, English."""
        seen: List[str] = []
        for t in (self.romaji, self.native, self.english):
            if t and t.strip() and t not in seen:
                seen.append(t)
        return seen

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"romaji": self.romaji, "english": self.english, "native": self.native}


@dataclass
class CoverImage:
    large: Optional[str] = None
    medium: Optional[str] = None
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"large": self.large, "medium": self.medium, "color": self.color}


@dataclass
class NextAiring:
    """Pointer to the next episode the catalog expects to air."""
    episode: Optional[int] = None
    airing_at: Optional[int] = None
    seconds_until_airing: Optional[float] = None

    def refreshed(self, now: float) -> NextAiring:
        """Recompute the countdown against *now* when the absolute time is known."""
        if self.airing_at is None:
            return self
        return dataclasses.replace(self, seconds_until_airing=self.airing_at - now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "episode": self.episode,
            "airingAt": self.airing_at,
            "timeUntilAiring": self.seconds_until_airing,
        }


@dataclass(frozen=True)
class Relation:
    kind: str
    media_id: int


@dataclass
class EmbeddedListEntry:
    """The viewer's list entry as the catalog embeds it inside a media object."""
    id: Optional[int] = None
    status: Optional[str] = None
    progress: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "status": self.status, "progress": self.progress}


@dataclass
class AnimeEntity:
    """Canonical representation of one catalog title."""
    id: int
    titles: Titles = field(default_factory=Titles)
    format: Optional[str] = None
    status: Optional[str] = None
    total_episodes: Optional[int] = None
    next_airing: Optional[NextAiring] = None
    cover_image: CoverImage = field(default_factory=CoverImage)
    banner_image: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    # None means "not fetched yet", an empty list means "fetched, none"
    relations: Optional[List[Relation]] = None
    recommendations: Optional[List[int]] = None
    media_type: Optional[str] = None
    description: Optional[str] = None
    season: Optional[str] = None
    season_year: Optional[int] = None
    mean_score: Optional[int] = None
    is_adult: bool = False
    synonyms: List[str] = field(default_factory=list)
    trailer_id: Optional[str] = None
    list_entry: Optional[EmbeddedListEntry] = None

    @property
    def has_details(self) -> bool:
        return self.relations is not None and self.recommendations is not None

    def to_dict(self) -> Dict[str, Any]:
        """Catalog-shaped mapping; the normalizer reads it back unchanged."""
        return {
            "id": self.id,
            "type": self.media_type,
            "title": self.titles.to_dict(),
            "format": self.format,
            "status": self.status,
            "episodes": self.total_episodes,
            "nextAiringEpisode": self.next_airing.to_dict() if self.next_airing else None,
            "coverImage": self.cover_image.to_dict(),
            "bannerImage": self.banner_image,
            "genres": list(self.genres),
            "description": self.description,
            "season": self.season,
            "seasonYear": self.season_year,
            "meanScore": self.mean_score,
            "isAdult": self.is_adult,
            "synonyms": list(self.synonyms),
            "trailer": {"id": self.trailer_id} if self.trailer_id else None,
            "mediaListEntry": self.list_entry.to_dict() if self.list_entry else None,
            "relations": None if self.relations is None else {
                "edges": [
                    {"relationType": r.kind, "node": {"id": r.media_id}}
                    for r in self.relations
                ]
            },
            "recommendations": None if self.recommendations is None else {
                "nodes": [
                    {"mediaRecommendation": {"id": rid}} for rid in self.recommendations
                ]
            },
        }


@dataclass
class ListEntry:
    """A viewer's relationship to one title.

    ``entry_id`` is ``None`` for entries synthesized locally (feeds,
    relations) that are not on any remote list.
    """
    media_id: int
    entry_id: Optional[int] = None
    progress: int = 0
    bucket: Optional[str] = None
    media: Optional[AnimeEntity] = None

    def __post_init__(self) -> None:
        self.progress = max(0, int(self.progress or 0))
        total = self.media.total_episodes if self.media else None
        if total is not None and self.progress > total:
            self.progress = total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.entry_id,
            "mediaId": self.media_id,
            "progress": self.progress,
            "status": self.bucket,
            "media": self.media.to_dict() if self.media else None,
        }


@dataclass
class EpisodeProgress:
    """Playback position of one episode, keyed in the log by identifier."""
    episode: int
    position: float = 0.0
    duration: Optional[float] = None
    timestamp: float = 0.0

    @property
    def finished(self) -> bool:
        if not self.duration:
            return False
        return self.position >= self.duration * 0.9


@dataclass
class HistoryRecord:
    """One local watch-history entry, keyed by media id."""
    media_id: int
    snapshot: ListEntry
    timestamp: float = 0.0

    def resolved_identifier(self) -> int:
        """Most authoritative id: list entry, then embedded list entry, then media."""
        snap = self.snapshot
        if snap.entry_id:
            return snap.entry_id
        media = snap.media
        if media is not None and media.list_entry is not None and media.list_entry.id:
            return media.list_entry.id
        if media is not None and media.id:
            return media.id
        return self.media_id

    @property
    def key(self) -> str:
        return str(self.media_id)


@dataclass
class StreamSource:
    url: str
    quality: str = "default"
    is_m3u8: bool = False


@dataclass
class SubtitleTrack:
    url: str
    lang: str = "unknown"


@dataclass
class EpisodeStreamDescriptor:
    """Playable stream for one episode.  Never persisted."""
    provider: str
    episode: int
    sources: List[StreamSource] = field(default_factory=list)
    subtitles: List[SubtitleTrack] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    candidate_id: Optional[str] = None

    def best_source(self) -> Optional[StreamSource]:
        for quality in ("default", "auto", "1080p", "720p"):
            for src in self.sources:
                if src.quality == quality:
                    return src
        return self.sources[0] if self.sources else None


@dataclass(frozen=True)
class WorkingSet:
    """Ordered snapshot of one section; readers never mutate it."""
    section: str
    items: Tuple[ListEntry, ...] = ()

    def media_ids(self) -> List[int]:
        return [e.media_id for e in self.items]

    def __iter__(self) -> Iterator[ListEntry]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass
class EpisodeInfo:
    number: int
    title: Optional[str] = None
    summary: Optional[str] = None
    image: Optional[str] = None
    air_date: Optional[str] = None


@dataclass
class EpisodesInfo:
    episodes: Dict[int, EpisodeInfo] = field(default_factory=dict)
    alternative_banner: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════
# Keyed lookup table
# ═══════════════════════════════════════════════════════════════════════

class MediaIndex:
    """Arena of entities keyed by catalog id."""

    def __init__(self) -> None:
        self._items: Dict[int, AnimeEntity] = {}

    def add(self, entity: AnimeEntity) -> AnimeEntity:
        """Register *entity*; a bare id reference never replaces known data."""
        current = self._items.get(entity.id)
        if current is not None and _is_stub(entity) and not _is_stub(current):
            return current
        if current is not None and current.has_details and not entity.has_details:
            entity = dataclasses.replace(
                entity,
                relations=current.relations,
                recommendations=current.recommendations,
            )
        self._items[entity.id] = entity
        return entity

    def get(self, media_id: int) -> Optional[AnimeEntity]:
        return self._items.get(media_id)

    def resolve(self, ids: Iterable[int]) -> List[AnimeEntity]:
        """Entities for *ids* in order, skipping ids never registered."""
        return [self._items[i] for i in ids if i in self._items]

    def related(self, entity: AnimeEntity) -> List[Tuple[Relation, AnimeEntity]]:
        return [
            (rel, self._items[rel.media_id])
            for rel in entity.relations or []
            if rel.media_id in self._items
        ]

    def __contains__(self, media_id: object) -> bool:
        return media_id in self._items

    def __len__(self) -> int:
        return len(self._items)


def _is_stub(entity: AnimeEntity) -> bool:
    return not entity.titles.variants() and entity.format is None and entity.status is None
