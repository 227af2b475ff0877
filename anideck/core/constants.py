"""Constants, enums and endpoints used across the project."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, List, Tuple


# ── Catalog enums ─────────────────────────────────────────────────────

class MediaFormat(str, Enum):
    """Format tags reported by the remote catalog."""
    TV = "TV"
    TV_SHORT = "TV_SHORT"
    MOVIE = "MOVIE"
    SPECIAL = "SPECIAL"
    OVA = "OVA"
    ONA = "ONA"
    MUSIC = "MUSIC"
    MANGA = "MANGA"
    NOVEL = "NOVEL"
    ONE_SHOT = "ONE_SHOT"


class MediaStatus(str, Enum):
    """Release status of a title."""
    FINISHED = "FINISHED"
    RELEASING = "RELEASING"
    NOT_YET_RELEASED = "NOT_YET_RELEASED"
    CANCELLED = "CANCELLED"
    HIATUS = "HIATUS"


class MediaType(str, Enum):
    ANIME = "ANIME"
    MANGA = "MANGA"


class ListBucket(str, Enum):
    """A named category in the viewer's remote list."""
    CURRENT = "CURRENT"
    REPEATING = "REPEATING"
    PLANNING = "PLANNING"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"
    PAUSED = "PAUSED"


class RelationKind(str, Enum):
    """Edge kinds between two catalog titles."""
    ADAPTATION = "ADAPTATION"
    PREQUEL = "PREQUEL"
    SEQUEL = "SEQUEL"
    PARENT = "PARENT"
    SIDE_STORY = "SIDE_STORY"
    CHARACTER = "CHARACTER"
    SUMMARY = "SUMMARY"
    ALTERNATIVE = "ALTERNATIVE"
    SPIN_OFF = "SPIN_OFF"
    OTHER = "OTHER"
    SOURCE = "SOURCE"
    COMPILATION = "COMPILATION"
    CONTAINS = "CONTAINS"


# Edges of these kinds are filtered by their relation kind instead of
# the format tag the catalog reports for the related title.
FORMAT_EQUIVALENT_RELATIONS: FrozenSet[str] = frozenset({
    RelationKind.SEQUEL.value,
    RelationKind.PREQUEL.value,
    RelationKind.ALTERNATIVE.value,
    RelationKind.PARENT.value,
    RelationKind.SPIN_OFF.value,
})


# ── Normalizer input kinds ────────────────────────────────────────────

class SourceKind(str, Enum):
    """Shapes of raw payloads the normalizer understands."""
    TRENDING = "trending"
    POPULAR = "popular"
    UPCOMING = "upcoming"
    AIRING_SCHEDULE = "airing_schedule"
    USER_LIST = "user_list"
    RELATION_EDGES = "relation_edges"
    RECOMMENDATIONS = "recommendations"
    MEDIA = "media"
    HISTORY_SNAPSHOT = "history_snapshot"


FEED_KINDS: Tuple[SourceKind, ...] = (
    SourceKind.TRENDING,
    SourceKind.POPULAR,
    SourceKind.UPCOMING,
)


# ── Sync sections ─────────────────────────────────────────────────────

class Section(str, Enum):
    """Section tags broadcast over the sync channel."""
    HISTORY = "history"
    BOOKMARK = "bookmark"


# Buckets making up the bookmark section, in display order.
BOOKMARK_BUCKETS: Tuple[ListBucket, ...] = (
    ListBucket.CURRENT,
    ListBucket.REPEATING,
    ListBucket.PLANNING,
)


# ── Status badges ─────────────────────────────────────────────────────

class StatusBadge(str, Enum):
    """Small indicator shown next to a title in list views."""
    BEHIND = "behind"
    RELEASING = "releasing"
    NOT_YET_RELEASED = "not_yet_released"


# ── Providers ─────────────────────────────────────────────────────────

# Names the Consumet API serves under /anime/<name>/...
CONSUMET_PROVIDERS: Tuple[str, ...] = (
    "animepahe",
    "zoro",
    "animekai",
    "gogoanime",
)

# Providers scraped directly from HTML.
HTML_PROVIDERS: Tuple[str, ...] = (
    "gogoanime-html",
)

SUPPORTED_PROVIDERS: Tuple[str, ...] = CONSUMET_PROVIDERS + HTML_PROVIDERS

DEFAULT_PROVIDER_ORDER: List[str] = [
    "gogoanime-html",
    "animepahe",
    "zoro",
]


# ── Preferences ───────────────────────────────────────────────────────

DEFAULT_PREFERENCES: Dict[str, object] = {
    "logged": False,
    "trailer_volume_on": False,
    "light_mode": False,
    "title_language": "english",
}


# ── Endpoints ─────────────────────────────────────────────────────────

ANILIST_API_URL = "https://graphql.anilist.co"
CONSUMET_URL = "https://api.consumet.org"
GOGOANIME_URL = "https://anitaku.to"
EPISODES_INFO_URL = "https://api.ani.zip/mappings?anilist_id="


# ── Misc ──────────────────────────────────────────────────────────────

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"

SOURCE_NOT_FOUND_NOTICE = "Source not found."

# Items per page requested from the catalog feeds
FEED_PAGE_SIZE = 20
