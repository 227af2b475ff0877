"""General helper/utility functions.

Title normalisation, episode counting and the small display derivations
list views need.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

from anideck.core.constants import ListBucket, MediaStatus, StatusBadge
from anideck.database.models import AnimeEntity, ListEntry

# ── Title normalisation ───────────────────────────────────────────────

_NON_WORD = re.compile(r"[^\w\s]", re.UNICODE)
_SPACES = re.compile(r"\s+")
# provider-side language markers, e.g. "Frieren (Dub)"
_NOISE = re.compile(r"\b(?:dub|sub)\b")


def normalize_title(title: str) -> str:
    """Lower-case, accent-free, punctuation-free form used for matching."""
    if not title:
        return ""
    t = unicodedata.normalize("NFKD", title)
    t = "".join(ch for ch in t if not unicodedata.combining(ch))
    t = t.lower().replace("&", " and ")
    t = _NON_WORD.sub(" ", t)
    t = _NOISE.sub(" ", t)
    return _SPACES.sub(" ", t).strip()


_FORMAT_LABELS = {
    "TV": "TV Show",
    "TV_SHORT": "TV Short",
    "MOVIE": "Movie",
    "SPECIAL": "Special",
    "OVA": "OVA",
    "ONA": "ONA",
    "MUSIC": "Music",
}


def parsed_format(fmt: Optional[str]) -> str:
    if not fmt:
        return "?"
    return _FORMAT_LABELS.get(fmt, capitalize_first_letter(fmt.replace("_", " ")))


def parsed_season_year(media: AnimeEntity) -> str:
    return str(media.season_year) if media.season_year else "?"


def capitalize_first_letter(value: str) -> str:
    return value[:1].upper() + value[1:].lower() if value else value


def display_title(media: AnimeEntity, language: str = "english") -> str:
    """Preferred title, falling back through the other variants."""
    t = media.titles
    order = {
        "english": (t.english, t.romaji, t.native),
        "romaji": (t.romaji, t.english, t.native),
        "native": (t.native, t.romaji, t.english),
    }.get(language, (t.english, t.romaji, t.native))
    for candidate in order:
        if candidate:
            return candidate
    return f"#{media.id}"


# ── Episode counting ──────────────────────────────────────────────────

def available_episodes(media: AnimeEntity) -> Optional[int]:
    """Episodes already released: one before the airing pointer when airing."""
    na = media.next_airing
    if na is not None and na.episode is not None:
        return max(0, na.episode - 1)
    return media.total_episodes


def progress_of(entry: ListEntry) -> int:
    """Viewer progress, preferring the list entry over the embedded one."""
    if entry.progress:
        return entry.progress
    media = entry.media
    if media is not None and media.list_entry is not None:
        return media.list_entry.progress or 0
    return 0


def status_badge(entry: ListEntry) -> Optional[StatusBadge]:
    """Indicator shown next to a title in list views.

    ``BEHIND`` when the viewer is watching and new episodes are out,
    ``RELEASING`` for titles still airing, ``NOT_YET_RELEASED`` before
    the premiere.
    """
    media = entry.media
    if media is None:
        return None
    bucket = entry.bucket or (media.list_entry.status if media.list_entry else None)
    watching = bucket in (ListBucket.CURRENT.value, ListBucket.REPEATING.value)
    if watching and progress_of(entry) != available_episodes(media):
        return StatusBadge.BEHIND
    if media.status == MediaStatus.RELEASING.value:
        return StatusBadge.RELEASING
    if media.status == MediaStatus.NOT_YET_RELEASED.value:
        return StatusBadge.NOT_YET_RELEASED
    return None
