"""Optional per-episode metadata (titles, synopses, thumbnails, fanart).

Served by a secondary mapping API keyed by catalog id.  Light mode
skips the request entirely; any failure yields an empty result so the
caller falls back to the primary banner and bare episode numbers.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from anideck.core.constants import EPISODES_INFO_URL
from anideck.core.exceptions import NetworkError
from anideck.core.logging_setup import get_logger
from anideck.database.models import EpisodeInfo, EpisodesInfo
from anideck.utils.http_client import HttpClient

log = get_logger("episodes_info")


async def fetch_episodes_info(
    http: HttpClient,
    media_id: int,
    *,
    light_mode: bool = False,
    url: str = EPISODES_INFO_URL,
) -> EpisodesInfo:
    if light_mode:
        return EpisodesInfo()
    try:
        data = await http.get_json(f"{url}{media_id}")
    except NetworkError as exc:
        log.warning("Episode metadata unavailable for media %d: %s", media_id, exc)
        return EpisodesInfo()
    if not isinstance(data, dict):
        return EpisodesInfo()

    episodes: Dict[int, EpisodeInfo] = {}
    raw_episodes = data.get("episodes")
    if isinstance(raw_episodes, dict):
        for key, raw in raw_episodes.items():
            if not isinstance(raw, dict):
                continue
            number = _int(raw.get("episode")) or _int(key)
            if number is None:
                continue
            episodes[number] = EpisodeInfo(
                number=number,
                title=_title(raw.get("title")),
                summary=raw.get("overview") or raw.get("summary"),
                image=raw.get("image"),
                air_date=raw.get("airDate") or raw.get("airdate"),
            )

    return EpisodesInfo(episodes=episodes, alternative_banner=_fanart(data.get("images")))


def _fanart(images: Any) -> Optional[str]:
    for img in images or []:
        if isinstance(img, dict) and str(img.get("coverType", "")).lower() == "fanart" and img.get("url"):
            return img["url"]
    return None


def _title(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        return raw.get("en") or raw.get("x-jat") or raw.get("ja")
    return raw or None


def _int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
