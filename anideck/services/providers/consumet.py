"""Providers served through a Consumet API instance (JSON)."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from anideck.database.models import EpisodeStreamDescriptor, StreamSource, SubtitleTrack
from anideck.services.providers.base import Candidate, StreamProvider
from anideck.utils.http_client import HttpClient


class ConsumetProvider(StreamProvider):
    """``/anime/<name>/...`` endpoints of a Consumet deployment.

    Search:  ``GET /anime/<name>/<query>``
    Info:    ``GET /anime/<name>/info?id=<id>``
    Watch:   ``GET /anime/<name>/watch?episodeId=<episode id>``
    """

    def __init__(self, name: str, base_url: str, http: HttpClient) -> None:
        self.name = name
        self._base = f"{base_url.rstrip('/')}/anime/{name}"
        self._http = http

    async def search(self, title: str) -> List[Candidate]:
        data = await self._http.get_json(f"{self._base}/{quote(title, safe='')}")
        candidates: List[Candidate] = []
        for item in (data or {}).get("results") or []:
            cid = item.get("id")
            name = _title(item.get("title"))
            if not cid or not name:
                continue
            candidates.append(Candidate(
                id=str(cid),
                title=name,
                format=_format(item.get("type")),
                total_episodes=_int(item.get("totalEpisodes") or item.get("episodes")),
                year=_year(item.get("releaseDate")),
            ))
        return candidates

    async def get_episode_stream(
        self, candidate_id: str, episode: int
    ) -> Optional[EpisodeStreamDescriptor]:
        info = await self._http.get_json(f"{self._base}/info", params={"id": candidate_id})
        episode_id = _episode_id(info, episode)
        if episode_id is None:
            return None

        data = await self._http.get_json(f"{self._base}/watch", params={"episodeId": episode_id})
        sources = [
            StreamSource(
                url=src["url"],
                quality=str(src.get("quality") or "default"),
                is_m3u8=bool(src.get("isM3U8")),
            )
            for src in (data or {}).get("sources") or []
            if src.get("url")
        ]
        if not sources:
            return None
        subtitles = [
            SubtitleTrack(url=sub["url"], lang=str(sub.get("lang") or "unknown"))
            for sub in data.get("subtitles") or []
            if sub.get("url")
        ]
        return EpisodeStreamDescriptor(
            provider=self.name,
            episode=episode,
            sources=sources,
            subtitles=subtitles,
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
            candidate_id=candidate_id,
        )


# ── Helpers ───────────────────────────────────────────────────────────

def _episode_id(info: Any, episode: int) -> Optional[str]:
    for ep in (info or {}).get("episodes") or []:
        if _int(ep.get("number")) == episode and ep.get("id"):
            return str(ep["id"])
    return None


def _title(raw: Any) -> Optional[str]:
    if isinstance(raw, dict):
        raw = raw.get("romaji") or raw.get("english") or raw.get("native")
    return str(raw).strip() if raw else None


_YEAR = re.compile(r"\b(19|20)\d{2}\b")

_TYPE_TO_FORMAT: Dict[str, str] = {
    "tv": "TV",
    "tv series": "TV",
    "tv_short": "TV_SHORT",
    "movie": "MOVIE",
    "ova": "OVA",
    "ona": "ONA",
    "special": "SPECIAL",
}


def _format(raw: Any) -> Optional[str]:
    if not raw:
        return None
    return _TYPE_TO_FORMAT.get(str(raw).strip().lower())


def _int(value: Any) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _year(value: Any) -> Optional[int]:
    m = _YEAR.search(str(value or ""))
    return int(m.group(0)) if m else None
