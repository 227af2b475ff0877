"""HTML scraper for Gogoanime mirrors.

Search hits come from ``/search.html``; an episode page lists one embed
per mirror server inside ``div.anime_muti_link``.
"""

from __future__ import annotations

import re
from typing import List, Optional

from bs4 import BeautifulSoup

from anideck.core.logging_setup import get_logger
from anideck.database.models import EpisodeStreamDescriptor, StreamSource
from anideck.services.providers.base import Candidate, StreamProvider
from anideck.utils.http_client import HttpClient

log = get_logger("providers.gogoanime")

_RELEASED = re.compile(r"(\d{4})")


class GogoanimeProvider(StreamProvider):
    name = "gogoanime-html"

    def __init__(self, base_url: str, http: HttpClient) -> None:
        self._base = base_url.rstrip("/")
        self._http = http

    # ═══════════════════════════════════════════════════════════════════
    # Search
    # ═══════════════════════════════════════════════════════════════════

    async def search(self, title: str) -> List[Candidate]:
        resp = await self._http.get(f"{self._base}/search.html", params={"keyword": title})
        soup = BeautifulSoup(resp.text, "html.parser")

        candidates: List[Candidate] = []
        seen: set[str] = set()
        # <ul class="items"><li><p class="name"><a href="/category/slug" title="Title">
        for li in soup.select("ul.items li"):
            a = li.select_one("p.name a")
            if not a:
                continue
            href = str(a.get("href", ""))
            slug = href.rstrip("/").rsplit("/", 1)[-1]
            name = str(a.get("title") or a.get_text(strip=True)).strip()
            if not slug or not name or slug in seen:
                continue
            seen.add(slug)

            released = li.select_one("p.released")
            m = _RELEASED.search(released.get_text(" ", strip=True)) if released else None
            candidates.append(Candidate(
                id=slug,
                title=name,
                year=int(m.group(1)) if m else None,
            ))

        log.debug("gogoanime search %r: %d hits", title, len(candidates))
        return candidates

    # ═══════════════════════════════════════════════════════════════════
    # Episode
    # ═══════════════════════════════════════════════════════════════════

    async def get_episode_stream(
        self, candidate_id: str, episode: int
    ) -> Optional[EpisodeStreamDescriptor]:
        resp = await self._http.get(f"{self._base}/{candidate_id}-episode-{episode}")
        soup = BeautifulSoup(resp.text, "html.parser")

        sources: List[StreamSource] = []
        for a in soup.select("div.anime_muti_link ul li a[data-video]"):
            url = str(a.get("data-video", "")).strip()
            if not url:
                continue
            if url.startswith("//"):
                url = f"https:{url}"
            server = a.find_parent("li")
            label = (server.get("class") or ["default"])[0] if server else "default"
            sources.append(StreamSource(url=url, quality=str(label), is_m3u8=url.endswith(".m3u8")))

        if not sources:
            return None
        return EpisodeStreamDescriptor(
            provider=self.name,
            episode=episode,
            sources=sources,
            headers={"Referer": f"{self._base}/"},
            candidate_id=candidate_id,
        )
