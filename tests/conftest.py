from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

from anideck.core.config import DEFAULT_CONFIG, _deep_merge
from anideck.database.models import (
    AnimeEntity,
    EpisodeStreamDescriptor,
    ListEntry,
    NextAiring,
    StreamSource,
    Titles,
)
from anideck.database.store import WatchStateStore
from anideck.services.providers.base import Candidate, StreamProvider


@pytest.fixture()
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("ANIDECK_DATA_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture()
def store() -> WatchStateStore:
    s = WatchStateStore()
    s.load()
    return s


@pytest.fixture()
def cfg() -> Dict[str, Any]:
    return _deep_merge(DEFAULT_CONFIG, {
        "anilist": {"api_url": "https://catalog.test/graphql", "token": "tok"},
        "providers": {
            "order": ["gogoanime-html", "animepahe"],
            "consumet_url": "https://consumet.test",
            "gogoanime_url": "https://gogo.test",
            "timeout": 2.0,
        },
        "episodes_info": {"url": "https://episodes.test/mappings?anilist_id="},
    })


def run(coro):
    return asyncio.run(coro)


def make_entity(
    media_id: int = 1,
    romaji: Optional[str] = "Sousou no Frieren",
    english: Optional[str] = None,
    native: Optional[str] = None,
    **kwargs: Any,
) -> AnimeEntity:
    return AnimeEntity(
        id=media_id,
        titles=Titles(romaji=romaji, english=english, native=native),
        **kwargs,
    )


def make_entry(media_id: int, **kwargs: Any) -> ListEntry:
    return ListEntry(media_id=media_id, media=make_entity(media_id, romaji=f"Title {media_id}"), **kwargs)


def airing(seconds: float, now: float = 1_000_000.0, episode: int = 5) -> NextAiring:
    return NextAiring(episode=episode, airing_at=int(now + seconds), seconds_until_airing=seconds)


# ── Fake providers ────────────────────────────────────────────────────

@dataclass
class FakeProvider(StreamProvider):
    """Scripted provider that records every call it receives."""
    name: str
    results: Dict[str, List[Candidate]] = field(default_factory=dict)
    streams: Dict[str, str] = field(default_factory=dict)
    calls: List[tuple] = field(default_factory=list)
    fail: Optional[Exception] = None
    delay: float = 0.0

    async def search(self, title: str) -> List[Candidate]:
        self.calls.append(("search", title))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        return list(self.results.get(title, []))

    async def get_episode_stream(self, candidate_id: str, episode: int) -> Optional[EpisodeStreamDescriptor]:
        self.calls.append(("stream", candidate_id, episode))
        url = self.streams.get(candidate_id)
        if url is None:
            return None
        return EpisodeStreamDescriptor(
            provider=self.name,
            episode=episode,
            sources=[StreamSource(url=url)],
            candidate_id=candidate_id,
        )


# ── HTTP mocking ──────────────────────────────────────────────────────

def graphql_router(responses: Dict[str, Any], calls: Optional[List[Dict[str, Any]]] = None):
    """Answer catalog GraphQL posts by the first matching root field in the query."""
    import json

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if calls is not None:
            calls.append(body)
        query = body.get("query", "")
        for key, payload in responses.items():
            if key in query:
                data = payload(body.get("variables") or {}) if callable(payload) else payload
                return httpx.Response(200, json=data)
        return httpx.Response(200, json={"data": {}})

    return handler
