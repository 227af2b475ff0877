from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import httpx

from anideck.core.constants import Section
from anideck.database.models import EpisodeProgress, HistoryRecord, ListEntry
from anideck.services.catalog import CatalogClient, CatalogService
from anideck.services.library import Library
from anideck.services.reconciler import Reconciler
from anideck.services.sync import SyncChannel
from anideck.utils.http_client import HttpClient

from conftest import graphql_router, make_entity, run


def _page(*ids: int) -> Dict[str, Any]:
    return {"data": {"Page": {"media": [{"id": i, "title": {"romaji": f"Show {i}"}} for i in ids]}}}


def _bucket(variables: Dict[str, Any]) -> Dict[str, Any]:
    ids = {"CURRENT": [10, 11], "REPEATING": [20], "PLANNING": [30]}[variables["status"]]
    entries = [
        {"id": i * 100, "mediaId": i, "status": variables["status"], "media": {"id": i, "title": {"romaji": f"Show {i}"}}}
        for i in ids
    ]
    return {"data": {"MediaListCollection": {"lists": [{"entries": entries}]}}}


ROUTES = {
    "Viewer {": {"data": {"Viewer": {"id": 7}}},
    "User(": {"data": {"User": {"id": 7, "name": "mika", "avatar": {"medium": "https://img/a.png"}}}},
    "MediaListCollection": _bucket,
    "airingSchedules": {"data": {"Page": {"airingSchedules": [
        {"episode": 3, "airingAt": 1_000_100, "media": {"id": 40, "title": {"romaji": "Show 40"}}},
    ]}}},
    "Page(": lambda v: _page(*([50] if v.get("status") else [1, 2] if v["sort"] == ["TRENDING_DESC"] else [3])),
}


def _library(store, handler, token="tok"):
    http = HttpClient(transport=httpx.MockTransport(handler))
    catalog = CatalogService(CatalogClient(http, api_url="https://catalog.test/graphql", token=token))
    channel = SyncChannel()
    return Library(catalog, store, Reconciler(store, catalog), channel), channel


def test_authenticated_by_login_or_history(store) -> None:
    library, _ = _library(store, graphql_router({}), token=None)
    assert not library.is_authenticated

    store.put_history(HistoryRecord(media_id=1, snapshot=ListEntry(media_id=1, media=make_entity())))
    assert library.is_authenticated


def test_load_home_builds_every_section(store) -> None:
    calls: List[Dict[str, Any]] = []
    library, _ = _library(store, graphql_router(ROUTES, calls))
    store.put_history(HistoryRecord(media_id=1, snapshot=ListEntry(media_id=1, media=make_entity())))

    feed = run(library.load_home(now=1_000_000))

    assert feed.viewer.name == "mika"
    assert store.get_preference("logged") is True
    assert feed.bookmarks.media_ids() == [10, 11, 20, 30]
    assert feed.history.media_ids() == [1]
    assert [e.media_id for e in feed.trending] == [1, 2]
    assert [e.media_id for e in feed.popular] == [3]
    assert [e.media_id for e in feed.next_releases] == [50]
    assert [e.media_id for e in feed.airing] == [40]

    [schedule] = [c for c in calls if "airingSchedules" in c["query"]]
    assert schedule["variables"]["from"] == 1_000_000
    assert schedule["variables"]["to"] == 1_000_000 + 24 * 3600


def test_failed_feed_is_empty_not_fatal(store) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if b"TRENDING_DESC" in request.content:
            return httpx.Response(503)
        return graphql_router(ROUTES)(request)

    library, _ = _library(store, handler)
    feed = run(library.load_home(now=1_000_000))

    assert feed.trending == []
    assert [e.media_id for e in feed.popular] == [3]


def test_planning_requires_viewer(store) -> None:
    library, _ = _library(store, graphql_router(ROUTES), token=None)
    assert run(library.load_planning()) == []


def test_listen_reconciles_published_sections(store) -> None:
    library, channel = _library(store, graphql_router(ROUTES), token=None)

    async def scenario():
        ready = asyncio.Event()
        task = asyncio.create_task(library.listen(ready))
        await ready.wait()
        assert library.reconciler.snapshot(Section.HISTORY).media_ids() == []

        store.put_history(HistoryRecord(media_id=9, snapshot=ListEntry(media_id=9, media=make_entity(9))))
        store.log_episode(9, EpisodeProgress(episode=1, timestamp=5.0))
        assert channel.publish(Section.HISTORY, "unknown") == 1
        for _ in range(5):
            await asyncio.sleep(0)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return library.reconciler.snapshot(Section.HISTORY).media_ids(), channel.subscriber_count

    ids, subscribers = run(scenario())
    assert ids == [9]
    assert subscribers == 0
