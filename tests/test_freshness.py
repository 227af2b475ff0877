from __future__ import annotations

from typing import Any, Dict, List

import httpx

from anideck.database.models import HistoryRecord, ListEntry, NextAiring
from anideck.services.catalog import CatalogClient, CatalogService
from anideck.services.freshness import FreshnessChecker, is_stale
from anideck.utils.http_client import HttpClient

from conftest import airing, graphql_router, make_entity, run

NOW = 1_000_000.0


def test_passed_airing_time_is_stale() -> None:
    assert is_stale(make_entity(status="RELEASING", next_airing=airing(-1, NOW)), now=NOW)


def test_airing_right_now_is_not_stale() -> None:
    assert not is_stale(make_entity(status="RELEASING", next_airing=airing(0, NOW)), now=NOW)


def test_negative_countdown_without_airing_time_is_stale() -> None:
    entity = make_entity(status="FINISHED", next_airing=NextAiring(episode=3, seconds_until_airing=-1))
    assert is_stale(entity, now=NOW)


def test_releasing_without_airing_time_is_stale() -> None:
    assert is_stale(make_entity(status="RELEASING"), now=NOW)
    assert is_stale(make_entity(status="RELEASING", next_airing=NextAiring(episode=4)), now=NOW)


def test_finished_without_airing_time_is_not_stale() -> None:
    assert not is_stale(make_entity(status="FINISHED", total_episodes=12), now=NOW)


def test_progress_past_released_episodes_is_stale() -> None:
    entity = make_entity(status="RELEASING", next_airing=airing(3600, NOW, episode=5))
    record = HistoryRecord(media_id=1, snapshot=ListEntry(media_id=1, progress=6))
    assert is_stale(entity, record, now=NOW)
    assert not is_stale(entity, HistoryRecord(media_id=1, snapshot=ListEntry(media_id=1, progress=4)), now=NOW)


# ── Refresh ───────────────────────────────────────────────────────────

def _fresh_media() -> Dict[str, Any]:
    return {
        "id": 1,
        "type": "ANIME",
        "title": {"romaji": "Sousou no Frieren"},
        "status": "RELEASING",
        "episodes": 28,
        "nextAiringEpisode": {"episode": 9, "airingAt": int(NOW) + 7 * 86400},
        "relations": {"edges": []},
        "recommendations": {"nodes": []},
    }


def _checker(store, handler) -> FreshnessChecker:
    http = HttpClient(transport=httpx.MockTransport(handler))
    catalog = CatalogService(CatalogClient(http, api_url="https://catalog.test/graphql"))
    return FreshnessChecker(catalog, store)


def test_stale_entity_refreshes_and_persists_snapshot(store) -> None:
    stale = make_entity(status="RELEASING", next_airing=airing(-60, NOW, episode=8))
    store.put_history(HistoryRecord(media_id=1, snapshot=ListEntry(media_id=1, entry_id=77, progress=7, media=stale), timestamp=5))
    calls: List[Dict[str, Any]] = []
    checker = _checker(store, graphql_router({"Media(": {"data": {"Media": _fresh_media()}}}, calls))

    fresh = run(checker.ensure_fresh(stale, store.get_history(1), now=NOW))

    assert fresh.next_airing.episode == 9
    assert len(calls) == 1
    saved = store.get_history(1)
    assert saved.snapshot.media.next_airing.episode == 9
    assert saved.snapshot.entry_id == 77
    assert saved.snapshot.progress == 7


def test_fresh_entity_is_not_refetched(store) -> None:
    calls: List[Dict[str, Any]] = []
    checker = _checker(store, graphql_router({}, calls))
    entity = make_entity(status="FINISHED")

    assert run(checker.ensure_fresh(entity, now=NOW)) is entity
    assert calls == []


def test_network_failure_keeps_stale_entity(store) -> None:
    stale = make_entity(status="RELEASING")
    record = HistoryRecord(media_id=1, snapshot=ListEntry(media_id=1, media=stale))
    store.put_history(record)
    checker = _checker(store, lambda request: httpx.Response(503))

    assert run(checker.ensure_fresh(stale, record, now=NOW)) is stale
    assert store.get_history(1).snapshot.media is stale


def test_without_history_record_nothing_is_persisted(store) -> None:
    checker = _checker(store, graphql_router({"Media(": {"data": {"Media": _fresh_media()}}}))
    fresh = run(checker.ensure_fresh(make_entity(status="RELEASING"), now=NOW))

    assert fresh.total_episodes == 28
    assert not store.has_history
