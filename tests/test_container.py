from __future__ import annotations

import httpx

from anideck.database.models import HistoryRecord, ListEntry
from anideck.database.store import WatchStateStore
from anideck.services.container import MAX_OPEN_VIEWS, build_services

from conftest import make_entity, run


def _services(cfg):
    return build_services(cfg, store=WatchStateStore(), transport=httpx.MockTransport(lambda r: httpx.Response(404)))


def test_detail_views_are_reused_and_bounded(cfg) -> None:
    svc = _services(cfg)
    first = svc.details(1)
    assert svc.details(1) is first

    for media_id in range(2, MAX_OPEN_VIEWS + 6):
        svc.details(media_id)

    assert len(svc._views) == MAX_OPEN_VIEWS
    assert 1 not in svc._views
    assert svc.details(1) is not first
    run(svc.aclose())


def test_reused_view_sees_new_history(cfg) -> None:
    svc = _services(cfg)
    view = svc.details(3)
    assert view.entry.progress == 0

    svc.store.put_history(HistoryRecord(
        media_id=3,
        snapshot=ListEntry(media_id=3, progress=4, media=make_entity(3, total_episodes=12)),
    ))

    assert svc.details(3) is view
    assert view.entry.progress == 4
    run(svc.aclose())
