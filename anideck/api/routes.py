"""REST API routes for anideck.

Endpoints
---------
- ``GET  /health``                           – Health check
- ``GET  /home``                             – Viewer, bookmarks, history and feeds
- ``GET  /sections/{section}``               – Current working set of a section
- ``POST /sections/{section}/refresh``       – Request a re-sync of a section
- ``GET  /planning``                         – Viewer's PLANNING list
- ``GET  /anime/{id}``                       – Title details, related, recommended
- ``GET  /anime/{id}/episodes/{n}/stream``   – Resolve a playable stream
- ``POST /history/{id}/progress``            – Record playback progress
- ``POST /history/{id}/complete``            – Mark an episode fully watched
- ``GET  /preferences``                      – All preferences
- ``GET  /preferences/{key}``                – One preference
- ``PUT  /preferences/{key}``                – Update one preference
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from anideck.core.constants import SOURCE_NOT_FOUND_NOTICE, Section
from anideck.core.logging_setup import get_logger
from anideck.database.models import ListEntry
from anideck.services.container import Services
from anideck.utils.helpers import (
    available_episodes,
    display_title,
    parsed_format,
    parsed_season_year,
    status_badge,
)

log = get_logger("api.routes")

router = APIRouter()


def _services(request: Request) -> Services:
    return request.app.state.services


def _section(name: str) -> Optional[Section]:
    try:
        return Section(name)
    except ValueError:
        return None


@router.get("/health")
async def health():
    return {"status": "ok"}


# ═══════════════════════════════════════════════════════════════════════
# Home / sections
# ═══════════════════════════════════════════════════════════════════════

@router.get("/home")
async def home(request: Request):
    svc = _services(request)
    feed = await svc.library.load_home()
    lang = svc.store.get_preference("title_language", "english")
    return {
        "status": "ok",
        "authenticated": svc.library.is_authenticated,
        "viewer": dataclasses.asdict(feed.viewer) if feed.viewer else None,
        "bookmarks": _entries(feed.bookmarks, lang),
        "history": _entries(feed.history, lang),
        "trending": _entries(feed.trending, lang),
        "popular": _entries(feed.popular, lang),
        "next_releases": _entries(feed.next_releases, lang),
        "airing": _entries(feed.airing, lang),
    }


@router.get("/sections/{name}")
async def get_section(name: str, request: Request):
    section = _section(name)
    if section is None:
        return JSONResponse({"status": "error", "msg": f"Unknown section '{name}'"}, status_code=404)
    svc = _services(request)
    lang = svc.store.get_preference("title_language", "english")
    return {
        "status": "ok",
        "section": section.value,
        "items": _entries(svc.reconciler.snapshot(section), lang),
    }


@router.get("/planning")
async def planning(request: Request):
    svc = _services(request)
    if svc.library.viewer is None:
        await svc.library.load_viewer()
    lang = svc.store.get_preference("title_language", "english")
    return {"status": "ok", "items": _entries(await svc.library.load_planning(), lang)}


@router.post("/sections/{name}/refresh")
async def refresh_section(name: str, request: Request):
    section = _section(name)
    if section is None:
        return JSONResponse({"status": "error", "msg": f"Unknown section '{name}'"}, status_code=404)
    delivered = _services(request).channel.publish(section)
    return {"status": "ok", "section": section.value, "subscribers": delivered}


# ═══════════════════════════════════════════════════════════════════════
# Details / playback
# ═══════════════════════════════════════════════════════════════════════

@router.get("/anime/{media_id}")
async def anime_details(media_id: int, request: Request):
    svc = _services(request)
    view = await svc.details(media_id).open()
    if view.media is None:
        return JSONResponse({"status": "error", "msg": f"Unknown media {media_id}"}, status_code=404)

    lang = svc.store.get_preference("title_language", "english")
    record = svc.store.get_history(media_id)
    watched = svc.store.episode_log(record.resolved_identifier()) if record else {}
    return {
        "status": "ok",
        "media": view.media.to_dict(),
        "title": display_title(view.media, lang),
        "banner": view.banner,
        "available_episodes": available_episodes(view.media),
        "related": _entries(view.related, lang),
        "recommended": _entries(view.recommended, lang),
        "episodes": {
            str(n): dataclasses.asdict(info) for n, info in sorted(view.episodes_info.episodes.items())
        },
        "watched": {str(n): dataclasses.asdict(p) for n, p in sorted(watched.items())},
    }


@router.get("/anime/{media_id}/episodes/{episode}/stream")
async def episode_stream(media_id: int, episode: int, request: Request):
    svc = _services(request)
    result = await svc.details(media_id).play(episode)
    if result.cancelled:
        return JSONResponse(
            {"status": "error", "msg": "Superseded by a newer request"}, status_code=409,
        )
    if not result.ok:
        return JSONResponse(
            {"status": "error", "msg": result.notice or SOURCE_NOT_FOUND_NOTICE}, status_code=404,
        )
    return {"status": "ok", "stream": dataclasses.asdict(result.descriptor)}


@router.post("/history/{media_id}/progress")
async def record_progress(media_id: int, request: Request):
    """Body: ``{"episode": 3, "position": 1200.5, "duration": 1420}``"""
    try:
        body = await request.json()
        episode = int(body["episode"])
        position = float(body.get("position", 0))
        duration = float(body["duration"]) if body.get("duration") is not None else None
    except (AttributeError, KeyError, TypeError, ValueError):
        return JSONResponse(
            {"status": "error", "msg": "episode (int) required, position/duration numeric"},
            status_code=400,
        )

    svc = _services(request)
    view = svc.details(media_id)
    record = await svc.playback.record_progress(
        media_id, episode, position=position, duration=duration, entry=view.snapshot_entry(),
    )
    return {"status": "ok", "progress": record.snapshot.progress, "timestamp": record.timestamp}


@router.post("/history/{media_id}/complete")
async def complete_episode(media_id: int, request: Request):
    """Body: ``{"episode": 3, "duration": 1420}``"""
    try:
        body = await request.json()
        episode = int(body["episode"])
        duration = float(body["duration"]) if body.get("duration") is not None else None
    except (AttributeError, KeyError, TypeError, ValueError):
        return JSONResponse(
            {"status": "error", "msg": "episode (int) required, duration numeric"},
            status_code=400,
        )

    svc = _services(request)
    view = svc.details(media_id)
    record = await svc.playback.complete(
        media_id, episode, duration=duration, entry=view.snapshot_entry(),
    )
    return {"status": "ok", "progress": record.snapshot.progress, "timestamp": record.timestamp}


# ═══════════════════════════════════════════════════════════════════════
# Preferences
# ═══════════════════════════════════════════════════════════════════════

@router.get("/preferences")
async def list_preferences(request: Request):
    return {"status": "ok", "preferences": _services(request).store.preferences()}


@router.get("/preferences/{key}")
async def get_preference(key: str, request: Request):
    prefs = _services(request).store.preferences()
    if key not in prefs:
        return JSONResponse({"status": "error", "msg": f"Unknown preference '{key}'"}, status_code=404)
    return {"status": "ok", "key": key, "value": prefs[key]}


@router.put("/preferences/{key}")
async def put_preference(key: str, request: Request):
    """Body: ``{"value": <any JSON value>}``"""
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict) or "value" not in body:
        return JSONResponse({"status": "error", "msg": "value required"}, status_code=400)
    _services(request).store.set_preference(key, body["value"])
    return {"status": "ok", "key": key, "value": body["value"]}


# ── Helpers ───────────────────────────────────────────────────────────

def _entries(entries, lang: str) -> List[Dict[str, Any]]:
    return [_entry_dict(e, lang) for e in entries]


def _entry_dict(entry: ListEntry, lang: str) -> Dict[str, Any]:
    data = entry.to_dict()
    media = entry.media
    badge = status_badge(entry)
    data.update({
        "title": display_title(media, lang) if media else f"#{entry.media_id}",
        "format": parsed_format(media.format) if media else "?",
        "year": parsed_season_year(media) if media else "?",
        "badge": badge.value if badge else None,
    })
    return data
