"""CLI entry point and argument parsing.

Usage examples::

    # Start the REST API (default)
    python -m anideck serve

    # Resolve a stream for episode 3 of catalog id 154587
    python -m anideck resolve 154587 3

    # Show local watch history, newest first
    python -m anideck history

    # Re-reconcile sections
    python -m anideck refresh history bookmark

    # Read / write preferences
    python -m anideck prefs light_mode true
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from anideck.core.config import load_config
from anideck.core.constants import Section
from anideck.core.exceptions import AniDeckError
from anideck.core.logging_setup import get_logger, setup_from_config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="anideck",
        description="anideck – anime browsing and episode source resolution",
    )
    sub = parser.add_subparsers(dest="command", help="Available commands")

    # ── serve ──────────────────────────────────────────────────────────
    srv = sub.add_parser("serve", help="Start the REST API")
    srv.add_argument("--host", default=None, help="Bind address (default: from config)")
    srv.add_argument("--port", type=int, default=None, help="Port (default: from config)")

    # ── resolve ────────────────────────────────────────────────────────
    res = sub.add_parser("resolve", help="Find a playable stream for one episode")
    res.add_argument("media_id", type=int, help="Catalog media id")
    res.add_argument("episode", type=int, help="Episode number")

    # ── history ────────────────────────────────────────────────────────
    sub.add_parser("history", help="List local watch history, newest first")

    # ── refresh ────────────────────────────────────────────────────────
    ref = sub.add_parser("refresh", help="Re-reconcile one or more sections")
    ref.add_argument("sections", nargs="+", choices=[s.value for s in Section])

    # ── prefs ──────────────────────────────────────────────────────────
    prefs = sub.add_parser("prefs", help="Show or set preferences")
    prefs.add_argument("key", nargs="?", help="Preference name")
    prefs.add_argument("value", nargs="?", help="New value (JSON, e.g. true / 3 / \"romaji\")")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and dispatch to the appropriate handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    cfg = load_config()
    setup_from_config(cfg)
    log = get_logger("cli")

    try:
        if args.command is None or args.command == "serve":
            return _cmd_serve(args)
        elif args.command == "resolve":
            return asyncio.run(_cmd_resolve(args, cfg, log))
        elif args.command == "history":
            return asyncio.run(_cmd_history(cfg))
        elif args.command == "refresh":
            return asyncio.run(_cmd_refresh(args, cfg, log))
        elif args.command == "prefs":
            return _cmd_prefs(args, log)
        else:
            parser.print_help()
            return 1
    except AniDeckError as exc:
        log.error("%s", exc)
        return 1


# ── Command handlers ──────────────────────────────────────────────────

def _cmd_serve(args) -> int:
    from anideck.api.app import start_server
    start_server(host=getattr(args, "host", None), port=getattr(args, "port", None))
    return 0


async def _cmd_resolve(args, cfg: dict, log) -> int:
    from anideck.services.container import build_services

    svc = build_services(cfg)
    try:
        view = await svc.details(args.media_id).open()
        if view.media is None:
            log.error("Unknown media id %d", args.media_id)
            return 1
        result = await view.play(args.episode)
    finally:
        await svc.aclose()

    if not result.ok:
        print(result.notice)
        return 1
    desc = result.descriptor
    print(f"provider: {desc.provider}")
    for src in desc.sources:
        print(f"  [{src.quality}] {src.url}")
    for sub in desc.subtitles:
        print(f"  sub ({sub.lang}) {sub.url}")
    return 0


async def _cmd_history(cfg: dict) -> int:
    from anideck.services.container import build_services
    from anideck.utils.helpers import display_title

    svc = build_services(cfg)
    try:
        ws = svc.reconciler.reconcile_history()
        lang = svc.store.get_preference("title_language", "english")
        for entry in ws:
            title = display_title(entry.media, lang) if entry.media else f"#{entry.media_id}"
            print(f"{entry.media_id:>8}  {entry.progress:>4}  {title}")
    finally:
        await svc.aclose()
    return 0


async def _cmd_refresh(args, cfg: dict, log) -> int:
    from anideck.services.container import build_services

    svc = build_services(cfg)
    try:
        await svc.library.load_viewer()
        for name in args.sections:
            ws = await svc.library.refresh(name)
            log.info("Section %s: %d entries", name, len(ws))
    finally:
        await svc.aclose()
    return 0


def _cmd_prefs(args, log) -> int:
    from anideck.core.config import data_dir
    from anideck.database.connection import db_path
    from anideck.database.store import SqliteWatchStateStore

    store = SqliteWatchStateStore(db_path(data_dir()))
    store.load()

    if args.key is None:
        for key, value in sorted(store.preferences().items()):
            print(f"{key} = {json.dumps(value)}")
        return 0
    if args.value is None:
        print(json.dumps(store.get_preference(args.key)))
        return 0

    store.set_preference(args.key, _parse_value(args.value))
    log.info("Preference %s set to %s", args.key, args.value)
    return 0


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw
