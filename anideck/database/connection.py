"""SQLite connection management with schema initialisation."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional

from anideck.core.exceptions import StoreError
from anideck.core.logging_setup import get_logger

log = get_logger("database")

DB_FILENAME = "watchstate.db"

# ── Schema DDL ────────────────────────────────────────────────────────

_SCHEMA_SQL = """
-- One row per watched title, keyed by catalog media id
CREATE TABLE IF NOT EXISTS history (
    media_id    TEXT    PRIMARY KEY,
    snapshot    TEXT    NOT NULL,
    timestamp   REAL    NOT NULL DEFAULT 0
);

-- Per-episode playback positions, keyed by the record's resolved identifier
CREATE TABLE IF NOT EXISTS episode_log (
    identifier  TEXT    NOT NULL,
    episode     INTEGER NOT NULL,
    position    REAL    NOT NULL DEFAULT 0,
    duration    REAL,
    timestamp   REAL    NOT NULL DEFAULT 0,
    PRIMARY KEY (identifier, episode)
);

-- User preferences (JSON-encoded values)
CREATE TABLE IF NOT EXISTS preferences (
    key         TEXT    PRIMARY KEY,
    value       TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_timestamp ON history(timestamp);
"""


# ── Connection helpers ────────────────────────────────────────────────


def db_path(data_dir: Optional[Path] = None) -> Path:
    if data_dir is None:
        from anideck.core.config import data_dir as default_data_dir
        data_dir = default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir / DB_FILENAME


def get_connection(path: Path) -> sqlite3.Connection:
    """Return a new SQLite connection to *path*."""
    try:
        conn = sqlite3.connect(str(path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn
    except sqlite3.Error as exc:
        raise StoreError(f"Cannot connect to {path}: {exc}") from exc


def init_db(path: Path) -> None:
    """Create all tables if they do not exist yet."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(path)
    try:
        conn.executescript(_SCHEMA_SQL)
        conn.commit()
        log.debug("Watch-state database initialised at %s", path)
    except sqlite3.Error as exc:
        raise StoreError(f"Schema init failed: {exc}") from exc
    finally:
        conn.close()
