"""Watch-state store: history records, the episode log and preferences.

:class:`WatchStateStore` keeps everything in memory and is what tests
inject.  :class:`SqliteWatchStateStore` loads the same state from disk
on start and writes every change through immediately.

Components receive a store handle explicitly; there is no module-level
instance.
"""

from __future__ import annotations

import copy
import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from anideck.core.constants import DEFAULT_PREFERENCES, SourceKind
from anideck.core.exceptions import MalformedResponse, StoreCorrupted, StoreError
from anideck.core.logging_setup import get_logger
from anideck.database.connection import get_connection, init_db
from anideck.database.models import EpisodeProgress, HistoryRecord
from anideck.services.normalizer import normalize

log = get_logger("store")


class WatchStateStore:
    """In-memory watch state with the full store interface.

    Each mutation runs its write hook first and touches memory only once
    that write succeeded.
    """

    def __init__(self) -> None:
        self._history: Dict[str, HistoryRecord] = {}
        self._episodes: Dict[str, Dict[int, EpisodeProgress]] = {}
        self._prefs: Dict[str, Any] = copy.deepcopy(DEFAULT_PREFERENCES)
        self.loaded = False

    def load(self) -> None:
        self.loaded = True

    # ── History ───────────────────────────────────────────────────────

    def history_records(self) -> List[HistoryRecord]:
        return list(self._history.values())

    @property
    def has_history(self) -> bool:
        return bool(self._history)

    def get_history(self, media_id: int) -> Optional[HistoryRecord]:
        return self._history.get(str(media_id))

    def put_history(self, record: HistoryRecord) -> None:
        self._write_history(record)
        self._history[record.key] = record

    # ── Episode log ───────────────────────────────────────────────────

    def log_episode(self, identifier: int | str, progress: EpisodeProgress) -> None:
        key = str(identifier)
        self._write_episode(key, progress)
        self._episodes.setdefault(key, {})[progress.episode] = progress

    def episode_log(self, identifier: int | str) -> Dict[int, EpisodeProgress]:
        return dict(self._episodes.get(str(identifier), {}))

    def last_watched(self, identifier: int | str) -> Optional[EpisodeProgress]:
        """Most recently touched episode logged under *identifier*."""
        episodes = self._episodes.get(str(identifier))
        if not episodes:
            return None
        return max(episodes.values(), key=lambda p: (p.timestamp, p.episode))

    # ── Preferences ───────────────────────────────────────────────────

    def get_preference(self, key: str, default: Any = None) -> Any:
        return self._prefs.get(key, default)

    def set_preference(self, key: str, value: Any) -> None:
        self._write_preference(key, value)
        self._prefs[key] = value

    def preferences(self) -> Dict[str, Any]:
        return dict(self._prefs)

    # ── Write-through hooks (no-op in memory) ─────────────────────────

    def _write_history(self, record: HistoryRecord) -> None:
        pass

    def _write_episode(self, identifier: str, progress: EpisodeProgress) -> None:
        pass

    def _write_preference(self, key: str, value: Any) -> None:
        pass


class SqliteWatchStateStore(WatchStateStore):
    """SQLite-backed store.  Call :meth:`load` once before use."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def load(self) -> None:
        init_db(self.path)
        conn = get_connection(self.path)
        try:
            history_rows = conn.execute(
                "SELECT media_id, snapshot, timestamp FROM history ORDER BY rowid"
            ).fetchall()
            episode_rows = conn.execute(
                "SELECT identifier, episode, position, duration, timestamp FROM episode_log"
            ).fetchall()
            pref_rows = conn.execute("SELECT key, value FROM preferences").fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot read {self.path}: {exc}") from exc
        finally:
            conn.close()

        skipped = 0
        for row in history_rows:
            try:
                record = _row_to_record(row)
            except StoreCorrupted as exc:
                log.warning("Skipping history record: %s", exc)
                skipped += 1
                continue
            self._history[record.key] = record

        for row in episode_rows:
            progress = EpisodeProgress(
                episode=row["episode"],
                position=row["position"] or 0.0,
                duration=row["duration"],
                timestamp=row["timestamp"] or 0.0,
            )
            self._episodes.setdefault(row["identifier"], {})[progress.episode] = progress

        for row in pref_rows:
            try:
                self._prefs[row["key"]] = json.loads(row["value"])
            except ValueError:
                log.warning("Skipping unreadable preference %r", row["key"])

        self.loaded = True
        log.info(
            "Watch state loaded: %d history records (%d skipped), %d logged titles",
            len(self._history), skipped, len(self._episodes),
        )

    # ── Write-through ─────────────────────────────────────────────────

    def _execute(self, sql: str, params: tuple) -> None:
        conn = get_connection(self.path)
        try:
            conn.execute(sql, params)
            conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Write to {self.path} failed: {exc}") from exc
        finally:
            conn.close()

    def _write_history(self, record: HistoryRecord) -> None:
        self._execute(
            """
            INSERT INTO history (media_id, snapshot, timestamp)
            VALUES (?, ?, ?)
            ON CONFLICT(media_id) DO UPDATE SET
                snapshot  = excluded.snapshot,
                timestamp = excluded.timestamp
            """,
            (record.key, json.dumps(record.snapshot.to_dict(), ensure_ascii=False), record.timestamp),
        )

    def _write_episode(self, identifier: str, progress: EpisodeProgress) -> None:
        self._execute(
            """
            INSERT INTO episode_log (identifier, episode, position, duration, timestamp)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(identifier, episode) DO UPDATE SET
                position  = excluded.position,
                duration  = excluded.duration,
                timestamp = excluded.timestamp
            """,
            (identifier, progress.episode, progress.position, progress.duration, progress.timestamp),
        )

    def _write_preference(self, key: str, value: Any) -> None:
        self._execute(
            """
            INSERT INTO preferences (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, json.dumps(value)),
        )


def _row_to_record(row: sqlite3.Row) -> HistoryRecord:
    key = row["media_id"]
    try:
        raw = json.loads(row["snapshot"])
        entries = normalize(raw, SourceKind.HISTORY_SNAPSHOT)
        media_id = int(key)
    except (ValueError, TypeError, MalformedResponse) as exc:
        raise StoreCorrupted(key, str(exc)) from exc
    return HistoryRecord(media_id=media_id, snapshot=entries[0], timestamp=row["timestamp"] or 0.0)
