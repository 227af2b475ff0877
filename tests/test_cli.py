from __future__ import annotations

from pathlib import Path

import pytest

from anideck.cli.commands import _parse_value, main
from anideck.database.connection import db_path
from anideck.database.models import EpisodeProgress, HistoryRecord, ListEntry
from anideck.database.store import SqliteWatchStateStore

from conftest import make_entity


def test_parse_value() -> None:
    assert _parse_value("true") is True
    assert _parse_value("3") == 3
    assert _parse_value("romaji") == "romaji"


def test_prefs_set_then_get(data_dir: Path, capsys: pytest.CaptureFixture) -> None:
    assert main(["prefs", "title_language", '"romaji"']) == 0
    capsys.readouterr()

    assert main(["prefs", "title_language"]) == 0
    assert capsys.readouterr().out.splitlines()[-1] == '"romaji"'


def test_history_lists_newest_first(data_dir: Path, capsys: pytest.CaptureFixture) -> None:
    store = SqliteWatchStateStore(db_path(data_dir))
    store.load()
    for media_id, ts in ((1, 10.0), (2, 20.0)):
        entity = make_entity(media_id, romaji=f"Show {media_id}")
        store.put_history(HistoryRecord(media_id=media_id, snapshot=ListEntry(media_id=media_id, media=entity)))
        store.log_episode(media_id, EpisodeProgress(episode=1, timestamp=ts))

    assert main(["history"]) == 0
    lines = [line for line in capsys.readouterr().out.splitlines() if "Show" in line]
    assert [line.split()[-1] for line in lines] == ["2", "1"]


def test_unknown_section_is_rejected(data_dir: Path) -> None:
    with pytest.raises(SystemExit):
        main(["refresh", "favourites"])
