from __future__ import annotations

from anideck.core.constants import StatusBadge
from anideck.database.models import EmbeddedListEntry, ListEntry, NextAiring
from anideck.utils.helpers import (
    available_episodes,
    display_title,
    normalize_title,
    parsed_format,
    parsed_season_year,
    status_badge,
)

from conftest import make_entity


def test_normalize_title() -> None:
    assert normalize_title("Kaguya-sama: Love is War") == "kaguya sama love is war"
    assert normalize_title("Pokémon (Dub)") == "pokemon"
    assert normalize_title("Fate/Zero & More") == "fate zero and more"
    assert normalize_title("Attack on Titan Season 2") == "attack on titan season 2"
    assert normalize_title("") == ""


def test_available_episodes() -> None:
    assert available_episodes(make_entity(total_episodes=12)) == 12
    assert available_episodes(make_entity(total_episodes=24, next_airing=NextAiring(episode=5))) == 4
    assert available_episodes(make_entity()) is None


def test_status_badges() -> None:
    airing = make_entity(status="RELEASING", next_airing=NextAiring(episode=6))
    assert status_badge(ListEntry(media_id=1, progress=3, bucket="CURRENT", media=airing)) is StatusBadge.BEHIND
    assert status_badge(ListEntry(media_id=1, progress=5, bucket="CURRENT", media=airing)) is StatusBadge.RELEASING
    assert status_badge(ListEntry(media_id=1, progress=0, bucket="PLANNING", media=airing)) is StatusBadge.RELEASING

    upcoming = make_entity(status="NOT_YET_RELEASED")
    assert status_badge(ListEntry(media_id=2, media=upcoming)) is StatusBadge.NOT_YET_RELEASED

    finished = make_entity(status="FINISHED", total_episodes=12, list_entry=EmbeddedListEntry(status="REPEATING", progress=12))
    assert status_badge(ListEntry(media_id=3, media=finished)) is None


def test_display_helpers() -> None:
    media = make_entity(romaji="Shingeki no Kyojin", english="Attack on Titan", season_year=2013)
    assert display_title(media) == "Attack on Titan"
    assert display_title(media, "romaji") == "Shingeki no Kyojin"
    assert display_title(make_entity(7, romaji=None)) == "#7"
    assert parsed_format("TV_SHORT") == "TV Short"
    assert parsed_format("NEW_THING") == "New thing"
    assert parsed_format(None) == "?"
    assert parsed_season_year(media) == "2013"
    assert parsed_season_year(make_entity()) == "?"
