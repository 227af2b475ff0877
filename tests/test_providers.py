from __future__ import annotations

import httpx
import pytest

from anideck.core.exceptions import NetworkError
from anideck.services.providers import ConsumetProvider, GogoanimeProvider, build_providers
from anideck.utils.http_client import HttpClient

from conftest import run

SEARCH_HTML = """
<html><body>
<ul class="items">
  <li>
    <div class="img"><a href="/category/sousou-no-frieren"><img src="x.jpg"></a></div>
    <p class="name"><a href="/category/sousou-no-frieren" title="Sousou no Frieren">Sousou no Frieren</a></p>
    <p class="released">Released: 2023</p>
  </li>
  <li>
    <p class="name"><a href="/category/sousou-no-frieren-dub" title="Sousou no Frieren (Dub)">Sousou no Frieren (Dub)</a></p>
    <p class="released">Released: 2023</p>
  </li>
  <li><p class="name"></p></li>
</ul>
</body></html>
"""

EPISODE_HTML = """
<html><body>
<div class="anime_muti_link"><ul>
  <li class="anime"><a href="#" data-video="//embed.test/streaming.php?id=abc">Gogo server</a></li>
  <li class="streamwish"><a href="#" data-video="https://wish.test/e/xyz">Streamwish</a></li>
  <li class="doodstream"><a href="#">no video</a></li>
</ul></div>
</body></html>
"""


def _http(handler) -> HttpClient:
    return HttpClient(transport=httpx.MockTransport(handler))


def test_gogoanime_search_parses_items() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/search.html"
        assert request.url.params["keyword"] == "Frieren"
        return httpx.Response(200, text=SEARCH_HTML)

    hits = run(GogoanimeProvider("https://gogo.test/", _http(handler)).search("Frieren"))

    assert [(h.id, h.title, h.year) for h in hits] == [
        ("sousou-no-frieren", "Sousou no Frieren", 2023),
        ("sousou-no-frieren-dub", "Sousou no Frieren (Dub)", 2023),
    ]


def test_gogoanime_episode_lists_embed_servers() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/sousou-no-frieren-episode-3"
        return httpx.Response(200, text=EPISODE_HTML)

    desc = run(GogoanimeProvider("https://gogo.test", _http(handler)).get_episode_stream("sousou-no-frieren", 3))

    assert desc.provider == "gogoanime-html"
    assert desc.episode == 3
    assert [(s.quality, s.url) for s in desc.sources] == [
        ("anime", "https://embed.test/streaming.php?id=abc"),
        ("streamwish", "https://wish.test/e/xyz"),
    ]
    assert desc.headers["Referer"] == "https://gogo.test/"


def test_gogoanime_missing_episode_page() -> None:
    provider = GogoanimeProvider("https://gogo.test", _http(lambda r: httpx.Response(404)))
    with pytest.raises(NetworkError):
        run(provider.get_episode_stream("nope", 1))

    empty = GogoanimeProvider("https://gogo.test", _http(lambda r: httpx.Response(200, text="<html></html>")))
    assert run(empty.get_episode_stream("nope", 1)) is None


def test_consumet_search_info_and_watch() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/anime/animepahe/Sousou%20no%20Frieren" or path == "/anime/animepahe/Sousou no Frieren":
            return httpx.Response(200, json={"results": [
                {"id": "frieren-123", "title": "Sousou no Frieren", "type": "TV", "totalEpisodes": 28, "releaseDate": "Fall 2023"},
                {"title": "no id"},
            ]})
        if path == "/anime/animepahe/info":
            assert request.url.params["id"] == "frieren-123"
            return httpx.Response(200, json={"episodes": [
                {"id": "ep-1", "number": 1},
                {"id": "ep-2", "number": "2"},
            ]})
        if path == "/anime/animepahe/watch":
            assert request.url.params["episodeId"] == "ep-2"
            return httpx.Response(200, json={
                "headers": {"Referer": "https://kwik.test/"},
                "sources": [{"url": "https://cdn.test/720.m3u8", "quality": "720p", "isM3U8": True}],
                "subtitles": [{"url": "https://cdn.test/en.vtt", "lang": "English"}],
            })
        return httpx.Response(404)

    provider = ConsumetProvider("animepahe", "https://consumet.test/", _http(handler))

    [hit] = run(provider.search("Sousou no Frieren"))
    assert (hit.id, hit.format, hit.total_episodes, hit.year) == ("frieren-123", "TV", 28, 2023)

    desc = run(provider.get_episode_stream("frieren-123", 2))
    assert desc.provider == "animepahe"
    assert desc.best_source().url == "https://cdn.test/720.m3u8"
    assert desc.sources[0].is_m3u8
    assert desc.subtitles[0].lang == "English"
    assert desc.headers == {"Referer": "https://kwik.test/"}

    assert run(provider.get_episode_stream("frieren-123", 5)) is None


def test_build_providers_follows_configured_rank(cfg) -> None:
    cfg["providers"]["order"] = ["zoro", "gogoanime-html", "animepahe"]
    providers = build_providers(cfg, _http(lambda r: httpx.Response(404)))
    assert [p.name for p in providers] == ["zoro", "gogoanime-html", "animepahe"]
    assert isinstance(providers[1], GogoanimeProvider)
