"""Remote catalog (AniList GraphQL) client and the normalizing service on top.

:class:`CatalogClient` only speaks GraphQL and returns raw ``data``
payloads.  :class:`CatalogService` feeds them through the normalizer,
keeps the shared :class:`MediaIndex` and guards full-detail fetches so
the same media id is never requested twice concurrently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from anideck.core.constants import (
    ANILIST_API_URL,
    FEED_PAGE_SIZE,
    ListBucket,
    SourceKind,
)
from anideck.core.exceptions import CatalogError
from anideck.core.logging_setup import get_logger
from anideck.database.models import AnimeEntity, ListEntry, MediaIndex
from anideck.services.normalizer import normalize
from anideck.utils.concurrency import SingleFlight
from anideck.utils.http_client import HttpClient

log = get_logger("catalog")


# ── GraphQL documents ─────────────────────────────────────────────────

MEDIA_FIELDS = """
    id
    type
    title { romaji english native }
    format
    status
    episodes
    nextAiringEpisode { episode airingAt timeUntilAiring }
    coverImage { large medium color }
    bannerImage
    genres
    description
    season
    seasonYear
    meanScore
    isAdult
    synonyms
    trailer { id site }
    mediaListEntry { id status progress }
"""

RELATION_FIELDS = """
    relations {
      edges {
        relationType
        node { %s }
      }
    }
    recommendations(sort: RATING_DESC, perPage: 25) {
      nodes {
        mediaRecommendation { %s }
      }
    }
""" % (MEDIA_FIELDS, MEDIA_FIELDS)

GQL_VIEWER_ID = "query { Viewer { id } }"

GQL_VIEWER_INFO = """
query ($userId: Int) {
  User(id: $userId) { id name avatar { large medium } bannerImage }
}
"""

GQL_VIEWER_LIST = """
query ($userId: Int, $status: MediaListStatus) {
  MediaListCollection(userId: $userId, type: ANIME, status: $status, sort: UPDATED_TIME_DESC) {
    lists {
      entries {
        id
        mediaId
        progress
        status
        media { %s }
      }
    }
  }
}
""" % MEDIA_FIELDS

GQL_FEED = """
query ($page: Int, $perPage: Int, $sort: [MediaSort], $status: MediaStatus) {
  Page(page: $page, perPage: $perPage) {
    media(type: ANIME, sort: $sort, status: $status, isAdult: false) { %s }
  }
}
""" % MEDIA_FIELDS

GQL_AIRING_SCHEDULE = """
query ($page: Int, $perPage: Int, $from: Int, $to: Int) {
  Page(page: $page, perPage: $perPage) {
    airingSchedules(airingAt_greater: $from, airingAt_lesser: $to, sort: TIME) {
      episode
      airingAt
      timeUntilAiring
      media { %s }
    }
  }
}
""" % MEDIA_FIELDS

GQL_ANIME_INFO = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    %s
    %s
  }
}
""" % (MEDIA_FIELDS, RELATION_FIELDS)

GQL_SEARCH = """
query ($search: String, $page: Int, $perPage: Int) {
  Page(page: $page, perPage: $perPage) {
    media(search: $search, type: ANIME, sort: SEARCH_MATCH) { %s }
  }
}
""" % MEDIA_FIELDS


# ═══════════════════════════════════════════════════════════════════════
# Raw client
# ═══════════════════════════════════════════════════════════════════════

class CatalogClient:
    """GraphQL transport.  Every method returns the raw ``data`` mapping."""

    def __init__(
        self,
        http: HttpClient,
        *,
        api_url: str = ANILIST_API_URL,
        token: Optional[str] = None,
    ) -> None:
        self._http = http
        self._api_url = api_url
        self._token = token

    @property
    def authenticated(self) -> bool:
        return bool(self._token)

    async def query(self, document: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        payload = await self._http.post_json(
            self._api_url,
            json={"query": document, "variables": variables or {}},
            headers=headers,
        )
        if not isinstance(payload, dict):
            raise CatalogError(f"Unexpected catalog payload: {type(payload).__name__}")
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(e.get("message", e)) for e in errors if isinstance(e, dict))
            raise CatalogError(messages or str(errors))
        return payload.get("data") or {}

    async def viewer_id(self) -> Dict[str, Any]:
        return await self.query(GQL_VIEWER_ID)

    async def viewer_info(self, viewer_id: int) -> Dict[str, Any]:
        return await self.query(GQL_VIEWER_INFO, {"userId": viewer_id})

    async def viewer_list(self, viewer_id: int, bucket: ListBucket | str) -> Dict[str, Any]:
        return await self.query(
            GQL_VIEWER_LIST,
            {"userId": viewer_id, "status": ListBucket(bucket).value},
        )

    async def feed(self, sort: str, *, status: Optional[str] = None, page: int = 1) -> Dict[str, Any]:
        variables: Dict[str, Any] = {"page": page, "perPage": FEED_PAGE_SIZE, "sort": [sort]}
        if status:
            variables["status"] = status
        return await self.query(GQL_FEED, variables)

    async def airing_schedule(self, start: int, end: int, *, page: int = 1) -> Dict[str, Any]:
        return await self.query(
            GQL_AIRING_SCHEDULE,
            {"page": page, "perPage": FEED_PAGE_SIZE, "from": start, "to": end},
        )

    async def anime_info(self, media_id: int) -> Dict[str, Any]:
        return await self.query(GQL_ANIME_INFO, {"id": media_id})

    async def search(self, title: str, *, page: int = 1) -> Dict[str, Any]:
        return await self.query(
            GQL_SEARCH, {"search": title, "page": page, "perPage": FEED_PAGE_SIZE}
        )


# ═══════════════════════════════════════════════════════════════════════
# Normalizing service
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Viewer:
    id: int
    name: Optional[str] = None
    avatar: Optional[str] = None
    banner: Optional[str] = None


@dataclass
class FullAnime:
    """One title with its related and recommended titles resolved."""
    media: AnimeEntity
    related: List[ListEntry] = field(default_factory=list)
    recommended: List[ListEntry] = field(default_factory=list)


class CatalogService:
    def __init__(self, client: CatalogClient, index: Optional[MediaIndex] = None) -> None:
        self.client = client
        self.index = index if index is not None else MediaIndex()
        self._details = SingleFlight()

    @property
    def authenticated(self) -> bool:
        return self.client.authenticated

    async def viewer_id(self) -> int:
        data = await self.client.viewer_id()
        viewer = data.get("Viewer") or {}
        if viewer.get("id") is None:
            raise CatalogError("Viewer query returned no id")
        return int(viewer["id"])

    async def viewer_info(self, viewer_id: int) -> Viewer:
        data = await self.client.viewer_info(viewer_id)
        user = data.get("User") or {}
        avatar = user.get("avatar") or {}
        return Viewer(
            id=int(user.get("id") or viewer_id),
            name=user.get("name"),
            avatar=avatar.get("medium") or avatar.get("large"),
            banner=user.get("bannerImage"),
        )

    async def viewer_list(self, viewer_id: int, bucket: ListBucket | str) -> List[ListEntry]:
        data = await self.client.viewer_list(viewer_id, bucket)
        return self._entries(data, SourceKind.USER_LIST)

    async def trending(self) -> List[ListEntry]:
        return self._entries(await self.client.feed("TRENDING_DESC"), SourceKind.TRENDING)

    async def popular(self) -> List[ListEntry]:
        return self._entries(await self.client.feed("POPULARITY_DESC"), SourceKind.POPULAR)

    async def next_releases(self) -> List[ListEntry]:
        data = await self.client.feed("POPULARITY_DESC", status="NOT_YET_RELEASED")
        return self._entries(data, SourceKind.UPCOMING)

    async def airing_schedule(self, start: int, end: int) -> List[ListEntry]:
        data = await self.client.airing_schedule(start, end)
        return self._entries(data, SourceKind.AIRING_SCHEDULE)

    async def search(self, title: str) -> List[ListEntry]:
        return self._entries(await self.client.search(title), SourceKind.TRENDING)

    async def anime_info(self, media_id: int) -> FullAnime:
        """Full detail for *media_id*; concurrent calls share one request."""
        return await self._details.run(media_id, lambda: self._fetch_full(media_id))

    def is_fetching(self, media_id: int) -> bool:
        return self._details.in_flight(media_id)

    async def _fetch_full(self, media_id: int) -> FullAnime:
        log.debug("Fetching full detail for media %d", media_id)
        data = await self.client.anime_info(media_id)
        raw = data.get("Media") or {}
        media = normalize(raw, SourceKind.MEDIA, index=self.index)
        related = normalize(raw, SourceKind.RELATION_EDGES, index=self.index)
        recommended = normalize(raw, SourceKind.RECOMMENDATIONS, index=self.index)
        return FullAnime(media=media, related=related, recommended=recommended)

    def _entries(self, data: Dict[str, Any], kind: SourceKind) -> List[ListEntry]:
        return normalize(data, kind, index=self.index)
