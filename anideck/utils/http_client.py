"""Async HTTP client shared by the catalog, the providers and the metadata fetch.

Wraps ``httpx.AsyncClient`` so every caller gets the same headers, timeout
and error translation.  Tests pass an ``httpx.MockTransport`` through
*transport*.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from anideck.core.constants import USER_AGENT
from anideck.core.exceptions import NetworkError
from anideck.core.logging_setup import get_logger

log = get_logger("http")

_DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
}


class HttpClient:
    """Thin wrapper around ``httpx.AsyncClient``.

    Usage::

        async with HttpClient() as client:
            data = await client.get_json("https://api.ani.zip/mappings?anilist_id=1")
    """

    def __init__(
        self,
        timeout: float = 15.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            headers={**_DEFAULT_HEADERS, **(headers or {})},
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    # ── Core verbs ────────────────────────────────────────────────────

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._send("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._send("POST", url, **kwargs)

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        return _json(await self.get(url, **kwargs))

    async def post_json(self, url: str, **kwargs: Any) -> Any:
        return _json(await self.post(url, **kwargs))

    # ── Helpers ───────────────────────────────────────────────────────

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NetworkError(
                f"{method} {url} returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc
        log.debug("%s %s → %d", method, url, resp.status_code)
        return resp

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise NetworkError(f"Invalid JSON from {resp.request.url}: {exc}") from exc
