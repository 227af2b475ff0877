"""Custom exception hierarchy for anideck."""

from __future__ import annotations

from typing import Sequence


class AniDeckError(Exception):
    """Base exception for all anideck errors."""


# ── Configuration ──────────────────────────────────────────────────────
class ConfigError(AniDeckError):
    """Raised when the config file is missing, invalid, or unreadable."""


class ConfigValidationError(ConfigError):
    """Raised when a config value fails validation."""


# ── Network / Catalog ──────────────────────────────────────────────────
class NetworkError(AniDeckError):
    """Raised on HTTP/DNS failures."""


class CatalogError(AniDeckError):
    """Raised when the catalog answers with a GraphQL error payload."""


class MalformedResponse(AniDeckError):
    """Raised when a payload lacks its identity field."""


# ── Providers / Resolution ─────────────────────────────────────────────
class ProviderUnavailable(AniDeckError):
    """Raised when one streaming provider cannot serve a request."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class NoSourceFound(AniDeckError):
    """Raised when every provider was exhausted without a playable stream."""

    def __init__(self, media_id: int, episode: int, attempted: Sequence[str] = ()) -> None:
        super().__init__(
            f"No source found for media {media_id} episode {episode} "
            f"(tried: {', '.join(attempted) or 'none'})"
        )
        self.media_id = media_id
        self.episode = episode
        self.attempted = tuple(attempted)


class ResolutionCancelled(AniDeckError):
    """Raised when a resolution is aborted before it settles."""


# ── Watch-state store ──────────────────────────────────────────────────
class StoreError(AniDeckError):
    """Raised on watch-state store failures."""


class StoreCorrupted(StoreError):
    """Raised when a single persisted record cannot be read."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Unreadable record {key!r}: {reason}")
        self.key = key
