"""Episode source resolution across ranked streaming providers.

Providers are tried one after another in rank order.  For each one the
title variants are searched until a variant yields candidates, the best
candidate is picked by title similarity plus format/episode-count
compatibility, and its episode stream is requested.  The first provider
that returns a stream wins; nobody below it is queried.

Every provider call runs under a per-step timeout and can be aborted
through an ``asyncio.Event``.  Provider errors never escape: they are
logged and the next provider is tried.  Only the exhausted case raises
:class:`NoSourceFound`.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, List, Optional, Sequence, TypeVar

from rapidfuzz import fuzz

from anideck.core.exceptions import NoSourceFound, ProviderUnavailable, ResolutionCancelled
from anideck.core.logging_setup import get_logger
from anideck.database.models import AnimeEntity, EpisodeStreamDescriptor
from anideck.services.providers.base import Candidate, StreamProvider
from anideck.utils.helpers import normalize_title

log = get_logger("resolver")

T = TypeVar("T")

# Bonus / penalty applied on top of the title similarity (0..1)
_FORMAT_MATCH = 0.05
_FORMAT_MISMATCH = -0.10
_EPISODES_MATCH = 0.05
_YEAR_MATCH = 0.05


# ═══════════════════════════════════════════════════════════════════════
# Candidate matching
# ═══════════════════════════════════════════════════════════════════════

def title_similarity(entity: AnimeEntity, candidate: Candidate) -> float:
    """Best normalized similarity (0..1) between any title variant and the candidate."""
    target = normalize_title(candidate.title)
    if not target:
        return 0.0
    best = 0.0
    for variant in entity.titles.variants():
        best = max(best, fuzz.ratio(normalize_title(variant), target) / 100.0)
    return best


def match_score(entity: AnimeEntity, candidate: Candidate, episode: int) -> Optional[float]:
    """Score of *candidate* for *episode* of *entity*, ``None`` if incompatible."""
    if candidate.total_episodes and episode > candidate.total_episodes:
        return None

    score = title_similarity(entity, candidate)
    if entity.format and candidate.format:
        score += _FORMAT_MATCH if entity.format == candidate.format else _FORMAT_MISMATCH
    if entity.total_episodes and candidate.total_episodes == entity.total_episodes:
        score += _EPISODES_MATCH
    if entity.season_year and candidate.year == entity.season_year:
        score += _YEAR_MATCH
    return score


def best_candidate(
    entity: AnimeEntity,
    candidates: Sequence[Candidate],
    episode: int,
    min_similarity: float,
) -> Optional[Candidate]:
    """Highest scoring candidate; equal scores keep the provider's own order."""
    best: Optional[Candidate] = None
    best_score = float("-inf")
    for candidate in candidates:
        if title_similarity(entity, candidate) < min_similarity:
            continue
        score = match_score(entity, candidate, episode)
        if score is None:
            continue
        if score > best_score:
            best, best_score = candidate, score
    return best


# ═══════════════════════════════════════════════════════════════════════
# Resolver
# ═══════════════════════════════════════════════════════════════════════

class Resolver:
    """Resolves ``(entity, episode)`` to a stream using a ranked provider list."""

    def __init__(
        self,
        providers: Sequence[StreamProvider],
        *,
        timeout: float = 20.0,
        min_similarity: float = 0.6,
    ) -> None:
        self.providers: List[StreamProvider] = list(providers)
        self.timeout = timeout
        self.min_similarity = min_similarity

    async def resolve(
        self,
        entity: AnimeEntity,
        episode: int,
        abort: Optional[asyncio.Event] = None,
    ) -> EpisodeStreamDescriptor:
        attempted: List[str] = []
        for provider in self.providers:
            _check_abort(abort, entity, episode)
            attempted.append(provider.name)
            try:
                descriptor = await self._try_provider(provider, entity, episode, abort)
            except ProviderUnavailable as exc:
                log.warning("Provider %s unavailable for media %d ep %d: %s",
                            provider.name, entity.id, episode, exc.reason)
                continue
            if descriptor is not None:
                _check_abort(abort, entity, episode)
                log.info("Resolved media %d ep %d via %s", entity.id, episode, provider.name)
                return descriptor
            log.debug("No match on %s for media %d ep %d", provider.name, entity.id, episode)

        log.info("No source for media %d ep %d after %s", entity.id, episode, attempted)
        raise NoSourceFound(entity.id, episode, attempted)

    async def _try_provider(
        self,
        provider: StreamProvider,
        entity: AnimeEntity,
        episode: int,
        abort: Optional[asyncio.Event],
    ) -> Optional[EpisodeStreamDescriptor]:
        candidates: List[Candidate] = []
        for title in entity.titles.variants():
            candidates = list(await self._step(provider, provider.search(title), abort) or [])
            if candidates:
                break
        if not candidates:
            return None

        match = best_candidate(entity, candidates, episode, self.min_similarity)
        if match is None:
            return None
        log.debug("%s: matched media %d to %r (%s)", provider.name, entity.id, match.title, match.id)
        return await self._step(provider, provider.get_episode_stream(match.id, episode), abort)

    async def _step(
        self,
        provider: StreamProvider,
        call: Awaitable[T],
        abort: Optional[asyncio.Event],
    ) -> T:
        """Run one provider call under the step timeout, racing the abort signal."""
        task = asyncio.ensure_future(call)
        waiters = {task}
        abort_wait: Optional[asyncio.Future] = None
        if abort is not None:
            abort_wait = asyncio.ensure_future(abort.wait())
            waiters.add(abort_wait)
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if abort_wait is not None:
                abort_wait.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            try:
                return task.result()
            except Exception as exc:
                raise ProviderUnavailable(provider.name, str(exc) or type(exc).__name__) from exc
        if abort is not None and abort.is_set():
            raise ResolutionCancelled(f"Resolution aborted during {provider.name}")
        raise ProviderUnavailable(provider.name, f"timed out after {self.timeout:g}s")


def _check_abort(abort: Optional[asyncio.Event], entity: AnimeEntity, episode: int) -> None:
    if abort is not None and abort.is_set():
        raise ResolutionCancelled(f"Resolution of media {entity.id} ep {episode} aborted")


# ═══════════════════════════════════════════════════════════════════════
# Per-request-site single flight
# ═══════════════════════════════════════════════════════════════════════

class ResolveSlot:
    """One resolution at a time for a single request site.

    Starting a new resolution aborts the one still running; the
    superseded call returns ``None`` instead of a result.  Separate slots
    never affect each other.

    Callers with work of their own before the resolution (a freshness
    refresh, say) claim the slot up front with :meth:`begin` and pass the
    returned event to :meth:`resolve`, then :meth:`release` it.
    """

    def __init__(self, resolver: Resolver) -> None:
        self._resolver = resolver
        self._abort: Optional[asyncio.Event] = None

    @property
    def busy(self) -> bool:
        return self._abort is not None

    def begin(self) -> asyncio.Event:
        """Abort the current holder and claim the slot."""
        self.cancel()
        abort = asyncio.Event()
        self._abort = abort
        return abort

    def release(self, abort: asyncio.Event) -> None:
        if self._abort is abort:
            self._abort = None

    async def resolve(
        self,
        entity: AnimeEntity,
        episode: int,
        abort: Optional[asyncio.Event] = None,
    ) -> Optional[EpisodeStreamDescriptor]:
        if abort is None:
            abort = self.begin()
        if abort.is_set():
            return None
        try:
            result = await self._resolver.resolve(entity, episode, abort)
        except ResolutionCancelled:
            return None
        except NoSourceFound:
            if abort.is_set():
                return None
            raise
        finally:
            self.release(abort)
        if abort.is_set():
            return None
        return result

    def cancel(self) -> None:
        if self._abort is not None:
            self._abort.set()
