"""Contract every streaming provider implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from anideck.database.models import EpisodeStreamDescriptor


@dataclass(frozen=True)
class Candidate:
    """One search hit in a provider's own catalog."""
    id: str
    title: str
    format: Optional[str] = None
    total_episodes: Optional[int] = None
    year: Optional[int] = None


class StreamProvider(ABC):
    """A third-party site that can search titles and serve episode streams.

    Implementations may raise any exception on timeouts or garbage
    responses; the resolver treats all of them as "no match here".
    """

    name: str = "provider"

    @abstractmethod
    async def search(self, title: str) -> List[Candidate]:
        """Return candidates for *title*, best guess first."""

    @abstractmethod
    async def get_episode_stream(
        self, candidate_id: str, episode: int
    ) -> Optional[EpisodeStreamDescriptor]:
        """Return the stream for *episode* of *candidate_id*, or ``None``."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
