from __future__ import annotations

from typing import List, Protocol

from .entities import Source, Track


class MusicBackend(Protocol):
    """Port for the aggregation backend that searches providers and proxies streams.

    Implementations raise ``fulltrack.domain.errors.FullTrackError`` subclasses on
    failure and leave recovery to the caller.
    """

    def search(self, query: str, allow_metadata_only: bool = False) -> List[Track]:
        """Return tracks matching ``query`` across all providers, in backend order."""

    def resolve_stream(self, source: Source) -> str:
        """Return a backend-issued proxied URL for the given source."""
