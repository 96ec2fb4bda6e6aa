from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text else None


@dataclass(frozen=True)
class Source:
    """One provider's copy of a track, as chosen and described by the backend."""

    provider_name: str
    stream_url: Optional[str] = None
    download_url: Optional[str] = None
    license: Optional[str] = None
    audiodownload_allowed: bool = False
    downloadable: bool = False

    @property
    def playback_url(self) -> str:
        """URL handed to the stream proxy: stream URL, else download URL, else empty."""
        return self.stream_url or self.download_url or ''

    @property
    def download_allowed(self) -> bool:
        return self.audiodownload_allowed or self.downloadable

    def to_json(self) -> Dict[str, Any]:
        """Serialize source to JSON."""
        return {
            'provider_name': self.provider_name,
            'stream_url': self.stream_url,
            'download_url': self.download_url,
            'license': self.license,
            'audiodownload_allowed': self.audiodownload_allowed,
            'downloadable': self.downloadable,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Source":
        """Deserialize source from a backend payload, tolerating missing keys."""
        return cls(
            provider_name=str(data.get('provider_name') or ''),
            stream_url=_optional_text(data.get('stream_url')),
            download_url=_optional_text(data.get('download_url')),
            license=_optional_text(data.get('license')),
            audiodownload_allowed=bool(data.get('audiodownload_allowed')),
            downloadable=bool(data.get('downloadable')),
        )


@dataclass(frozen=True)
class Track:
    """Search result aggregated by the backend across providers.

    ``best_source_index`` is either ``None`` (no playable source was found) or a
    valid index into ``sources``. Construction enforces this.
    """

    title: str = ""
    artist: Optional[str] = None
    cover_url: Optional[str] = None
    sources: Tuple[Source, ...] = field(default_factory=tuple)
    best_source_index: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.sources, tuple):
            object.__setattr__(self, 'sources', tuple(self.sources))
        if not is_valid_source_index(self.best_source_index, len(self.sources)):
            raise ValueError(
                f"best_source_index {self.best_source_index!r} is not a valid index "
                f"into {len(self.sources)} sources"
            )

    @property
    def best_source(self) -> Optional[Source]:
        if self.best_source_index is None:
            return None
        return self.sources[self.best_source_index]

    @property
    def is_playable(self) -> bool:
        return self.best_source is not None

    def to_json(self) -> Dict[str, Any]:
        """Serialize track to JSON."""
        return {
            'title': self.title,
            'artist': self.artist,
            'cover_url': self.cover_url,
            'sources': [source.to_json() for source in self.sources],
            'best_source_index': self.best_source_index,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Track":
        """Deserialize track from a backend payload.

        Entries of ``sources`` that are not objects are skipped. The index keeps
        pointing at the same entry it named in the payload; an index that names
        a skipped entry, or no entry at all, is normalised to ``None``.
        """
        raw_sources = data.get('sources')
        if not isinstance(raw_sources, list):
            raw_sources = []

        # raw position -> position in the decoded tuple
        positions: Dict[int, int] = {}
        decoded = []
        for raw_position, entry in enumerate(raw_sources):
            if isinstance(entry, dict):
                positions[raw_position] = len(decoded)
                decoded.append(Source.from_json(entry))
        sources = tuple(decoded)

        index = data.get('best_source_index')
        if index is not None:
            if is_valid_source_index(index, len(raw_sources)):
                index = positions.get(index)
            else:
                index = None

        return cls(
            title=str(data.get('title') or ''),
            artist=_optional_text(data.get('artist')),
            cover_url=_optional_text(data.get('cover_url')),
            sources=sources,
            best_source_index=index,
        )


def is_valid_source_index(index: Any, source_count: int) -> bool:
    """Return True when ``index`` is absent or points into a list of ``source_count`` sources."""
    if index is None:
        return True
    # bool is an int subclass; True/False are never meaningful indices
    if isinstance(index, bool) or not isinstance(index, int):
        return False
    return 0 <= index < source_count
