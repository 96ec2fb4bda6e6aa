import logging
import threading
from concurrent.futures import Executor, Future, wait
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fulltrack.domain.entities import Source, Track
from fulltrack.domain.errors import FullTrackError
from fulltrack.domain.ports import MusicBackend
from fulltrack.crosscutting.logging import CorrelationContext, log_error

logger = logging.getLogger(__name__)

FALLBACK_NOTICE = 'No full stream available; showing metadata only.'
UNKNOWN_ARTIST = 'Unknown artist'


class CardStatus(str, Enum):
    NO_SOURCE = 'no_source'
    RESOLVING = 'resolving'
    PLAYABLE = 'playable'
    METADATA_ONLY = 'metadata_only'


class TrackCard:
    """View model for one search result.

    The card resolves a playable URL for the track's best source through the
    backend stream proxy. Every resolution is tagged with a generation number;
    a response is applied only if its generation is still the latest one, so a
    slow answer for a previous source can never overwrite a newer one.

    With an executor the card resolves in the background and ``mount`` /
    ``set_track`` return the pending ``Future``. Without one they resolve inline.
    """

    def __init__(self, track: Track, backend: MusicBackend,
                 executor: Optional[Executor] = None):
        self.backend = backend
        self.executor = executor
        self._track = track
        self._lock = threading.Lock()
        self._generation = 0
        self._audio_url: Optional[str] = None
        self._pending = False
        self._mounted = False

    @property
    def track(self) -> Track:
        return self._track

    @property
    def best_source(self) -> Optional[Source]:
        return self._track.best_source

    @property
    def audio_url(self) -> Optional[str]:
        return self._audio_url

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def status(self) -> CardStatus:
        with self._lock:
            if self.best_source is None:
                return CardStatus.NO_SOURCE
            if self._pending:
                return CardStatus.RESOLVING
            if self._audio_url:
                return CardStatus.PLAYABLE
            return CardStatus.METADATA_ONLY

    @property
    def artist_label(self) -> str:
        return self._track.artist or UNKNOWN_ARTIST

    @property
    def notice(self) -> Optional[str]:
        """Fallback text shown in place of the audio player, if any."""
        return None if self._audio_url else FALLBACK_NOTICE

    def badges(self) -> List[str]:
        best = self.best_source
        if best is None:
            return []
        labels = [f"Source: {best.provider_name}"]
        if best.license:
            labels.append(f"License: {best.license}")
        if best.download_allowed:
            labels.append('Download allowed')
        return labels

    def to_json(self) -> Dict[str, Any]:
        """Serialize the track together with what the card currently shows."""
        data = self._track.to_json()
        data.update({
            'status': self.status.value,
            'audio_url': self._audio_url,
            'badges': self.badges(),
        })
        return data

    def mount(self) -> Optional[Future]:
        """Start the first resolution. Calling it again is a no-op."""
        if self._mounted:
            return None
        self._mounted = True
        return self._request_resolution()

    def set_track(self, track: Track) -> Optional[Future]:
        """Swap the displayed track; re-resolves only when the best source changed."""
        previous = self.best_source
        self._track = track
        if not self._mounted:
            return None
        if track.best_source == previous:
            return None
        return self._request_resolution()

    def resolve_async(self) -> Optional[Future]:
        """Resolve the current best source again in the background.

        Starts a new generation, so any resolution still in flight is discarded
        when it completes. Returns ``None`` when the track has no best source.
        """
        if self.executor is None:
            raise RuntimeError('resolve_async requires an executor')
        self._mounted = True
        return self._request_resolution()

    def _begin(self) -> Optional[Tuple[int, Source]]:
        with self._lock:
            self._generation += 1
            self._audio_url = None
            source = self.best_source
            self._pending = source is not None
            if source is None:
                return None
            return self._generation, source

    def _request_resolution(self) -> Optional[Future]:
        job = self._begin()
        if job is None:
            return None
        generation, source = job
        if self.executor is None:
            self._resolve(generation, source)
            return None
        return self.executor.submit(self._resolve, generation, source)

    def _resolve(self, generation: int, source: Source) -> bool:
        url = None
        with CorrelationContext(provider=source.provider_name):
            try:
                url = self.backend.resolve_stream(source)
            except FullTrackError as e:
                log_error(logger, 'Stream resolution failed; falling back to metadata',
                          e, level='WARNING', title=self._track.title)
            finally:
                # other errors still propagate, but the card never stays resolving
                applied = self._complete(generation, url)
        return applied

    def _complete(self, generation: int, url: Optional[str]) -> bool:
        """Apply a resolution result if it belongs to the latest generation."""
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Discarding stale stream response (generation {generation}, "
                             f"current {self._generation})")
                return False
            self._audio_url = url
            self._pending = False
            return True


def mount_cards(tracks, backend: MusicBackend, executor: Optional[Executor] = None,
                timeout: Optional[float] = None) -> List[TrackCard]:
    """Create and mount one card per track, waiting for background resolutions.

    Cards still resolving after ``timeout`` seconds are returned as they are.
    Unexpected errors raised by background resolutions are logged.
    """
    cards = [TrackCard(track, backend, executor) for track in tracks]
    futures = [f for f in (card.mount() for card in cards) if f is not None]
    if futures:
        done, _ = wait(futures, timeout=timeout)
        for future in done:
            error = future.exception()
            if error is not None:
                log_error(logger, 'Stream resolution crashed', error)
    return cards
