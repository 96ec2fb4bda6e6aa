import logging
from typing import Any, Dict, List, Optional

import requests

from fulltrack.domain.entities import Source, Track
from fulltrack.domain.errors import BackendError, BackendUnavailable, MalformedResponse, StreamUnavailable
from fulltrack.domain.ports import MusicBackend
from fulltrack.crosscutting.config import DEFAULT_BACKEND_URL, DEFAULT_TIMEOUT, normalize_backend_url
from fulltrack.crosscutting.logging import log_with_fields

logger = logging.getLogger(__name__)


class HttpBackend(MusicBackend):
    """Client for the aggregation backend's ``/search`` and ``/stream`` endpoints.

    The backend owns every provider credential; this client only ever sees
    provider URLs it was given and proxied URLs the backend hands back.
    """

    def __init__(self,
                 base_url: str = DEFAULT_BACKEND_URL,
                 timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        """Initialize backend client.

        Args:
            base_url: Backend base URL, e.g. ``http://localhost:8000``
            timeout: Per-request timeout in seconds
            session: Optional pre-configured session (tests inject a mock here)
        """
        self.base_url = normalize_backend_url(base_url)
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault('Accept', 'application/json')

    def _get_json(self, path: str, params: Dict[str, str]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise BackendUnavailable(f"GET {path} failed: {e}") from e

        if response.status_code >= 500:
            raise BackendUnavailable(f"GET {path} returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise BackendError(response.status_code, f"GET {path} rejected")

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse(f"GET {path} returned invalid JSON: {e}") from e

    def search(self, query: str, allow_metadata_only: bool = False) -> List[Track]:
        """Search all providers through the backend.

        Args:
            query: Free-text query, sent as-is
            allow_metadata_only: Forwarded to the backend; never enforced here

        Returns:
            Tracks in backend order; empty when the payload has no ``results``
        """
        data = self._get_json('/search', {
            'q': query,
            'allow_metadata_only': 'true' if allow_metadata_only else 'false',
        })
        if not isinstance(data, dict):
            raise MalformedResponse(f"Search response must be an object, got {type(data).__name__}")

        raw_results = data.get('results')
        if raw_results is None:
            return []
        if not isinstance(raw_results, list):
            raise MalformedResponse(f"'results' must be a list, got {type(raw_results).__name__}")

        tracks = []
        for position, raw in enumerate(raw_results):
            if not isinstance(raw, dict):
                log_with_fields(logger, 'WARNING', 'Skipping non-object search result',
                                position=position, value_type=type(raw).__name__)
                continue
            track = Track.from_json(raw)
            if raw.get('best_source_index') is not None and track.best_source_index is None:
                log_with_fields(logger, 'WARNING', 'Dropped invalid best_source_index',
                                position=position, title=track.title,
                                best_source_index=repr(raw.get('best_source_index')),
                                source_count=len(track.sources))
            tracks.append(track)

        logger.debug(f"Search for {query!r} returned {len(tracks)} tracks")
        return tracks

    def resolve_stream(self, source: Source) -> str:
        """Ask the backend to proxy the source's media URL.

        Raises:
            StreamUnavailable: when the response carries no usable ``proxied_url``
        """
        data = self._get_json('/stream', {
            'url': source.playback_url,
            'provider': source.provider_name,
        })
        if not isinstance(data, dict):
            raise MalformedResponse(f"Stream response must be an object, got {type(data).__name__}")

        proxied_url = data.get('proxied_url')
        if not isinstance(proxied_url, str) or not proxied_url:
            raise StreamUnavailable(f"No proxied_url for {source.provider_name} source")
        return proxied_url

    def close(self) -> None:
        self._session.close()
