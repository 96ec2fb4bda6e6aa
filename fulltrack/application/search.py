import logging
import uuid
from concurrent.futures import Executor, Future
from typing import Optional

from fulltrack.application.state import (
    AppState, AppStore, MetadataOnlyToggled, SearchFailed, SearchFinished,
    SearchStarted, SearchSucceeded,
)
from fulltrack.domain.errors import FullTrackError
from fulltrack.domain.ports import MusicBackend
from fulltrack.crosscutting.logging import CorrelationContext, log_error, log_with_fields

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2


def is_searchable(query: Optional[str]) -> bool:
    """Queries shorter than two characters after trimming are ignored."""
    return bool(query) and len(query.strip()) >= MIN_QUERY_LENGTH


class SearchController:
    """Runs searches against the backend and feeds the outcome into the store.

    Failures never escape: they leave an empty result list behind, exactly like
    a search that found nothing. Concurrent searches are not sequenced, so the
    last response to arrive wins.
    """

    def __init__(self, backend: MusicBackend,
                 store: Optional[AppStore] = None,
                 executor: Optional[Executor] = None):
        self.backend = backend
        self.store = store or AppStore()
        self.executor = executor

    @property
    def state(self) -> AppState:
        return self.store.state

    def set_allow_metadata_only(self, enabled: bool) -> AppState:
        return self.store.dispatch(MetadataOnlyToggled(enabled))

    def submit(self, query: Optional[str]) -> AppState:
        """Search for ``query`` and return the resulting snapshot.

        Too-short queries return the current snapshot without touching the store.
        """
        if not is_searchable(query):
            logger.debug(f"Ignoring short query {query!r}")
            return self.store.state

        allow_metadata_only = self.store.state.allow_metadata_only
        with CorrelationContext(search_id=uuid.uuid4().hex[:12]):
            self.store.dispatch(SearchStarted(query))
            try:
                tracks = self.backend.search(query, allow_metadata_only=allow_metadata_only)
            except FullTrackError as e:
                log_error(logger, 'Search failed; showing empty results', e,
                          level='WARNING', query=query)
                self.store.dispatch(SearchFailed(type(e).__name__))
            else:
                log_with_fields(logger, 'INFO', 'Search completed', query=query,
                                result_count=len(tracks),
                                allow_metadata_only=allow_metadata_only)
                self.store.dispatch(SearchSucceeded(tuple(tracks)))
            finally:
                self.store.dispatch(SearchFinished())
        return self.store.state

    def submit_async(self, query: Optional[str]) -> Optional[Future]:
        """Fire-and-forget variant of :meth:`submit`.

        Returns None, without scheduling anything, for queries that would be ignored.
        """
        if self.executor is None:
            raise RuntimeError("submit_async requires an executor")
        if not is_searchable(query):
            return None
        return self.executor.submit(self.submit, query)
