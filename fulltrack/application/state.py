from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

from fulltrack.domain.entities import Track


class Status(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    POPULATED = 'populated'


@dataclass(frozen=True)
class AppState:
    """Snapshot of everything the root view renders.

    Snapshots are never mutated; ``AppStore.dispatch`` produces a new one.
    """

    results: Tuple[Track, ...] = field(default_factory=tuple)
    loading: bool = False
    allow_metadata_only: bool = False
    query: Optional[str] = None
    # True once a search has produced a response, until a later one fails
    completed: bool = False

    @property
    def status(self) -> Status:
        if self.loading:
            return Status.LOADING
        if self.completed:
            return Status.POPULATED
        return Status.IDLE

    @property
    def show_empty_notice(self) -> bool:
        return not self.loading and not self.results


@dataclass(frozen=True)
class SearchStarted:
    query: str


@dataclass(frozen=True)
class SearchSucceeded:
    results: Tuple[Track, ...]


@dataclass(frozen=True)
class SearchFailed:
    reason: str = ''


@dataclass(frozen=True)
class SearchFinished:
    """Always dispatched after a search, whatever its outcome."""


@dataclass(frozen=True)
class MetadataOnlyToggled:
    enabled: bool


Action = Union[SearchStarted, SearchSucceeded, SearchFailed, SearchFinished, MetadataOnlyToggled]


def reduce(state: AppState, action: Action) -> AppState:
    """Return the state that follows ``state`` after ``action``. Pure."""
    if isinstance(action, SearchStarted):
        # Previous results stay visible until the response lands
        return replace(state, loading=True, query=action.query)
    if isinstance(action, SearchSucceeded):
        return replace(state, results=tuple(action.results), completed=True)
    if isinstance(action, SearchFailed):
        return replace(state, results=(), completed=False)
    if isinstance(action, SearchFinished):
        return replace(state, loading=False)
    if isinstance(action, MetadataOnlyToggled):
        return replace(state, allow_metadata_only=bool(action.enabled))
    raise TypeError(f"Unknown action: {action!r}")


Listener = Callable[[AppState], None]


class AppStore:
    """Owner of the application state with a single update entry point."""

    def __init__(self, initial: Optional[AppState] = None):
        self._state = initial or AppState()
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> AppState:
        return self._state

    def dispatch(self, action: Action) -> AppState:
        """Apply ``action`` and notify listeners with the new snapshot."""
        with self._lock:
            self._state = reduce(self._state, action)
            snapshot = self._state
            listeners = list(self._listeners)
        for listener in listeners:
            listener(snapshot)
        return snapshot

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe
