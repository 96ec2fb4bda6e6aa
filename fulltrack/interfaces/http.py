import os
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import Flask, request, jsonify, render_template_string

from fulltrack.application.search import SearchController
from fulltrack.application.search_bar import PLACEHOLDER
from fulltrack.application.state import AppState, AppStore, MetadataOnlyToggled
from fulltrack.application.track_card import TrackCard, mount_cards
from fulltrack.crosscutting.config import Settings, load_settings
from fulltrack.domain.ports import MusicBackend
from fulltrack.infrastructure.backend import HttpBackend

VERSION = "0.1.0"
TRUTHY = ('1', 'true', 'on', 'yes')

PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Full-Track Music Player</title>
  <style>
    body { font-family: system-ui, sans-serif; margin: 0; background: linear-gradient(#eef2ff, #fff 40%); color: #111827; }
    main { max-width: 56rem; margin: 0 auto; padding: 2rem 1rem; }
    form { display: flex; gap: .5rem; }
    input[type=text] { flex: 1; padding: .5rem 1rem; border: 1px solid #d1d5db; border-radius: .375rem; }
    button { background: #4f46e5; color: #fff; border: 0; border-radius: .375rem; padding: .5rem 1rem; }
    .card { display: flex; gap: 1rem; margin-top: 1rem; padding: 1rem; border: 1px solid #e5e7eb; border-radius: .75rem; background: #ffffffb3; }
    .cover { width: 4rem; height: 4rem; border-radius: .25rem; object-fit: cover; background: #e5e7eb; }
    .artist, .muted { color: #4b5563; font-size: .875rem; }
    .badge { display: inline-block; font-size: .75rem; padding: .25rem .5rem; margin: .5rem .25rem 0 0; border-radius: .25rem; }
    .badge-source { background: #dcfce7; color: #15803d; }
    .badge-license { background: #dbeafe; color: #1d4ed8; }
    .badge-download { background: #d1fae5; color: #047857; }
    .notice { margin-top: .75rem; font-size: .875rem; color: #b45309; background: #fffbeb; border-radius: .25rem; padding: .25rem .5rem; }
    audio { width: 100%; margin-top: .75rem; }
  </style>
</head>
<body>
<main>
  <h1>Full-Track Music Player</h1>
  <p class="muted">Aggregates only full, legally streamable sources. Previews are never auto-played.</p>
  <form method="get" action="/">
    <input type="text" name="q" value="{{ query or '' }}" placeholder="{{ placeholder }}">
    <button type="submit">Search</button>
    <label class="muted"><input type="checkbox" name="allow_metadata_only" value="true"{% if state.allow_metadata_only %} checked{% endif %}>
      Allow metadata-only playback (previews), off by default</label>
  </form>
  {% if state.loading %}<p class="muted">Searching…</p>{% endif %}
  {% if state.show_empty_notice %}<p class="muted">Search for music from Jamendo, SoundCloud, Audiomack, and Internet Archive.</p>{% endif %}
  {% for card in cards %}
  <div class="card" data-status="{{ card.status.value }}">
    {% if card.track.cover_url %}<img class="cover" src="{{ card.track.cover_url }}" alt="cover">{% else %}<div class="cover"></div>{% endif %}
    <div>
      <div><strong>{{ card.track.title }}</strong></div>
      <div class="artist">{{ card.artist_label }}</div>
      {% if card.best_source %}
      <div>
        <span class="badge badge-source">Source: {{ card.best_source.provider_name }}</span>
        {% if card.best_source.license %}<span class="badge badge-license">License: {{ card.best_source.license }}</span>{% endif %}
        {% if card.best_source.download_allowed %}<span class="badge badge-download">Download allowed</span>{% endif %}
      </div>
      {% endif %}
      {% if card.audio_url %}
      <audio controls><source src="{{ card.audio_url }}" type="audio/mpeg"></audio>
      {% else %}
      <div class="notice">{{ card.notice }}</div>
      {% endif %}
    </div>
  </div>
  {% endfor %}
</main>
</body>
</html>
"""


def parse_flag(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in TRUTHY


class HTTPServer:
    """Web page for FullTrack: search form, result cards and a health check."""

    def __init__(self, host: str = 'localhost', port: int = 5173, debug: bool = False,
                 settings: Optional[Settings] = None,
                 backend: Optional[MusicBackend] = None):
        """Initialize HTTP server."""
        self.host = host
        self.port = port
        self.debug = debug
        self.settings = settings or load_settings()
        self.backend = backend or HttpBackend(self.settings.backend_url, timeout=self.settings.timeout)
        self.executor = ThreadPoolExecutor(max_workers=self.settings.max_workers,
                                           thread_name_prefix='fulltrack-card')
        self.app = Flask(__name__)
        self.logger = logging.getLogger(__name__)

        self.version = VERSION
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    def _run_search(self, query: Optional[str], allow_metadata_only: bool):
        store = AppStore()
        store.dispatch(MetadataOnlyToggled(allow_metadata_only))
        controller = SearchController(self.backend, store)
        state = controller.submit(query)
        cards = mount_cards(state.results, self.backend, self.executor,
                            timeout=self.settings.timeout)
        return state, cards

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/', methods=['GET'])
        def index():
            """Search page."""
            query = request.args.get('q')
            allow_metadata_only = parse_flag(request.args.get('allow_metadata_only'))
            state, cards = self._run_search(query, allow_metadata_only)
            return render_template_string(
                PAGE_TEMPLATE,
                query=query,
                placeholder=PLACEHOLDER,
                state=state,
                cards=cards,
            )

        @self.app.route('/api/search', methods=['GET'])
        def api_search():
            """Same search as the page, as JSON."""
            query = request.args.get('q')
            allow_metadata_only = parse_flag(request.args.get('allow_metadata_only'))
            state, cards = self._run_search(query, allow_metadata_only)
            return jsonify(self._state_to_json(state, cards)), 200

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                **self.settings.summary(),
                'timestamp': datetime.now().isoformat()
            }), 200

    @staticmethod
    def _state_to_json(state: AppState, cards: List[TrackCard]) -> Dict[str, Any]:
        return {
            'status': state.status.value,
            'loading': state.loading,
            'query': state.query,
            'allow_metadata_only': state.allow_metadata_only,
            'results': [card.to_json() for card in cards],
        }

    def run(self) -> None:
        """Run the HTTP server."""
        self.logger.info(f"Starting FullTrack web page on {self.host}:{self.port} "
                         f"(backend {self.settings.backend_url})")
        try:
            self.app.run(
                host=self.host,
                port=self.port,
                debug=self.debug
            )
        finally:
            self.close()

    def close(self) -> None:
        """Stop the card worker pool and release the backend session."""
        self.executor.shutdown(wait=False)
        close_backend = getattr(self.backend, 'close', None)
        if close_backend is not None:
            close_backend()


def create_app(settings: Optional[Settings] = None,
               backend: Optional[MusicBackend] = None) -> Flask:
    """Create Flask app for testing."""
    server = HTTPServer(settings=settings, backend=backend)
    return server.app
