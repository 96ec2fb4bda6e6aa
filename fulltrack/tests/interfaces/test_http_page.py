import json
from unittest.mock import Mock, patch

import pytest

from fulltrack.crosscutting.config import Settings
from fulltrack.domain.entities import Track
from fulltrack.domain.errors import BackendUnavailable, StreamUnavailable
from fulltrack.interfaces.http import HTTPServer, create_app, parse_flag


class TestHTTPServer:
    """Tests for the web page."""

    def setup_method(self):
        """Set up test fixtures."""
        self.backend = Mock()
        self.backend.search.return_value = []
        self.backend.resolve_stream.return_value = 'http://backend.test/proxy/1'
        self.settings = Settings(backend_url='http://backend.test', timeout=5, max_workers=2)
        self.server = HTTPServer(settings=self.settings, backend=self.backend)
        self.client = self.server.app.test_client()

    def teardown_method(self):
        """Clean up test fixtures."""
        self.server.executor.shutdown(wait=True)

    def test_health_check(self):
        """Test health check endpoint."""
        response = self.client.get('/health')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'healthy'
        assert data['version'] == '0.1.0'
        assert data['backend_url'] == 'http://backend.test'
        assert data['timeout'] == 5
        assert data['max_workers'] == 2
        assert data['log_level'] == 'INFO'
        assert data['log_format'] == 'json'
        assert 'timestamp' in data

    def test_health_check_reports_settings_summary(self):
        """Test that the health payload carries the full settings summary."""
        data = json.loads(self.client.get('/health').data)

        for key, value in self.settings.summary().items():
            assert data[key] == value

    def test_close_releases_executor_and_backend(self):
        """Test that closing the server shuts the pool and closes the backend."""
        self.server.close()

        self.backend.close.assert_called_once_with()
        with pytest.raises(RuntimeError):
            self.server.executor.submit(print)

    @patch('fulltrack.interfaces.http.Flask.run')
    def test_run_closes_on_exit(self, mock_run):
        """Test that run releases resources when the Flask loop returns."""
        self.server.run()

        mock_run.assert_called_once_with(host='localhost', port=5173, debug=False)
        self.backend.close.assert_called_once_with()

    def test_index_without_query_shows_empty_notice(self):
        """Test the page before any search."""
        response = self.client.get('/')

        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'Full-Track Music Player' in body
        assert 'Search for music from Jamendo, SoundCloud, Audiomack, and Internet Archive.' in body
        self.backend.search.assert_not_called()

    def test_index_short_query_is_ignored(self):
        """Test that one-character queries never reach the backend."""
        response = self.client.get('/?q=a')

        assert response.status_code == 200
        self.backend.search.assert_not_called()

    def test_index_renders_playable_card(self, jamendo_payload):
        """Test rendering of a card with a resolved stream."""
        self.backend.search.return_value = [Track.from_json(jamendo_payload)]

        response = self.client.get('/?q=moon')

        body = response.get_data(as_text=True)
        assert 'Moonlight Drive' in body
        assert 'Source: Jamendo' in body
        assert 'License: CC-BY' in body
        assert 'Download allowed' in body
        assert '<source src="http://backend.test/proxy/1" type="audio/mpeg">' in body
        self.backend.search.assert_called_once_with('moon', allow_metadata_only=False)

    def test_index_renders_metadata_only_card(self, metadata_only_payload):
        """Test rendering of a card without a best source."""
        self.backend.search.return_value = [Track.from_json(metadata_only_payload)]

        body = self.client.get('/?q=moon').get_data(as_text=True)

        assert 'Moon River' in body
        assert 'Unknown artist' in body
        assert 'No full stream available; showing metadata only.' in body
        assert '<audio' not in body
        self.backend.resolve_stream.assert_not_called()

    def test_index_forwards_metadata_only_checkbox(self):
        """Test that the checkbox is forwarded and stays checked."""
        body = self.client.get('/?q=moon&allow_metadata_only=true').get_data(as_text=True)

        self.backend.search.assert_called_once_with('moon', allow_metadata_only=True)
        assert 'checked' in body

    def test_backend_failure_renders_empty_page(self):
        """Test that a backend outage renders the empty state."""
        self.backend.search.side_effect = BackendUnavailable('refused')

        response = self.client.get('/?q=moon')

        assert response.status_code == 200
        assert 'Search for music from' in response.get_data(as_text=True)

    def test_api_search(self, jamendo_payload, metadata_only_payload):
        """Test the JSON search endpoint."""
        self.backend.search.return_value = [
            Track.from_json(jamendo_payload), Track.from_json(metadata_only_payload),
        ]

        response = self.client.get('/api/search?q=moon')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['status'] == 'populated'
        assert data['loading'] is False
        assert [r['status'] for r in data['results']] == ['playable', 'no_source']
        assert data['results'][0]['audio_url'] == 'http://backend.test/proxy/1'
        assert data['results'][1]['audio_url'] is None

    def test_api_search_stream_failure(self, jamendo_payload):
        """Test that a failed stream shows metadata only."""
        self.backend.search.return_value = [Track.from_json(jamendo_payload)]
        self.backend.resolve_stream.side_effect = StreamUnavailable('none')

        data = json.loads(self.client.get('/api/search?q=moon').data)

        assert data['results'][0]['status'] == 'metadata_only'
        assert data['results'][0]['audio_url'] is None

    def test_html_is_escaped(self):
        """Test that backend text is HTML-escaped."""
        self.backend.search.return_value = [Track(title='<script>alert(1)</script>')]

        body = self.client.get('/?q=moon').get_data(as_text=True)

        assert '<script>alert(1)</script>' not in body
        assert '&lt;script&gt;' in body


@pytest.mark.parametrize('value,expected', [
    (None, False), ('', False), ('false', False), ('0', False),
    ('true', True), ('on', True), ('1', True), ('TRUE', True),
])
def test_parse_flag(value, expected):
    """Test query-string flag parsing."""
    assert parse_flag(value) is expected


def test_create_app_uses_given_backend():
    """Test create_app wiring."""
    backend = Mock()
    backend.search.return_value = []
    app = create_app(settings=Settings(max_workers=1), backend=backend)

    app.test_client().get('/?q=moon')

    backend.search.assert_called_once_with('moon', allow_metadata_only=False)
