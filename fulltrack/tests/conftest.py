import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_backend_env():
    """Keep backend settings from the developer's shell out of the tests."""
    keys = ['FULLTRACK_BACKEND_URL', 'BACKEND_URL', 'VITE_BACKEND_URL', 'FULLTRACK_TIMEOUT',
            'FULLTRACK_MAX_WORKERS', 'FULLTRACK_LOG_LEVEL', 'FULLTRACK_LOG_FORMAT']
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture
def jamendo_payload():
    """A playable track as the backend returns it."""
    return {
        'title': 'Moonlight Drive',
        'artist': 'Night Owls',
        'cover_url': 'https://img.jamendo.com/albums/1/covers/1.200.jpg',
        'sources': [{
            'provider_name': 'Jamendo',
            'stream_url': 'https://mp3l.jamendo.com/?trackid=1&format=mp31',
            'download_url': 'https://mp3d.jamendo.com/download/track/1/mp32/',
            'license': 'CC-BY',
            'audiodownload_allowed': True,
        }],
        'best_source_index': 0,
    }


@pytest.fixture
def metadata_only_payload():
    """A track for which no provider offered a playable source."""
    return {
        'title': 'Moon River',
        'artist': None,
        'cover_url': None,
        'sources': [],
        'best_source_index': None,
    }
