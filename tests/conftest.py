"""Test configuration and fixtures"""

import json
import socket
import tempfile
from pathlib import Path

import pytest

from track_analyzer.core.config import AnalysisConfig, ApiConfig, AuthConfig
from track_analyzer.core.session_store import MemorySessionStore

TRACK_ID = "4uLU6hMCjMI75M1A2tKUQC"


class FakeResponse:
    """Stand-in for aiohttp.ClientResponse: status and text() only."""

    def __init__(self, status=200, body=""):
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)

    async def text(self):
        return self._body


class _RequestContext:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Stand-in for aiohttp.ClientSession.

    routes maps a URL to a FakeResponse, an exception to raise, or a list
    of those consumed in order. Every request is recorded.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requests = []
        self.closed = False

    def get(self, url, headers=None, **kwargs):
        self.requests.append({"method": "GET", "url": url, "headers": headers or {}, **kwargs})
        return _RequestContext(self._outcome(url))

    def post(self, url, data=None, headers=None, **kwargs):
        self.requests.append(
            {"method": "POST", "url": url, "data": data, "headers": headers or {}, **kwargs}
        )
        return _RequestContext(self._outcome(url))

    def _outcome(self, url):
        if url not in self.routes:
            return FakeResponse(404, {"error": {"status": 404, "message": "no route"}})
        outcome = self.routes[url]
        if isinstance(outcome, list):
            return outcome.pop(0)
        return outcome

    async def close(self):
        self.closed = True


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def track_id():
    return TRACK_ID


@pytest.fixture
def auth_config():
    """OAuth settings pointing at a fake accounts host"""
    return AuthConfig(
        client_id="test-client-id",
        redirect_uri="http://127.0.0.1:8888/callback",
        scope="user-read-private",
        authorize_url="https://accounts.example.com/authorize",
        token_url="https://accounts.example.com/api/token",
    )


@pytest.fixture
def api_config():
    """Web API settings pointing at a fake API host"""
    return ApiConfig(
        base_url="https://api.example.com/v1",
        features_base_url="https://api.example.com/v1",
        features_path="/audio-features/{id}",
        features_headers={},
        web_url="https://open.example.com",
        timeout=5.0,
    )


@pytest.fixture
def analysis_config():
    return AnalysisConfig()


@pytest.fixture
def memory_store():
    return MemorySessionStore()


@pytest.fixture
def sample_track_payload():
    """Track metadata as returned by GET /tracks/{id}"""
    return {
        "id": TRACK_ID,
        "name": "Test Song",
        "artists": [
            {"id": "artist_1", "name": "Test Artist"},
            {"id": "artist_2", "name": "Featured Artist"},
        ],
        "album": {
            "id": "album_1",
            "name": "Test Album",
            "release_date": "2023-01-01",
            "images": [
                {"url": "https://img.example.com/small.jpg", "width": 64, "height": 64},
                {"url": "https://img.example.com/large.jpg", "width": 640, "height": 640},
                {"url": "https://img.example.com/medium.jpg", "width": 300, "height": 300},
            ],
        },
        "duration_ms": 210000,  # 3:30
        "explicit": False,
        "popularity": 75,
        "preview_url": "https://p.example.com/preview.mp3",
    }


@pytest.fixture
def sample_features_payload():
    """Audio features as returned by GET /audio-features/{id}"""
    return {
        "id": TRACK_ID,
        "key": 2,
        "mode": 1,
        "tempo": 120.5,
        "time_signature": 4,
        "loudness": -5.3,
        "energy": 0.85,
        "danceability": 0.65,
        "valence": 0.3,
        "acousticness": 0.1,
        "instrumentalness": 0.0,
        "liveness": 0.12,
        "speechiness": 0.04,
    }


@pytest.fixture
def free_port():
    """A TCP port that was free a moment ago on 127.0.0.1"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
