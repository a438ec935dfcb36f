"""
Shared fixtures: an in-process fake of the Spotify Web API served through
httpx.MockTransport, plus pre-wired auth/client/engine objects.
"""
import asyncio
import random
import urllib.parse
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx
import pytest

from database import Preferences
from models import MusicFilter, SeenTracks, TokenRecord, Track
from recommendation_engine import RecommendationEngine
from spotify_auth import SpotifyAuthManager
from spotify_client import SpotifyClient
from token_store import TokenStore


def make_track(track_id: str, name: str = "Song", artist: str = "Artist") -> dict:
    """A Spotify track object as returned by the Web API."""
    return {
        "id": track_id,
        "name": name,
        "artists": [{"id": f"artist-{artist}", "name": artist}],
        "album": {
            "id": f"album-{track_id}",
            "name": f"Album {track_id}",
            "images": [{"url": f"https://img.example/{track_id}.jpg", "height": 640, "width": 640}],
        },
        "duration_ms": 180000,
        "preview_url": f"https://p.scdn.example/{track_id}.mp3",
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


def make_artist(artist_id: str, name: str, genres: Optional[list[str]] = None) -> dict:
    return {"id": artist_id, "name": name, "genres": genres or []}


class FakeClock:
    """Settable clock passed to the auth manager."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeSpotify:
    """
    Minimal Spotify: token endpoint, search, top items, artists and /me.

    Tests tweak the public attributes to script responses.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        # grant_type -> status code; anything but 200 returns an error body
        self.token_status: dict[str, int] = {}
        self.token_expires_in = 3600
        self.rotate_refresh_token = True
        self.search_status = 200
        # query -> status, for failing individual searches
        self.failing_queries: dict[str, int] = {}
        self.search_handler: Optional[Callable[[str, int], list[dict]]] = None
        self.top_artists: list[dict] = []
        self.top_tracks: list[dict] = []
        self.top_status = 200
        self.artists: dict[str, dict] = {}
        self.me_status = 200
        self._token_counter = 0

    # -- request log helpers ------------------------------------------------

    def token_requests(self, grant_type: Optional[str] = None) -> list[dict]:
        forms = [
            _form(r) for r in self.requests
            if r.url.host == "accounts.spotify.com"
        ]
        if grant_type is None:
            return forms
        return [f for f in forms if f.get("grant_type") == grant_type]

    def search_queries(self) -> list[str]:
        return [
            r.url.params["q"] for r in self.requests
            if r.url.path == "/v1/search"
        ]

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    # -- transport ----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "accounts.spotify.com":
            return self._token(request)

        path = request.url.path
        if path == "/v1/search":
            return self._search(request)
        if path == "/v1/me/top/artists":
            return self._top(request, self.top_artists)
        if path == "/v1/me/top/tracks":
            return self._top(request, self.top_tracks)
        if path == "/v1/me":
            if self.me_status != 200:
                return httpx.Response(self.me_status, json={"error": "nope"})
            return httpx.Response(200, json={"id": "user-1", "display_name": "Test User"})
        if path.startswith("/v1/artists/"):
            artist = self.artists.get(path.rsplit("/", 1)[-1])
            if artist is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=artist)

        return httpx.Response(404, json={"error": "unknown endpoint"})

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = _form(request)
        grant_type = form.get("grant_type", "")
        status = self.token_status.get(grant_type, 200)
        if status != 200:
            return httpx.Response(status, json={"error": "invalid_grant"})

        self._token_counter += 1
        payload = {
            "access_token": f"{grant_type}-token-{self._token_counter}",
            "token_type": "Bearer",
            "expires_in": self.token_expires_in,
        }
        if grant_type == "authorization_code" or (
            grant_type == "refresh_token" and self.rotate_refresh_token
        ):
            payload["refresh_token"] = f"refresh-{self._token_counter}"
        return httpx.Response(200, json=payload)

    def _search(self, request: httpx.Request) -> httpx.Response:
        query = request.url.params["q"]
        limit = int(request.url.params["limit"])

        status = self.failing_queries.get(query, self.search_status)
        if status != 200:
            return httpx.Response(status, json={"error": "search failed"})

        if self.search_handler is not None:
            items = self.search_handler(query, limit)
        else:
            items = [make_track(f"{query}#{i}", name=f"{query} {i}") for i in range(limit)]
        return httpx.Response(200, json={"tracks": {"items": items}})

    def _top(self, request: httpx.Request, items: list[dict]) -> httpx.Response:
        if self.top_status != 200:
            return httpx.Response(self.top_status, json={"error": "top failed"})
        limit = int(request.url.params.get("limit", 20))
        return httpx.Response(200, json={"items": items[:limit]})


def _form(request: httpx.Request) -> dict:
    return {
        k: v[0] for k, v in urllib.parse.parse_qs(request.content.decode()).items()
    }


class FakeEngine:
    """
    Scripted stand-in for RecommendationEngine used by the session and API
    tests. Each call takes the next batch up front; `gate` can then hold the
    call open.
    """

    def __init__(self, batches: Optional[list] = None, popular: Optional[list[Track]] = None):
        self.batches = list(batches or [])
        self.calls: list[MusicFilter] = []
        self.gate: Optional[asyncio.Event] = None
        self.client = _FakePopularClient(popular or [])

    async def get_recommendations(self, limit, music_filter, seen: SeenTracks):
        self.calls.append(music_filter)
        batch = self.batches.pop(0) if self.batches else []
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(batch, Exception):
            raise batch
        return seen.claim(batch)[:limit]


class _FakePopularClient:
    def __init__(self, tracks: list[Track]):
        self.tracks = tracks
        self.calls = 0

    async def get_mixed_popular_tracks(self, genres, limit=20):
        self.calls += 1
        return list(self.tracks[:limit])


def tracks(prefix: str, count: int) -> list[Track]:
    return [Track.from_spotify(make_track(f"{prefix}{i}")) for i in range(count)]


# =========================================================================
# FIXTURES
# =========================================================================

@pytest.fixture
def fake_spotify() -> FakeSpotify:
    return FakeSpotify()


@pytest.fixture
async def http_client(fake_spotify):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_spotify.handler))
    yield client
    await client.aclose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def preferences(tmp_path) -> Preferences:
    return Preferences(str(tmp_path / "test.db"))


@pytest.fixture
def token_store(preferences) -> TokenStore:
    return TokenStore(preferences)


@pytest.fixture
def make_auth(token_store, http_client, clock):
    """Factory so tests can seed the token store before construction."""
    def _make(**overrides) -> SpotifyAuthManager:
        options = dict(
            client_id="test-client",
            client_secret="test-secret",
            redirect_uri="soundswipe://callback",
            clock=clock,
        )
        options.update(overrides)
        return SpotifyAuthManager(token_store, http_client, **options)
    return _make


@pytest.fixture
def auth(make_auth) -> SpotifyAuthManager:
    return make_auth()


@pytest.fixture
def logged_in_auth(token_store, make_auth, clock) -> SpotifyAuthManager:
    token_store.set(TokenRecord(
        access_token="user-token",
        refresh_token="user-refresh",
        expires_at=clock.now + timedelta(hours=1),
    ))
    return make_auth()


@pytest.fixture
def client(logged_in_auth, http_client) -> SpotifyClient:
    return SpotifyClient(logged_in_auth, http_client, rng=random.Random(0))


@pytest.fixture
def engine(client) -> RecommendationEngine:
    return RecommendationEngine(client, rng=random.Random(0))
