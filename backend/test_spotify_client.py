"""
Tests for the Spotify catalog client against the in-process fake API.
"""
import httpx
import pytest

from conftest import make_artist, make_track
from errors import InvalidResponse, RequestFailed
from spotify_client import SpotifyClient


class TestSearch:
    """Test track search and decoding."""

    async def test_decodes_tracks(self, client, fake_spotify):
        fake_spotify.search_handler = lambda q, limit: [make_track("t1", name="Blue")]

        tracks = await client.search_tracks("genre:jazz", limit=5)

        assert [t.name for t in tracks] == ["Blue"]
        request = fake_spotify.requests[-1]
        assert request.headers["Authorization"] == "Bearer user-token"
        assert request.url.params["type"] == "track"

    async def test_limit_is_clamped(self, client, fake_spotify):
        await client.search_tracks("rock", limit=0)
        await client.search_tracks("rock", limit=500)

        limits = [r.url.params["limit"] for r in fake_spotify.requests]
        assert limits == ["1", "50"]

    async def test_null_items_skipped(self, client, fake_spotify):
        fake_spotify.search_handler = lambda q, limit: [None, make_track("t1")]
        assert [t.id for t in await client.search_tracks("rock")] == ["t1"]

    async def test_error_status(self, client, fake_spotify):
        fake_spotify.search_status = 429

        with pytest.raises(RequestFailed) as exc_info:
            await client.search_tracks("rock")

        assert exc_info.value.status_code == 429

    async def test_undecodable_body(self, logged_in_auth):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>"))
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = SpotifyClient(logged_in_auth, http_client)
            with pytest.raises(InvalidResponse):
                await client.search_tracks("rock")

    async def test_transport_error(self, logged_in_auth):
        def fail(request):
            raise httpx.ConnectError("boom", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(fail)) as http_client:
            client = SpotifyClient(logged_in_auth, http_client)
            with pytest.raises(RequestFailed) as exc_info:
                await client.search_tracks("rock")

        assert exc_info.value.status_code is None


class TestListeningHistory:
    """Test top items and artist lookups."""

    async def test_top_artists_prime_cache(self, client, fake_spotify):
        fake_spotify.top_artists = [make_artist("a1", "Nina", ["jazz", "soul"])]

        assert await client.get_top_artists() == ["a1"]
        assert await client.get_artist_genres("a1") == ["jazz", "soul"]
        assert "/v1/artists/a1" not in fake_spotify.paths()

    async def test_artist_lookup_cached(self, client, fake_spotify):
        fake_spotify.artists["a2"] = make_artist("a2", "Miles", ["jazz"])

        assert await client.get_artist_name("a2") == "Miles"
        assert await client.get_artist_genres("a2") == ["jazz"]
        assert fake_spotify.paths().count("/v1/artists/a2") == 1

    async def test_unknown_artist(self, client):
        with pytest.raises(RequestFailed):
            await client.get_artist("missing")

    async def test_top_tracks_time_range(self, client, fake_spotify):
        fake_spotify.top_tracks = [make_track("t1"), make_track("t2")]

        tracks = await client.get_top_tracks(limit=1, time_range="short_term")

        assert [t.id for t in tracks] == ["t1"]
        assert fake_spotify.requests[-1].url.params["time_range"] == "short_term"


class TestPopularTracks:
    """Test the search-based popular-track fallback."""

    async def test_recommendations_need_seeds(self, client):
        with pytest.raises(ValueError):
            await client.get_recommendations()
        with pytest.raises(ValueError):
            await client.get_recommendations(seed_genres=["a", "b", "c", "d", "e", "f"])

    async def test_tries_looser_queries(self, client, fake_spotify):
        def handler(query, limit):
            return [make_track("hit")] if query == "jazz popular" else []
        fake_spotify.search_handler = handler

        tracks = await client.get_popular_tracks_by_genre("jazz", limit=5)

        assert [t.id for t in tracks] == ["hit"]
        assert fake_spotify.search_queries() == [
            "genre:jazz year:2023-2024",
            "genre:jazz year:2022-2023",
            "jazz popular",
        ]

    async def test_no_results_raises(self, client, fake_spotify):
        fake_spotify.search_handler = lambda q, limit: []
        with pytest.raises(RequestFailed):
            await client.get_popular_tracks_by_genre("jazz")

    async def test_mixed_skips_failing_genres(self, client, fake_spotify):
        def handler(query, limit):
            return [] if "metal" in query else [make_track(f"{query}-{i}") for i in range(limit)]
        fake_spotify.search_handler = handler

        tracks = await client.get_mixed_popular_tracks(["pop", "metal"], limit=10)

        assert len(tracks) == 5
        assert all("pop" in t.id for t in tracks)
