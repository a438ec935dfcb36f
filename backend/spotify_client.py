"""
Spotify API client for catalog and listening-history data.
Every call asks the auth manager for the best available token first.
"""
import logging
import random
from typing import Optional

import httpx

from config import HTTP_TIMEOUT, SPOTIFY_API_BASE
from errors import InvalidResponse, RequestFailed
from models import Artist, Track
from spotify_auth import SpotifyAuthManager

logger = logging.getLogger(__name__)

# Spotify search accepts 1..50 results per page
MAX_SEARCH_LIMIT = 50


class SpotifyClient:
    """Thin typed wrapper for Spotify Web API calls."""

    def __init__(
        self,
        auth: SpotifyAuthManager,
        http_client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
    ):
        self.auth = auth
        self._client = http_client
        self._rng = rng or random.Random()
        # artist id -> Artist, kept for the process lifetime
        self._artist_cache: dict[str, Artist] = {}

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(self, endpoint: str, params: Optional[dict] = None) -> dict:
        """Make authenticated GET request to Spotify API."""
        token = await self.auth.active_token()
        client = await self._get_client()

        try:
            response = await client.get(
                f"{SPOTIFY_API_BASE}{endpoint}",
                headers={"Authorization": f"Bearer {token}"},
                params=params or {},
            )
        except httpx.HTTPError as e:
            raise RequestFailed(detail=f"{endpoint}: {e}") from e

        if response.status_code != 200:
            logger.debug("GET %s -> %s: %s", endpoint, response.status_code, response.text[:200])
            raise RequestFailed(response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponse(f"Undecodable body from {endpoint}") from e
        if not isinstance(data, dict):
            raise InvalidResponse(f"Unexpected body from {endpoint}")
        return data

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search_tracks(self, query: str, limit: int = 20) -> list[Track]:
        """Search tracks with Spotify's field syntax (artist:, genre:, year:)."""
        data = await self._get("/search", {
            "q": query,
            "type": "track",
            "limit": max(1, min(limit, MAX_SEARCH_LIMIT)),
        })
        items = (data.get("tracks") or {}).get("items")
        return _decode_tracks(items)

    # =========================================================================
    # USER LISTENING HISTORY
    # =========================================================================

    async def get_top_artists(self, limit: int = 5, time_range: str = "medium_term") -> list[str]:
        """
        Fetch the ids of the user's top artists.

        time_range options:
        - short_term: ~4 weeks
        - medium_term: ~6 months
        - long_term: several years
        """
        data = await self._get("/me/top/artists", {
            "time_range": time_range,
            "limit": limit,
        })
        items = data.get("items")
        if not isinstance(items, list):
            raise InvalidResponse("Top artists without items")

        ids = []
        for item in items:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            ids.append(item["id"])
            # Top-artist objects carry full artist details; prime the cache
            if item.get("name") and item["id"] not in self._artist_cache:
                self._artist_cache[item["id"]] = Artist.from_spotify(item)
        return ids

    async def get_top_tracks(self, limit: int = 20, time_range: str = "medium_term") -> list[Track]:
        """Fetch user's top tracks for a given time range."""
        data = await self._get("/me/top/tracks", {
            "time_range": time_range,
            "limit": limit,
        })
        return _decode_tracks(data.get("items"))

    async def get_current_user(self) -> dict:
        return await self._get("/me")

    # =========================================================================
    # ARTIST METADATA
    # =========================================================================

    async def get_artist(self, artist_id: str) -> Artist:
        """Fetch single artist details, cached per id."""
        cached = self._artist_cache.get(artist_id)
        if cached is not None:
            return cached

        artist = Artist.from_spotify(await self._get(f"/artists/{artist_id}"))
        # setdefault keeps whichever concurrent fetch landed first
        return self._artist_cache.setdefault(artist_id, artist)

    async def get_artist_name(self, artist_id: str) -> str:
        return (await self.get_artist(artist_id)).name

    async def get_artist_genres(self, artist_id: str) -> list[str]:
        return list((await self.get_artist(artist_id)).genres)

    # =========================================================================
    # RECOMMENDATIONS
    # =========================================================================

    async def get_recommendations(
        self,
        seed_tracks: Optional[list[str]] = None,
        seed_artists: Optional[list[str]] = None,
        seed_genres: Optional[list[str]] = None,
        limit: int = 20,
        market: str = "US",
    ) -> list[Track]:
        """
        Get track recommendations from up to 5 seeds in total.
        May be restricted for new apps.
        """
        seed_tracks = seed_tracks or []
        seed_artists = seed_artists or []
        seed_genres = seed_genres or []

        seed_count = len(seed_tracks) + len(seed_artists) + len(seed_genres)
        if seed_count == 0:
            raise ValueError("At least one seed is required for recommendations")
        if seed_count > 5:
            raise ValueError("Spotify accepts at most 5 seeds")

        params = {"limit": limit, "market": market}
        if seed_tracks:
            params["seed_tracks"] = ",".join(seed_tracks)
        if seed_artists:
            params["seed_artists"] = ",".join(seed_artists)
        if seed_genres:
            params["seed_genres"] = ",".join(seed_genres)

        data = await self._get("/recommendations", params)
        return _decode_tracks(data.get("tracks"))

    async def get_available_genre_seeds(self) -> list[str]:
        data = await self._get("/recommendations/available-genre-seeds")
        return list(data.get("genres") or [])

    # =========================================================================
    # POPULAR TRACKS (search-based stand-in for recommendations)
    # =========================================================================

    async def get_popular_tracks_by_genre(self, genre: str, limit: int = 20) -> list[Track]:
        """Try progressively looser genre queries until one returns tracks."""
        queries = [
            f"genre:{genre} year:2023-2024",
            f"genre:{genre} year:2022-2023",
            f"{genre} popular",
            f"{genre} top",
        ]

        for query in queries:
            try:
                tracks = await self.search_tracks(query, limit=limit)
            except (RequestFailed, InvalidResponse) as e:
                logger.debug("Search failed for query %r: %s", query, e)
                continue
            if tracks:
                return tracks

        raise RequestFailed(detail=f"no popular tracks for genre {genre!r}")

    async def get_mixed_popular_tracks(self, genres: list[str], limit: int = 20) -> list[Track]:
        """Popular tracks across several genres, shuffled together."""
        if not genres:
            return []

        tracks_per_genre = max(1, limit // len(genres))
        all_tracks: list[Track] = []

        for genre in genres:
            try:
                all_tracks.extend(await self.get_popular_tracks_by_genre(genre, tracks_per_genre))
            except RequestFailed as e:
                logger.warning("Failed to get tracks for genre %r: %s", genre, e)

        self._rng.shuffle(all_tracks)
        return all_tracks[:limit]


def _decode_tracks(items) -> list[Track]:
    if not isinstance(items, list):
        raise InvalidResponse("Expected a list of tracks")
    # Local files and unavailable tracks come back as null entries
    return [Track.from_spotify(item) for item in items if item]
