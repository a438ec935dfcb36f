"""
Strategy 3: tracks from the filter's genres, or from the genres of the
user's top artists when none are selected.
"""
import logging

from config import MAX_GENRES
from errors import SpotifyError
from models import MusicFilter, Track
from spotify_client import SpotifyClient
from .base import genre_queries, search_many

logger = logging.getLogger(__name__)

TOP_ARTIST_POOL = 5


async def user_genres(client: SpotifyClient) -> list[str]:
    """Union of the top artists' genre tags (artist lookups are cached)."""
    artist_ids = await client.get_top_artists(limit=TOP_ARTIST_POOL)

    genres: list[str] = []
    for artist_id in artist_ids:
        try:
            genres.extend(await client.get_artist_genres(artist_id))
        except SpotifyError as e:
            logger.debug("Genre lookup failed for %s: %s", artist_id, e)

    return list(dict.fromkeys(genres))


async def genre_tracks(
    client: SpotifyClient,
    music_filter: MusicFilter,
    limit: int,
) -> list[Track]:
    if music_filter.selected_genres:
        genres = list(music_filter.selected_genres)
        logger.info("Using filtered genres: %s", ", ".join(genres))
    else:
        genres = await user_genres(client)
        logger.info("User's favorite genres: %s", ", ".join(genres))

    genres = genres[:MAX_GENRES]
    if not genres:
        return []

    queries = []
    for genre in genres:
        queries.extend(genre_queries(genre, music_filter))

    # genre_queries yields the same number of queries for every genre
    per_query = max(limit // len(queries), 1)
    return await search_many(client, queries, limit=per_query)
