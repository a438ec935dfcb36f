"""
Strategy 5: direct genre search used instead of strategies 1-4 whenever the
filter differs from the defaults.
"""
from config import DEFAULT_GENRES
from models import MusicFilter, Track
from spotify_client import SpotifyClient
from .base import genre_queries, search_many

MIN_TRACKS_PER_QUERY = 3


async def filtered_search_tracks(
    client: SpotifyClient,
    music_filter: MusicFilter,
    limit: int,
) -> list[Track]:
    genres = list(music_filter.selected_genres) or list(DEFAULT_GENRES)

    queries = []
    for genre in genres:
        queries.extend(genre_queries(genre, music_filter))

    per_genre_queries = len(queries) // len(genres)
    per_query = max(limit // len(genres) // per_genre_queries, MIN_TRACKS_PER_QUERY)
    return await search_many(client, queries, limit=per_query)
