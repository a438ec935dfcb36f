"""
Strategy 1: tracks by the user's own top artists.
"""
import logging

from errors import SpotifyError
from models import MusicFilter, Track
from spotify_client import SpotifyClient
from .base import search_many, year_clause

logger = logging.getLogger(__name__)

TOP_ARTIST_POOL = 5
ARTISTS_SEARCHED = 3


async def top_artist_tracks(
    client: SpotifyClient,
    music_filter: MusicFilter,
    limit: int,
) -> list[Track]:
    """Search `artist:<name>` for the first few top artists."""
    artist_ids = await client.get_top_artists(limit=TOP_ARTIST_POOL)

    queries = []
    for artist_id in artist_ids[:ARTISTS_SEARCHED]:
        try:
            name = await client.get_artist_name(artist_id)
        except SpotifyError as e:
            logger.debug("Artist lookup failed for %s: %s", artist_id, e)
            continue

        query = f"artist:{name}"
        if not music_filter.has_default_years:
            query += f" {year_clause(*music_filter.year_range)}"
        queries.append(query)

    return await search_many(client, queries, limit=max(limit // ARTISTS_SEARCHED, 1))
