"""
Strategy 2: "sounds like" free-text searches around the artists of the
user's top tracks. Spotify has no similar-track endpoint, so these
heuristic phrasings stand in for one.
"""
from models import MusicFilter, Track
from spotify_client import SpotifyClient
from .base import search_many, year_clause

TOP_TRACK_POOL = 10
ARTISTS_SEARCHED = 3
TRACKS_PER_QUERY = 3


def similar_artist_queries(artist_name: str, music_filter: MusicFilter) -> list[str]:
    queries = [
        f"{artist_name} similar",
        f"like {artist_name}",
        f"{artist_name} style",
    ]
    if not music_filter.has_default_years:
        years = year_clause(*music_filter.year_range)
        queries = [f"{q} {years}" for q in queries]
    return queries


async def similar_artist_tracks(
    client: SpotifyClient,
    music_filter: MusicFilter,
    limit: int,
) -> list[Track]:
    top_tracks = await client.get_top_tracks(limit=TOP_TRACK_POOL)

    # Distinct lead artists, in chart order
    artist_names = list(dict.fromkeys(t.artists[0] for t in top_tracks if t.artists))

    queries = []
    for name in artist_names[:ARTISTS_SEARCHED]:
        queries.extend(similar_artist_queries(name, music_filter))

    return await search_many(client, queries, limit=min(TRACKS_PER_QUERY, max(limit, 1)))
