"""
Strategy 4: keywords mined from the user's recent top-track titles, searched
as free text. Only used when the New or Popular toggle is on.
"""
from models import MusicFilter, Track
from spotify_client import SpotifyClient
from .base import extract_keywords, new_release_years, search_many, year_clause

TOP_TRACK_POOL = 5
KEYWORD_COUNT = 3


async def trending_tracks(
    client: SpotifyClient,
    music_filter: MusicFilter,
    limit: int,
) -> list[Track]:
    top_tracks = await client.get_top_tracks(limit=TOP_TRACK_POOL, time_range="short_term")
    keywords = extract_keywords((t.name for t in top_tracks), count=KEYWORD_COUNT)

    if music_filter.include_new:
        years = year_clause(*new_release_years(music_filter))
    else:
        years = year_clause(*music_filter.year_range)

    queries = [f"{keyword} {years}" for keyword in keywords]
    return await search_many(client, queries, limit=max(limit // KEYWORD_COUNT, 1))
