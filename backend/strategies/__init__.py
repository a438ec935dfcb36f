"""
Candidate strategies for the SoundSwipe recommendation engine.

Each strategy turns the user's listening data (or the active filter) into a
handful of Spotify searches:
- top_artists: tracks by the user's top artists
- similar_artists: "sounds like" searches around top-track artists
- genres: filter genres, else the top artists' genres
- trending: keywords mined from recent top-track titles
- filtered: direct genre search when the filter is active
"""
from .base import StrategyResult, extract_keywords, genre_queries, search_many, year_clause
from .top_artists import top_artist_tracks
from .similar_artists import similar_artist_tracks
from .genres import genre_tracks
from .trending import trending_tracks
from .filtered import filtered_search_tracks

__all__ = [
    "StrategyResult",
    "extract_keywords",
    "genre_queries",
    "search_many",
    "year_clause",
    "top_artist_tracks",
    "similar_artist_tracks",
    "genre_tracks",
    "trending_tracks",
    "filtered_search_tracks",
]
