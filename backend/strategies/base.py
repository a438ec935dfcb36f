"""
Shared helpers for the candidate strategies: query builders, keyword mining
and a fan-out search that tolerates individual query failures.
"""
import asyncio
import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from config import STOP_WORDS
from errors import SpotifyError
from models import MusicFilter, Track
from spotify_client import SpotifyClient

logger = logging.getLogger(__name__)


@dataclass
class StrategyResult:
    """Outcome of one strategy: its tracks, or the error that stopped it."""
    name: str
    tracks: list[Track] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def year_clause(lower: int, upper: int) -> str:
    return f"year:{lower}-{upper}"


def new_release_years(music_filter: MusicFilter) -> tuple[int, int]:
    """Last slice of the range: the final two years (or one, if that is all)."""
    lower, upper = music_filter.year_range
    return max(upper - 1, lower), upper


def classic_years(music_filter: MusicFilter) -> tuple[int, int]:
    """Opening decade of the range."""
    lower, upper = music_filter.year_range
    return lower, min(lower + 10, upper)


def genre_queries(genre: str, music_filter: MusicFilter) -> list[str]:
    """
    1-3 search queries for a genre, gated by the New/Classics/Popular
    toggles. With no toggle set, one plain genre + full-range query.
    """
    lower, upper = music_filter.year_range
    queries = []

    if music_filter.include_new:
        queries.append(f'genre:"{genre}" {year_clause(*new_release_years(music_filter))}')

    if music_filter.include_classics:
        queries.append(f'genre:"{genre}" {year_clause(*classic_years(music_filter))}')

    if music_filter.include_popular:
        queries.append(f"{genre} popular {year_clause(lower, upper)}")

    if not queries:
        queries.append(f'genre:"{genre}" {year_clause(lower, upper)}')

    return queries


def extract_keywords(titles: Iterable[str], count: int = 3) -> list[str]:
    """
    Most frequent meaningful words across track titles.

    Words of 3 characters or fewer and stop words are dropped; ties keep
    first-seen order.
    """
    words = []
    for title in titles:
        for word in re.split(r"[^0-9a-z]+", title.lower()):
            if len(word) > 3 and word not in STOP_WORDS:
                words.append(word)

    return [word for word, _ in Counter(words).most_common(count)]


async def search_many(client: SpotifyClient, queries: list[str], limit: int) -> list[Track]:
    """
    Run searches concurrently and concatenate the results in query order.
    A failed query contributes nothing.
    """
    if not queries:
        return []

    results = await asyncio.gather(
        *[client.search_tracks(q, limit=limit) for q in queries],
        return_exceptions=True,
    )

    tracks: list[Track] = []
    for query, result in zip(queries, results):
        if isinstance(result, SpotifyError):
            logger.debug("Search %r failed: %s", query, result)
            continue
        if isinstance(result, BaseException):
            raise result
        logger.debug("Search %r returned %d tracks", query, len(result))
        tracks.extend(result)

    return tracks
