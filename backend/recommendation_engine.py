"""
Recommendation Engine.

Spotify offers no usable "similar tracks" endpoint for new apps, so candidate
tracks are gathered by several independent search strategies and merged:

1. Top-artist tracks
2. Similar-artist phrasing searches
3. Genre tracks
4. Trending keywords (New/Popular toggles only)
5. Filtered direct search (replaces 1-4 when the filter is active)

Results are deduplicated against the session's seen tracks, shuffled so no
strategy dominates the top of the stack, and truncated. A failing strategy
only shrinks the batch.
"""
import asyncio
import logging
import random
from typing import Awaitable, Optional

from config import BATCH_SIZE, DEFAULT_GENRES
from errors import RecommendationError, SpotifyError
from models import MusicFilter, SeenTracks, Track
from spotify_client import SpotifyClient
from strategies import (
    StrategyResult,
    filtered_search_tracks,
    genre_tracks,
    similar_artist_tracks,
    top_artist_tracks,
    trending_tracks,
    year_clause,
)

logger = logging.getLogger(__name__)


class RecommendationEngine:
    """Fan out the strategies for one batch and finish the merged result."""

    def __init__(self, client: SpotifyClient, rng: Optional[random.Random] = None):
        self.client = client
        self.rng = rng or random.Random()

    async def get_recommendations(
        self,
        limit: int = BATCH_SIZE,
        music_filter: Optional[MusicFilter] = None,
        seen: Optional[SeenTracks] = None,
    ) -> list[Track]:
        """
        Produce up to `limit` unseen tracks.

        Raises RecommendationError only when the generic fallback could not
        reach Spotify at all.
        """
        music_filter = music_filter or MusicFilter()
        seen = seen if seen is not None else SeenTracks()

        if not self.client.auth.is_authenticated:
            logger.info("User not authenticated, falling back to generic recommendations")
            return await self.get_generic_recommendations(limit, music_filter, seen)

        if music_filter.is_active:
            logger.info(
                "Filter active - direct search mode (genres=%d, years=%s, popular=%s, new=%s, classics=%s)",
                len(music_filter.selected_genres),
                music_filter.year_range,
                music_filter.include_popular,
                music_filter.include_new,
                music_filter.include_classics,
            )
            plan = [
                ("filtered", filtered_search_tracks(self.client, music_filter, limit)),
            ]
        else:
            plan = [
                ("top_artists", top_artist_tracks(self.client, music_filter, limit // 2)),
                ("similar_artists", similar_artist_tracks(self.client, music_filter, limit // 3)),
                ("genres", genre_tracks(self.client, music_filter, limit // 3)),
            ]
            if music_filter.include_new or music_filter.include_popular:
                plan.append(
                    ("trending", trending_tracks(self.client, music_filter, limit // 4))
                )

        results = await self._run_strategies(plan)
        tracks = self._finish([t for r in results for t in r.tracks], limit, seen)
        if tracks:
            return tracks

        logger.warning("Personalized strategies returned nothing, using generic genres")
        return await self.get_generic_recommendations(limit, music_filter, seen)

    async def get_generic_recommendations(
        self,
        limit: int,
        music_filter: MusicFilter,
        seen: SeenTracks,
    ) -> list[Track]:
        """Plain genre + year searches over the filter's or the default genres."""
        genres = list(music_filter.selected_genres) or list(DEFAULT_GENRES)
        years = year_clause(*music_filter.year_range)
        queries = [f"genre:{genre} {years}" for genre in genres]
        per_genre = max(limit // len(genres), 1)

        results = await asyncio.gather(
            *[self.client.search_tracks(q, limit=per_genre) for q in queries],
            return_exceptions=True,
        )

        all_tracks: list[Track] = []
        failures = 0
        for query, result in zip(queries, results):
            if isinstance(result, SpotifyError):
                failures += 1
                logger.warning("Generic search %r failed: %s", query, result)
                continue
            if isinstance(result, BaseException):
                raise result
            all_tracks.extend(result)

        if failures == len(queries):
            raise RecommendationError()

        return self._finish(all_tracks, limit, seen)

    async def _run_strategies(
        self,
        plan: list[tuple[str, Awaitable[list[Track]]]],
    ) -> list[StrategyResult]:
        """Run strategies concurrently; an exception becomes that strategy's result."""
        outcomes = await asyncio.gather(
            *[coro for _, coro in plan],
            return_exceptions=True,
        )

        results = []
        for (name, _), outcome in zip(plan, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("Strategy %s failed: %s", name, outcome)
                results.append(StrategyResult(name=name, error=outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                logger.info("Strategy %s: %d tracks", name, len(outcome))
                results.append(StrategyResult(name=name, tracks=outcome))

        failed = sum(1 for r in results if not r.ok)
        if failed:
            logger.info("%d of %d strategies failed", failed, len(results))
        return results

    def _finish(self, tracks: list[Track], limit: int, seen: SeenTracks) -> list[Track]:
        unique = seen.claim(tracks)
        self.rng.shuffle(unique)
        return unique[:limit]
