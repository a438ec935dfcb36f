"""
Discovery session: the card stack the UI swipes through.

Holds the candidate buffer, the cursor, liked/disliked tracks, the active
filter and the seen-track set. Refills are background tasks handed back to
the caller; every load is stamped with a generation so a load that finishes
after `reset()` is discarded instead of leaking into the new stack.
"""
import asyncio
import logging
from typing import Optional

from config import BATCH_SIZE, DEFAULT_SEED_GENRES, LOW_WATER_MARK
from errors import RecommendationError, SpotifyError
from models import MusicFilter, SeenTracks, Track
from recommendation_engine import RecommendationEngine

logger = logging.getLogger(__name__)


class DiscoverySession:
    def __init__(
        self,
        engine: RecommendationEngine,
        batch_size: int = BATCH_SIZE,
        low_water_mark: int = LOW_WATER_MARK,
        music_filter: Optional[MusicFilter] = None,
        seed_genres: Optional[list[str]] = None,
    ):
        self.engine = engine
        self.batch_size = batch_size
        self.low_water_mark = low_water_mark
        self.music_filter = music_filter or MusicFilter()
        self.seed_genres = list(seed_genres or DEFAULT_SEED_GENRES)

        self.tracks: list[Track] = []
        self.current_index = 0
        self.liked: list[Track] = []
        self.disliked: list[Track] = []
        self.seen = SeenTracks()

        self.generation = 0
        self.is_loading = False
        self.error_message: Optional[str] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def current_track(self) -> Optional[Track]:
        if 0 <= self.current_index < len(self.tracks):
            return self.tracks[self.current_index]
        return None

    @property
    def remaining(self) -> int:
        return max(len(self.tracks) - self.current_index, 0)

    @property
    def has_more(self) -> bool:
        return self.current_index < len(self.tracks)

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load_next_batch(self, music_filter: Optional[MusicFilter] = None) -> list[Track]:
        """
        Append a fresh batch to the stack and return it.

        A filter different from the current one starts a fresh stack first,
        as `update_filter` does. Falls back to mixed popular tracks when the
        engine gives up; raises RecommendationError if that fails as well.
        """
        if music_filter is not None and music_filter != self.music_filter:
            self._clear_stack()
            self.music_filter = music_filter

        generation = self.generation
        self.is_loading = True
        self.error_message = None

        # Claims go to a scratch copy and only reach the session's seen set
        # if this load is still current when it finishes
        known = set(self.seen)
        scratch = SeenTracks(known)

        try:
            try:
                tracks = await self.engine.get_recommendations(
                    limit=self.batch_size,
                    music_filter=self.music_filter,
                    seen=scratch,
                )
            except RecommendationError as e:
                self.error_message = str(e)
                logger.warning("Error loading recommendations: %s", e)
                tracks = await self._popular_fallback(scratch)
        finally:
            if generation == self.generation:
                self.is_loading = False

        if generation != self.generation:
            logger.info("Discarding %d tracks from a superseded load", len(tracks))
            return []

        # Another load of this generation may have delivered some already
        tracks = [t for t in tracks if t.id not in self.seen]
        self.seen.update(track_id for track_id in scratch if track_id not in known)
        self.tracks.extend(tracks)
        logger.info("Loaded %d recommendations", len(tracks))
        return tracks

    async def _popular_fallback(self, seen: SeenTracks) -> list[Track]:
        try:
            tracks = await self.engine.client.get_mixed_popular_tracks(
                self.seed_genres, limit=self.batch_size
            )
        except SpotifyError as e:
            raise RecommendationError() from e
        if not tracks:
            raise RecommendationError()
        return seen.claim(tracks)

    async def _load_in_background(self) -> list[Track]:
        try:
            return await self.load_next_batch()
        except RecommendationError as e:
            logger.error("Background load failed: %s", e)
            return []

    def _start_load(self) -> asyncio.Task:
        self._pending = asyncio.create_task(self._load_in_background())
        return self._pending

    def _refill_if_low(self) -> Optional[asyncio.Task]:
        if self.remaining >= self.low_water_mark:
            return None
        if self._pending is not None and not self._pending.done():
            return self._pending
        return self._start_load()

    # =========================================================================
    # SWIPES
    # =========================================================================

    def record_swipe(self, track_id: str, liked: bool) -> Optional[asyncio.Task]:
        """
        Record a decision on the current card and advance.

        Returns the refill task when the stack ran low, else None.
        """
        track = self.current_track
        if track is None:
            return None
        if track.id != track_id:
            raise ValueError(f"Track {track_id} is not the current card")

        self.seen.add(track.id)
        if liked:
            self.liked.append(track)
            logger.info("Liked: %s by %s", track.name, track.artist)
        else:
            self.disliked.append(track)
            logger.info("Disliked: %s by %s", track.name, track.artist)

        self.current_index += 1
        return self._refill_if_low()

    def like_current(self) -> Optional[asyncio.Task]:
        track = self.current_track
        return self.record_swipe(track.id, liked=True) if track else None

    def dislike_current(self) -> Optional[asyncio.Task]:
        track = self.current_track
        return self.record_swipe(track.id, liked=False) if track else None

    # =========================================================================
    # RESET / FILTERS
    # =========================================================================

    def _clear_stack(self) -> None:
        """Supersede any in-flight load and drop the stack and decisions."""
        self.generation += 1
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()

        self.tracks.clear()
        self.current_index = 0
        self.liked.clear()
        self.disliked.clear()
        self.error_message = None
        self.is_loading = False

    def reset(self) -> asyncio.Task:
        """Empty the stack and start loading a fresh one."""
        self._clear_stack()
        return self._start_load()

    def update_filter(self, music_filter: MusicFilter) -> asyncio.Task:
        self.music_filter = music_filter
        return self.reset()

    def update_seed_genres(self, genres: list[str]) -> asyncio.Task:
        self.seed_genres = list(genres)
        return self.reset()

    # =========================================================================
    # HISTORY
    # =========================================================================

    def mark_seen(self, track_id: str) -> None:
        self.seen.add(track_id)

    def clear_seen_history(self) -> None:
        self.seen.clear()
        logger.info("Cleared recommendation history")

    def stats(self) -> str:
        return f"Songs discovered: {len(self.seen)}"
