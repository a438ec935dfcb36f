"""
Core data model: tracks, artists, filters, tokens and the seen-track set.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional

from config import DEFAULT_YEAR_RANGE
from errors import InvalidResponse


@dataclass(frozen=True)
class Track:
    """A playable catalog track, immutable once decoded."""
    id: str
    name: str
    artists: tuple[str, ...]
    album: str
    artwork_url: Optional[str] = None
    preview_url: Optional[str] = None  # <= 30s clip
    spotify_url: Optional[str] = None
    duration_ms: Optional[int] = None

    @classmethod
    def from_spotify(cls, item: dict) -> "Track":
        """Decode a Spotify track object."""
        if not isinstance(item, dict) or not item.get("id") or not item.get("name"):
            raise InvalidResponse("Track object without id or name")

        album = item.get("album") or {}
        images = album.get("images") or []

        return cls(
            id=item["id"],
            name=item["name"],
            artists=tuple(
                a.get("name", "Unknown Artist")
                for a in item.get("artists") or []
                if isinstance(a, dict)
            ),
            album=album.get("name", ""),
            artwork_url=images[0].get("url") if images else None,
            preview_url=item.get("preview_url"),
            spotify_url=(item.get("external_urls") or {}).get("spotify"),
            duration_ms=item.get("duration_ms"),
        )

    @property
    def artist(self) -> str:
        return self.artists[0] if self.artists else "Unknown Artist"

    @property
    def uri(self) -> str:
        return f"spotify:track:{self.id}"

    @property
    def has_preview(self) -> bool:
        return bool(self.preview_url)


@dataclass(frozen=True)
class Artist:
    """Artist details used by the seed strategies."""
    id: str
    name: str
    genres: tuple[str, ...] = ()

    @classmethod
    def from_spotify(cls, item: dict) -> "Artist":
        if not isinstance(item, dict) or not item.get("id") or not item.get("name"):
            raise InvalidResponse("Artist object without id or name")
        return cls(
            id=item["id"],
            name=item["name"],
            genres=tuple(item.get("genres") or []),
        )


@dataclass
class MusicFilter:
    """
    User-chosen discovery filter.

    Genres behave as a set; insertion order is kept so generated queries are
    reproducible.
    """
    selected_genres: list[str] = field(default_factory=list)
    year_range: tuple[int, int] = DEFAULT_YEAR_RANGE
    include_new: bool = False
    include_classics: bool = False
    include_popular: bool = False

    def __post_init__(self):
        self.selected_genres = list(dict.fromkeys(g for g in self.selected_genres if g))
        lower, upper = self.year_range
        if lower > upper:
            raise ValueError(f"Invalid year range: {lower}-{upper}")
        self.year_range = (int(lower), int(upper))

    @property
    def is_active(self) -> bool:
        return bool(self.selected_genres) or self.year_range != DEFAULT_YEAR_RANGE

    @property
    def has_default_years(self) -> bool:
        return self.year_range == DEFAULT_YEAR_RANGE


@dataclass
class TokenRecord:
    """An access token with its optional refresh token and absolute expiry."""
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        # A token expiring exactly now is already unusable
        return now >= self.expires_at

    @classmethod
    def from_response(
        cls,
        payload: dict,
        now: datetime,
        previous_refresh_token: Optional[str] = None,
    ) -> "TokenRecord":
        """
        Build a record from a token endpoint payload.

        Spotify only sometimes rotates the refresh token; when it does not,
        the previous one stays valid.
        """
        if not isinstance(payload, dict):
            raise InvalidResponse("Token payload is not an object")

        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")
        if not isinstance(access_token, str) or not access_token:
            raise InvalidResponse("Token payload without access_token")
        if not isinstance(expires_in, (int, float)) or isinstance(expires_in, bool):
            raise InvalidResponse("Token payload without expires_in")

        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=now + timedelta(seconds=expires_in),
        )


class SeenTracks:
    """
    Track ids already shown (or swiped) in this session.

    Grows monotonically until `clear()`; never persisted.
    """

    def __init__(self, track_ids: Iterable[str] = ()):
        self._ids: set[str] = set(track_ids)

    def __contains__(self, track_id: str) -> bool:
        return track_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, track_id: str) -> None:
        self._ids.add(track_id)

    def update(self, track_ids: Iterable[str]) -> None:
        self._ids.update(track_ids)

    def clear(self) -> None:
        self._ids.clear()

    def claim(self, tracks: Iterable[Track]) -> list[Track]:
        """
        Keep tracks never seen before (and first occurrences only), then mark
        all of them as seen.
        """
        unique: list[Track] = []
        batch_ids: set[str] = set()

        for track in tracks:
            if track.id in self._ids or track.id in batch_ids:
                continue
            unique.append(track)
            batch_ids.add(track.id)

        self._ids.update(batch_ids)
        return unique
