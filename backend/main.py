"""
SoundSwipe - FastAPI Backend

The swipe UI talks to the discovery core through this API.

Flow:
1. Connect Spotify (PKCE login), or use the app token for anonymous play
2. Load a batch of candidate tracks (optionally filtered)
3. Swipe: like / dislike the current card; the stack refills itself
4. Reset or change filters to start a fresh stack
"""
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import (
    AVAILABLE_GENRES,
    DEFAULT_YEAR_RANGE,
    HTTP_TIMEOUT,
    PREFERENCES_DB_PATH,
    configure_logging,
)
from database import Preferences
from errors import (
    AuthorizationDenied,
    ConfigurationError,
    ExchangeFailed,
    InvalidResponse,
    MalformedCallback,
    RecommendationError,
)
from models import MusicFilter, Track
from recommendation_engine import RecommendationEngine
from session import DiscoverySession
from spotify_auth import SpotifyAuthManager
from spotify_client import SpotifyClient
from token_store import TokenStore


# =========================================================================
# REQUEST / RESPONSE MODELS
# =========================================================================

class TrackModel(BaseModel):
    """A candidate card."""
    id: str
    name: str
    artist: str
    artists: list[str]
    album: str
    artwork_url: Optional[str] = None
    preview_url: Optional[str] = None
    spotify_url: Optional[str] = None
    duration_ms: Optional[int] = None

    @classmethod
    def from_track(cls, track: Track) -> "TrackModel":
        return cls(
            id=track.id,
            name=track.name,
            artist=track.artist,
            artists=list(track.artists),
            album=track.album,
            artwork_url=track.artwork_url,
            preview_url=track.preview_url,
            spotify_url=track.spotify_url,
            duration_ms=track.duration_ms,
        )


class FilterModel(BaseModel):
    """Discovery filter as sent by the filter screen."""
    selected_genres: list[str] = Field(default_factory=list)
    year_from: int = DEFAULT_YEAR_RANGE[0]
    year_to: int = DEFAULT_YEAR_RANGE[1]
    include_new: bool = False
    include_classics: bool = False
    include_popular: bool = False

    def to_filter(self) -> MusicFilter:
        try:
            return MusicFilter(
                selected_genres=self.selected_genres,
                year_range=(self.year_from, self.year_to),
                include_new=self.include_new,
                include_classics=self.include_classics,
                include_popular=self.include_popular,
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

    @classmethod
    def from_filter(cls, music_filter: MusicFilter) -> "FilterModel":
        return cls(
            selected_genres=list(music_filter.selected_genres),
            year_from=music_filter.year_range[0],
            year_to=music_filter.year_range[1],
            include_new=music_filter.include_new,
            include_classics=music_filter.include_classics,
            include_popular=music_filter.include_popular,
        )


class AuthUrlResponse(BaseModel):
    """Spotify authorization URL."""
    auth_url: str


class CallbackRequest(BaseModel):
    """Redirect URL received by the app's custom URL scheme."""
    url: str


class AuthStatusResponse(BaseModel):
    state: str
    authenticated: bool
    display_name: Optional[str] = None


class BatchRequest(BaseModel):
    filter: Optional[FilterModel] = None


class BatchResponse(BaseModel):
    tracks: list[TrackModel]
    remaining: int
    error_message: Optional[str] = None


class CurrentResponse(BaseModel):
    track: Optional[TrackModel] = None
    remaining: int
    is_loading: bool
    error_message: Optional[str] = None


class SwipeRequest(BaseModel):
    track_id: str
    liked: bool


class SwipeResponse(BaseModel):
    next_track: Optional[TrackModel] = None
    remaining: int
    refilling: bool


class LikedResponse(BaseModel):
    liked: list[TrackModel]
    disliked: list[TrackModel]


class StatsResponse(BaseModel):
    seen_count: int
    liked_count: int
    disliked_count: int
    summary: str


# =========================================================================
# APP FACTORY
# =========================================================================

def create_app(
    auth: Optional[SpotifyAuthManager] = None,
    session: Optional[DiscoverySession] = None,
    db_path: str = PREFERENCES_DB_PATH,
) -> FastAPI:
    """
    Build the API. Components are constructed once here (or injected by the
    caller) and reached by endpoints through `app.state`.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()

        # One connection pool for every component built here
        http_client = None
        if auth is None or session is None:
            http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)

        app_auth = auth
        if app_auth is None:
            app_auth = SpotifyAuthManager(TokenStore(Preferences(db_path)), http_client)

        app_session = session
        if app_session is None:
            client = SpotifyClient(app_auth, http_client)
            app_session = DiscoverySession(RecommendationEngine(client))

        app.state.auth = app_auth
        app.state.session = app_session
        try:
            yield
        finally:
            if http_client is not None:
                await http_client.aclose()

    app = FastAPI(
        title="SoundSwipe",
        description="Swipe-to-discover music backend on top of the Spotify Web API.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_routes(app)
    return app


def get_auth(request: Request) -> SpotifyAuthManager:
    return request.app.state.auth


def get_session(request: Request) -> DiscoverySession:
    return request.app.state.session


def _register_routes(app: FastAPI) -> None:

    # =====================================================================
    # AUTH ENDPOINTS
    # =====================================================================

    @app.post("/auth/app", response_model=AuthStatusResponse)
    async def authenticate(auth: SpotifyAuthManager = Depends(get_auth)):
        """Obtain the app-level token so anonymous browsing works."""
        try:
            await auth.authenticate()
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))
        except (ExchangeFailed, InvalidResponse) as e:
            raise HTTPException(status_code=502, detail=f"Failed to connect to Spotify: {e}")
        return _auth_status(auth)

    @app.get("/auth/spotify/url", response_model=AuthUrlResponse)
    def get_spotify_auth_url(auth: SpotifyAuthManager = Depends(get_auth)):
        """Generate the Spotify PKCE authorization URL."""
        try:
            return AuthUrlResponse(auth_url=auth.get_authorization_url())
        except ConfigurationError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/auth/spotify/callback", response_model=AuthStatusResponse)
    async def spotify_callback(request: Request, auth: SpotifyAuthManager = Depends(get_auth)):
        """Browser redirect target: the query string carries `code` or `error`."""
        return await _finish_login(auth, str(request.url))

    @app.post("/auth/spotify/callback", response_model=AuthStatusResponse)
    async def spotify_app_callback(body: CallbackRequest, auth: SpotifyAuthManager = Depends(get_auth)):
        """Custom-scheme redirect forwarded by the mobile app."""
        return await _finish_login(auth, body.url)

    @app.get("/auth/status", response_model=AuthStatusResponse)
    def auth_status(auth: SpotifyAuthManager = Depends(get_auth)):
        return _auth_status(auth)

    @app.post("/auth/logout", response_model=AuthStatusResponse)
    def logout(auth: SpotifyAuthManager = Depends(get_auth)):
        auth.logout()
        return _auth_status(auth)

    # =====================================================================
    # SESSION ENDPOINTS
    # =====================================================================

    @app.post("/session/batch", response_model=BatchResponse)
    async def load_next_batch(
        body: Optional[BatchRequest] = None,
        session: DiscoverySession = Depends(get_session),
    ):
        """Load the next batch onto the stack; a changed filter starts a fresh stack."""
        music_filter = body.filter.to_filter() if body and body.filter else None
        try:
            tracks = await session.load_next_batch(music_filter)
        except RecommendationError as e:
            raise HTTPException(status_code=503, detail=str(e))

        return BatchResponse(
            tracks=[TrackModel.from_track(t) for t in tracks],
            remaining=session.remaining,
            error_message=session.error_message,
        )

    @app.get("/session/current", response_model=CurrentResponse)
    def current_track(session: DiscoverySession = Depends(get_session)):
        track = session.current_track
        return CurrentResponse(
            track=TrackModel.from_track(track) if track else None,
            remaining=session.remaining,
            is_loading=session.is_loading,
            error_message=session.error_message,
        )

    @app.post("/session/swipe", response_model=SwipeResponse)
    async def record_swipe(body: SwipeRequest, session: DiscoverySession = Depends(get_session)):
        """Like (right) or dislike (left) the current card."""
        if session.current_track is None:
            raise HTTPException(status_code=409, detail="No current track to swipe")
        try:
            refill = session.record_swipe(body.track_id, body.liked)
        except ValueError as e:
            raise HTTPException(status_code=409, detail=str(e))

        track = session.current_track
        return SwipeResponse(
            next_track=TrackModel.from_track(track) if track else None,
            remaining=session.remaining,
            refilling=refill is not None,
        )

    @app.post("/session/reset", response_model=CurrentResponse)
    async def reset_session(session: DiscoverySession = Depends(get_session)):
        """Drop the stack, likes and dislikes and start a fresh load."""
        session.reset()
        return CurrentResponse(
            track=None,
            remaining=0,
            is_loading=True,
            error_message=None,
        )

    @app.get("/session/filter", response_model=FilterModel)
    def get_filter(session: DiscoverySession = Depends(get_session)):
        return FilterModel.from_filter(session.music_filter)

    @app.put("/session/filter", response_model=FilterModel)
    async def update_filter(body: FilterModel, session: DiscoverySession = Depends(get_session)):
        """Replace the filter; the stack is reset and reloaded."""
        session.update_filter(body.to_filter())
        return FilterModel.from_filter(session.music_filter)

    @app.get("/session/liked", response_model=LikedResponse)
    def liked_tracks(session: DiscoverySession = Depends(get_session)):
        return LikedResponse(
            liked=[TrackModel.from_track(t) for t in session.liked],
            disliked=[TrackModel.from_track(t) for t in session.disliked],
        )

    @app.post("/session/seen/{track_id}", response_model=StatsResponse)
    def mark_seen(track_id: str, session: DiscoverySession = Depends(get_session)):
        session.mark_seen(track_id)
        return _stats(session)

    @app.delete("/session/seen", response_model=StatsResponse)
    def clear_seen_history(session: DiscoverySession = Depends(get_session)):
        session.clear_seen_history()
        return _stats(session)

    @app.get("/session/stats", response_model=StatsResponse)
    def session_stats(session: DiscoverySession = Depends(get_session)):
        return _stats(session)

    # =====================================================================
    # MISC
    # =====================================================================

    @app.get("/genres")
    def available_genres():
        return {"genres": AVAILABLE_GENRES}

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok", "service": "soundswipe", "version": "0.1.0"}


async def _finish_login(auth: SpotifyAuthManager, url: str) -> AuthStatusResponse:
    try:
        await auth.handle_callback(url)
    except (AuthorizationDenied, MalformedCallback) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ExchangeFailed, InvalidResponse) as e:
        raise HTTPException(status_code=502, detail=str(e))
    return _auth_status(auth)


def _auth_status(auth: SpotifyAuthManager) -> AuthStatusResponse:
    return AuthStatusResponse(
        state=auth.state.value,
        authenticated=auth.is_authenticated,
        display_name=auth.display_name,
    )


def _stats(session: DiscoverySession) -> StatsResponse:
    return StatsResponse(
        seen_count=len(session.seen),
        liked_count=len(session.liked),
        disliked_count=len(session.disliked),
        summary=session.stats(),
    )


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
