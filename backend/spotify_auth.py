"""
Spotify OAuth for SoundSwipe.

User sessions use Authorization Code + PKCE (RFC 7636, S256). When no user
session is usable, an app-level client-credentials token keeps the public
catalog endpoints (search, artists) reachable.

State machine:
    LOGGED_OUT -> AWAITING_CALLBACK -> AUTHENTICATED
    AUTHENTICATED -> EXPIRED -> REFRESHING -> AUTHENTICATED | LOGGED_OUT
"""
import asyncio
import base64
import hashlib
import logging
import secrets
import urllib.parse
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import httpx

from config import (
    HTTP_TIMEOUT,
    SPOTIFY_API_BASE,
    SPOTIFY_AUTH_URL,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_SCOPES,
    SPOTIFY_TOKEN_URL,
)
from errors import (
    AuthorizationDenied,
    ConfigurationError,
    ExchangeFailed,
    InvalidResponse,
    MalformedCallback,
    NoRefreshToken,
    NotAuthenticated,
    RefreshFailed,
    SpotifyError,
)
from models import TokenRecord
from token_store import TokenStore

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    LOGGED_OUT = "logged_out"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REFRESHING = "refreshing"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SpotifyAuthManager:
    """Owns the user-session token, the app-level token and the PKCE flow."""

    def __init__(
        self,
        token_store: TokenStore,
        http_client: Optional[httpx.AsyncClient] = None,
        client_id: str = SPOTIFY_CLIENT_ID,
        client_secret: str = SPOTIFY_CLIENT_SECRET,
        redirect_uri: str = SPOTIFY_REDIRECT_URI,
        scopes: Optional[list[str]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.token_store = token_store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes if scopes is not None else list(SPOTIFY_SCOPES)
        self._clock = clock
        self._client = http_client

        self.display_name: Optional[str] = None
        self.user_id: Optional[str] = None

        self._code_verifier: Optional[str] = None
        self._refresh_task: Optional[asyncio.Future] = None
        # Bumped whenever the user session is replaced or dropped; a refresh
        # started under an older value must not store its result
        self._session_epoch = 0
        self._app_record: Optional[TokenRecord] = None
        self._app_lock = asyncio.Lock()

        self._record = token_store.get()
        if self._record is None:
            self.state = AuthState.LOGGED_OUT
        elif self._record.is_expired(self._clock()):
            self.state = AuthState.EXPIRED
        else:
            self.state = AuthState.AUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        """A user session exists (its access token may need a refresh)."""
        return self._record is not None

    @property
    def token_record(self) -> Optional[TokenRecord]:
        return self._record

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # PKCE HELPERS
    # =========================================================================

    @staticmethod
    def generate_code_verifier() -> str:
        """32 random bytes, base64url without padding (43 characters)."""
        return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("ascii").rstrip("=")

    @staticmethod
    def generate_code_challenge(code_verifier: str) -> str:
        """S256 challenge: base64url(SHA-256(verifier)) without padding."""
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    # =========================================================================
    # USER LOGIN
    # =========================================================================

    def begin_login(self) -> str:
        """
        Start a PKCE login and return the URL to open in the browser.

        The verifier is kept for the single pending exchange; calling this
        again replaces it.
        """
        if not self.client_id:
            raise ConfigurationError("SPOTIFY_CLIENT_ID is not configured")
        if not self.redirect_uri:
            raise ConfigurationError("SPOTIFY_REDIRECT_URI is not configured")

        verifier = self.generate_code_verifier()
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "code_challenge_method": "S256",
            "code_challenge": self.generate_code_challenge(verifier),
            "show_dialog": "true",
        }

        self._code_verifier = verifier
        self.state = AuthState.AWAITING_CALLBACK
        return f"{SPOTIFY_AUTH_URL}?{urllib.parse.urlencode(params)}"

    get_authorization_url = begin_login

    async def handle_callback(self, url: str) -> None:
        """Finish a login from the redirect URL the OS handed back."""
        query = urllib.parse.parse_qs(urllib.parse.urlsplit(url).query)

        error = query.get("error", [None])[0]
        if error:
            logger.warning("Authorization error from Spotify: %s", error)
            self._code_verifier = None
            self._drop_user_session()
            raise AuthorizationDenied(error)

        code = query.get("code", [None])[0]
        if not code:
            raise MalformedCallback("No authorization code in callback")
        if self._code_verifier is None:
            raise MalformedCallback("No login in progress for this callback")

        verifier, self._code_verifier = self._code_verifier, None
        response = await self._post_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "code_verifier": verifier,
        }, failure=ExchangeFailed, on_failure=self._drop_user_session)

        logger.info("Token exchange response: %s", response.status_code)
        if response.status_code != 200:
            self._drop_user_session()
            raise ExchangeFailed(response.status_code)

        try:
            record = TokenRecord.from_response(_json(response), self._clock())
        except InvalidResponse:
            self._drop_user_session()
            raise

        self._invalidate_refresh()
        self._store(record)
        self.state = AuthState.AUTHENTICATED
        logger.info("Successfully authenticated user")

        await self.fetch_user_profile()

    async def fetch_user_profile(self) -> Optional[str]:
        """Best-effort lookup of the display name; never raises."""
        if self._record is None:
            return None

        client = await self._get_client()
        try:
            response = await client.get(
                f"{SPOTIFY_API_BASE}/me",
                headers={"Authorization": f"Bearer {self._record.access_token}"},
            )
            if response.status_code != 200:
                logger.warning("Failed to fetch user profile: %s", response.status_code)
                return None
            profile = _json(response)
        except (httpx.HTTPError, InvalidResponse) as e:
            logger.warning("Failed to fetch user profile: %s", e)
            return None

        self.display_name = profile.get("display_name")
        self.user_id = profile.get("id")
        logger.info("User profile: %s", self.display_name)
        return self.display_name

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh(self) -> str:
        """
        Refresh the user access token and return the new one.

        Concurrent callers share a single in-flight refresh request. A logout
        or new login while the request is in flight discards its result.
        """
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._refresh(self._session_epoch))
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self, epoch: int) -> str:
        def drop_if_current():
            if self._session_epoch == epoch:
                self._drop_user_session()

        try:
            record = self._record
            if record is None or not record.refresh_token:
                logger.warning("No refresh token available")
                drop_if_current()
                raise NoRefreshToken()

            self.state = AuthState.REFRESHING
            response = await self._post_token({
                "grant_type": "refresh_token",
                "refresh_token": record.refresh_token,
                "client_id": self.client_id,
            }, failure=RefreshFailed, on_failure=drop_if_current)

            if self._session_epoch != epoch:
                logger.info("Session ended during token refresh, discarding result")
                raise NotAuthenticated("Session ended during token refresh")

            if response.status_code != 200:
                logger.warning("Failed to refresh token: %s", response.status_code)
                self._drop_user_session()
                raise RefreshFailed(response.status_code)

            try:
                new_record = TokenRecord.from_response(
                    _json(response), self._clock(), record.refresh_token
                )
            except InvalidResponse:
                self._drop_user_session()
                raise

            self._store(new_record)
            self.state = AuthState.AUTHENTICATED
            logger.info("Token refreshed successfully")
            return new_record.access_token
        finally:
            if self._session_epoch == epoch:
                self._refresh_task = None

    # =========================================================================
    # APP-LEVEL TOKEN (client credentials)
    # =========================================================================

    async def authenticate(self) -> str:
        """Get (or reuse) the userless app token for public endpoints."""
        async with self._app_lock:
            app_record = self._app_record
            if app_record is not None and not app_record.is_expired(self._clock()):
                return app_record.access_token

            if not self.client_id or not self.client_secret:
                raise ConfigurationError(
                    "SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET are required "
                    "for client-credentials authentication"
                )

            response = await self._post_token(
                {"grant_type": "client_credentials"},
                failure=ExchangeFailed,
                auth=(self.client_id, self.client_secret),
            )
            logger.info("Client credentials response: %s", response.status_code)
            if response.status_code != 200:
                raise ExchangeFailed(response.status_code)

            self._app_record = TokenRecord.from_response(_json(response), self._clock())
            return self._app_record.access_token

    # =========================================================================
    # TOKEN SELECTION
    # =========================================================================

    async def active_token(self) -> str:
        """
        Best usable bearer token: live user token, refreshed user token, then
        the app-level token.
        """
        record = self._record
        if record is not None:
            if not record.is_expired(self._clock()):
                return record.access_token

            if self.state != AuthState.REFRESHING:
                self.state = AuthState.EXPIRED
            try:
                return await self.refresh()
            except SpotifyError as e:
                logger.warning("User token unavailable, using app token: %s", e)

        try:
            return await self.authenticate()
        except SpotifyError as e:
            raise NotAuthenticated() from e

    def logout(self) -> None:
        self._drop_user_session()
        self._code_verifier = None
        logger.info("Logged out")

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _post_token(
        self,
        data: dict,
        failure: type,
        auth: Optional[tuple[str, str]] = None,
        on_failure: Optional[Callable[[], None]] = None,
    ) -> httpx.Response:
        """POST a form to the token endpoint; transport errors become `failure`."""
        client = await self._get_client()
        try:
            return await client.post(
                SPOTIFY_TOKEN_URL,
                data=data,
                auth=auth,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as e:
            logger.warning("Token request failed: %s", e)
            if on_failure is not None:
                on_failure()
            raise failure(None) from e

    def _store(self, record: TokenRecord) -> None:
        self._record = record
        self.token_store.set(record)

    def _invalidate_refresh(self) -> None:
        self._session_epoch += 1
        self._refresh_task = None

    def _drop_user_session(self) -> None:
        self._invalidate_refresh()
        self._record = None
        self.display_name = None
        self.user_id = None
        self.token_store.clear()
        self.state = AuthState.LOGGED_OUT


def _json(response: httpx.Response) -> dict:
    try:
        payload = response.json()
    except ValueError as e:
        raise InvalidResponse() from e
    if not isinstance(payload, dict):
        raise InvalidResponse()
    return payload
