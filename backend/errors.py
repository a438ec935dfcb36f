"""
Exception taxonomy for the SoundSwipe backend.

Authentication failures surface to the caller (the UI prompts a re-login).
Request failures are raised by the catalog client and swallowed per strategy
by the recommendation engine.
"""
from typing import Optional


class SpotifyError(Exception):
    """Base class for every error raised by the Spotify layer."""


class ConfigurationError(SpotifyError):
    """Client id, secret or redirect URI is missing."""


class AuthError(SpotifyError):
    """Base class for the authenticator's failures."""


class NotAuthenticated(AuthError):
    """Neither a user session nor an app-level token is available."""

    def __init__(self, message: str = "Not authenticated with Spotify"):
        super().__init__(message)


class AuthorizationDenied(AuthError):
    """The provider redirected back with an `error` parameter."""

    def __init__(self, error: str):
        self.error = error
        super().__init__(f"Authorization error: {error}")


class MalformedCallback(AuthError):
    """The redirect URL carried no authorization code."""


class ExchangeFailed(AuthError):
    """Token endpoint rejected a code or client-credentials exchange."""

    def __init__(self, status_code: Optional[int]):
        self.status_code = status_code
        super().__init__(f"Token exchange failed with status code: {status_code}")


class NoRefreshToken(AuthError):
    """A refresh was requested but no refresh token is held."""

    def __init__(self):
        super().__init__("No refresh token available")


class RefreshFailed(AuthError):
    """Token endpoint rejected a refresh, or the refresh request failed."""

    def __init__(self, status_code: Optional[int]):
        self.status_code = status_code
        super().__init__(f"Token refresh failed with status code: {status_code}")


class RequestFailed(SpotifyError):
    """A catalog request returned a non-200 status or never completed."""

    def __init__(self, status_code: Optional[int] = None, detail: str = ""):
        self.status_code = status_code
        if status_code is not None:
            message = f"Spotify API request failed with status code: {status_code}"
        else:
            message = "Spotify API request failed"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class InvalidResponse(SpotifyError):
    """A 2xx response whose body could not be decoded."""

    def __init__(self, message: str = "Invalid response from Spotify"):
        super().__init__(message)


class RecommendationError(SpotifyError):
    """Both the personalized and the generic aggregation paths failed."""

    def __init__(self, message: str = "Failed to load recommendations"):
        super().__init__(message)
