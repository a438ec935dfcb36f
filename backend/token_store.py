"""
Persistence of the user-session token record.

Three independent fields are written through to the preferences store on
every mutation so a session survives a process restart.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from models import TokenRecord

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "spotify_access_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
EXPIRATION_KEY = "spotify_token_expiration"

# Used when the stored expiry is missing or unreadable: forces a refresh
_ALREADY_EXPIRED = datetime(1970, 1, 1, tzinfo=timezone.utc)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def delete(self, key: str) -> None: ...


class TokenStore:
    """Holds the current user token record."""

    def __init__(self, preferences: KeyValueStore):
        self.preferences = preferences

    def get(self) -> Optional[TokenRecord]:
        access_token = self.preferences.get(ACCESS_TOKEN_KEY)
        refresh_token = self.preferences.get(REFRESH_TOKEN_KEY)

        if not access_token and not refresh_token:
            return None

        expires_at = _parse_expiry(self.preferences.get(EXPIRATION_KEY))
        if not access_token:
            # Only the refresh token survived; force a refresh on first use
            expires_at = _ALREADY_EXPIRED

        return TokenRecord(
            access_token=access_token or "",
            refresh_token=refresh_token or None,
            expires_at=expires_at,
        )

    def set(self, record: TokenRecord) -> None:
        self.preferences.set(ACCESS_TOKEN_KEY, record.access_token)
        if record.refresh_token:
            self.preferences.set(REFRESH_TOKEN_KEY, record.refresh_token)
        else:
            self.preferences.delete(REFRESH_TOKEN_KEY)
        self.preferences.set(EXPIRATION_KEY, record.expires_at.isoformat())

    def clear(self) -> None:
        for key in (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRATION_KEY):
            self.preferences.delete(key)


def _parse_expiry(value: Optional[str]) -> datetime:
    if not value:
        return _ALREADY_EXPIRED
    try:
        expires_at = datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring corrupt stored token expiry %r", value)
        return _ALREADY_EXPIRED
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at
