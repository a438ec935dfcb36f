"""
Configuration for the SoundSwipe backend.
Load Spotify API credentials and engine settings from environment variables.
"""
import logging
import os
from dotenv import load_dotenv

load_dotenv()

# Spotify OAuth Configuration
# Client credentials are only ever read from the environment / .env file.
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "soundswipe://callback")

# Spotify API Base URLs
SPOTIFY_AUTH_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE = "https://api.spotify.com/v1"

# Required Spotify Scopes
SPOTIFY_SCOPES = [
    "user-read-private",
    "user-read-email",
    "user-top-read",              # Top artists and tracks
    "user-read-recently-played",
    "playlist-read-private",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-library-read",
    "user-library-modify",
]

# Per-request timeout (seconds) for every Spotify call
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

# Key-value store holding the persisted token fields
PREFERENCES_DB_PATH = os.getenv(
    "SOUNDSWIPE_DB_PATH",
    os.path.join(os.path.dirname(__file__), "soundswipe.db"),
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Recommendation Engine Configuration
# Filters whose year range equals this are not "active"
DEFAULT_YEAR_RANGE = (2020, 2024)

# Genres used when the user has not picked any (generic and filtered paths)
DEFAULT_GENRES = ["pop", "rock", "indie", "hip-hop", "electronic"]

# Seed genres for the last-resort "mixed popular tracks" fallback
DEFAULT_SEED_GENRES = ["pop", "rock", "indie"]

# Genres offered to the filter screen
AVAILABLE_GENRES = [
    "pop", "rock", "indie", "hip-hop", "r&b",
    "electronic", "jazz", "classical", "country", "latin",
    "metal", "punk", "reggae", "blues", "soul",
    "folk", "edm", "house", "techno", "alternative",
]

# Tracks requested per aggregation call
BATCH_SIZE = 20

# Refill the buffer when fewer than this many unswiped tracks remain
LOW_WATER_MARK = 5

# Genre strategy only queries this many genres
MAX_GENRES = 5

# Words ignored when mining keywords from top-track titles
STOP_WORDS = {"the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for"}


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
