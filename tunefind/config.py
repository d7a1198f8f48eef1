"""Environment configuration for the tunefind backend.

Values are read from the process environment each time
:func:`load_settings` is called, so the hosting platform (or a test's
``monkeypatch``) can change them without re-importing anything. Required
credentials are allowed to be missing here: the stage that needs one raises
:class:`~tunefind.errors.ConfigurationError` when it is actually used.
"""

import logging
import os
from typing import List, Optional, Tuple

from pydantic import BaseModel

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------- DEFAULTS ----------
RAPID_API_HOST = "shazam-api6.p.rapidapi.com"
RECOGNITION_URL = f"https://{RAPID_API_HOST}/shazam/recognize/"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_SEARCH_URL = "https://api.spotify.com/v1/search"
HTTP_TIMEOUT = 30.0
STATS_DB_PATH = "/tmp/tunefind_stats.sqlite3"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class Settings(BaseModel):
    rapid_api_key: Optional[str] = None
    rapid_api_host: str = RAPID_API_HOST
    recognition_url: str = RECOGNITION_URL
    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None
    spotify_token_url: str = SPOTIFY_TOKEN_URL
    spotify_search_url: str = SPOTIFY_SEARCH_URL
    http_timeout: float = HTTP_TIMEOUT
    stats_db_path: str = STATS_DB_PATH
    auto_start: bool = True
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    def require_rapid_api_key(self) -> str:
        if not self.rapid_api_key:
            raise ConfigurationError.missing("RAPID_API_KEY")
        return self.rapid_api_key

    def require_spotify_credentials(self) -> Tuple[str, str]:
        if not self.spotify_client_id:
            raise ConfigurationError.missing("SPOTIFY_CLIENT_ID")
        if not self.spotify_client_secret:
            raise ConfigurationError.missing("SPOTIFY_CLIENT_SECRET")
        return self.spotify_client_id, self.spotify_client_secret


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name, "").strip()
    return value or None


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r, using %s", name, raw, default)
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    if raw.lower() in _TRUTHY:
        return True
    if raw.lower() in _FALSY:
        return False
    logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
    return default


def _env_log_level(name: str) -> str:
    raw = (_env(name) or "INFO").upper()
    if not isinstance(logging.getLevelName(raw), int):
        logger.warning("Ignoring invalid %s=%r, using INFO", name, raw)
        return "INFO"
    return raw


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment."""
    origins = _env("TUNEFIND_CORS_ORIGINS")
    return Settings(
        rapid_api_key=_env("RAPID_API_KEY"),
        rapid_api_host=_env("RAPID_API_HOST") or RAPID_API_HOST,
        recognition_url=_env("RECOGNITION_URL") or RECOGNITION_URL,
        spotify_client_id=_env("SPOTIFY_CLIENT_ID"),
        spotify_client_secret=_env("SPOTIFY_CLIENT_SECRET"),
        spotify_token_url=_env("SPOTIFY_TOKEN_URL") or SPOTIFY_TOKEN_URL,
        spotify_search_url=_env("SPOTIFY_SEARCH_URL") or SPOTIFY_SEARCH_URL,
        http_timeout=_env_float("TUNEFIND_HTTP_TIMEOUT", HTTP_TIMEOUT),
        stats_db_path=_env("TUNEFIND_STATS_DB") or STATS_DB_PATH,
        auto_start=_env_bool("TUNEFIND_AUTO_START", True),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else ["*"],
        log_level=_env_log_level("TUNEFIND_LOG_LEVEL"),
    )
