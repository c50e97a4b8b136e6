"""
Configuration constants for the watchthis recommender.

This module centralizes all magic numbers and configurable parameters.
Pacing and sampling values can be overridden via environment variables.
"""
import os
import logging

logger = logging.getLogger(__name__)


def _env_number(key: str, default, cast, min_val):
    """
    Read a numeric WATCHTHIS_* override.

    Unset, blank or unparseable variables fall back to `default`.
    Values under `min_val` are clamped to it.
    """
    raw = os.environ.get(key, "").strip()
    if not raw:
        return default
    try:
        val = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring {key}={raw!r}: not a valid {cast.__name__}, using {default}")
        return default
    if val < min_val:
        logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
        return min_val
    return val


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    return _env_number(key, default, float, min_val)


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    return _env_number(key, default, int, min_val)


# Site layout
MAL_BASE = "https://myanimelist.net"
LIST_URL_PREFIX = f"{MAL_BASE}/animelist/"
LIST_URL_SUFFIX = "?status=2"  # completed entries only
STATS_SUFFIX = "/stats?m=all&show="
STAFF_SUFFIX = "/characters"
USER_RECS_SUFFIX = "/userrecs"
PAGE_ELEMENTS_INCREMENT = 75  # rows per "recently updated" stats page
NO_SCORE_MARKER = "-"

# Scraper Configuration
DEFAULT_ASYNC_DELAY = _get_float_env("WATCHTHIS_ASYNC_DELAY", 0.2, min_val=0.0)
DEFAULT_MAX_CONCURRENT = _get_int_env("WATCHTHIS_MAX_CONCURRENT", 5, min_val=1)
HTTP_TIMEOUT = _get_float_env("WATCHTHIS_HTTP_TIMEOUT", 30.0, min_val=1.0)
MAL_COOKIE = os.environ.get("WATCHTHIS_COOKIE")

# Retry and Rate Limiting
MAX_HTTP_RETRIES = 3
DEFAULT_RETRY_AFTER = 60  # Default wait time if Retry-After header missing
ADAPTIVE_DELAY_MAX = 5.0
RATE_LIMIT_BACKOFF = 1.5
SOFT_BLOCK_BACKOFF = (1, 2, 4)

# Sampling defaults (CLI)
DEFAULT_SAMPLE_SIZE = _get_int_env("WATCHTHIS_SAMPLE_SIZE", 100, min_val=1)
DEFAULT_MIN_POPULARITY = _get_float_env("WATCHTHIS_MIN_POPULARITY", 5.0, min_val=0.0)

# Candidate eligibility
MIN_SIGHTINGS = 3  # a candidate needs strictly more sightings than this

# Cutoff scaling by candidate pool size, checked largest first
POOL_SIZE_MULTIPLIERS = (
    (2000, 3.0),
    (1500, 2.5),
    (1000, 2.0),
    (700, 1.5),
)

# Staff / voice actor weights
VA_MAIN_VALUE = 2.0
VA_OTHER_VALUE = 0.5
STAFF_POSITION_VALUES = {
    "Original Creator": 36.0,
    "Director": 28.0,
    "Music": 18.0,
    "Script": 18.0,
    "Series Composition": 18.0,
    "Animation Director": 12.0,
    "Chief Animation Director": 12.0,
    "Character Design": 12.0,
    "Original Character Design": 12.0,
}
STAFF_ROLE_DELIMITER = ", "
MAIN_ROLE = "Main"

# Genre weights (decline 0 = every listed genre weighs the same)
GENRE_VALUE = 16.0
GENRE_VALUE_DECLINE = 0.0

# "Users also recommend" weights
USER_REC_VALUE_INITIAL = 80.0
USER_REC_VALUE_DECLINE = 5.0
USER_REC_VALUE_FLOOR = 0.0
