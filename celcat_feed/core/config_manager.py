"""Configuration management for the calendar feed server."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_CELCAT_URL = "https://celcat.u-bordeaux.fr/Calendar/Home/GetCalendarData"
DEFAULT_CELCAT_SEARCH_URL = "https://celcat.u-bordeaux.fr/Calendar/Home/ReadResourceListItems"
DEFAULT_CELCAT_STATUS_URL = "https://celcat.u-bordeaux.fr/Calendar/Home/Index"
DEFAULT_BLACKLIST = ["DSPEG", "Cours DSPEG"]
DEFAULT_REPLACEMENTS = {"Test": "💻"}

# Maximum number of groups a single feed request may aggregate
MAX_GROUPS_PER_REQUEST = 10


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")

        for raw_line in content.splitlines():
            line = raw_line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue

            if "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key:
                result[key] = val

    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)

    return result


class TypeKeyword(BaseModel):
    """One row of the course-type table used to build summary prefixes.

    Rows are evaluated in order; the first row with a matching pattern wins.
    """

    prefix: str
    patterns: list[str]
    machine_variant: bool = False


def _default_type_keywords() -> list[TypeKeyword]:
    return [
        TypeKeyword(prefix="TD", patterns=[r"\bTD\b"], machine_variant=True),
        TypeKeyword(prefix="TP", patterns=[r"\bTP\b"], machine_variant=True),
        TypeKeyword(prefix="CM", patterns=[r"\bCM\b", r"\bCOURS\b"]),
        TypeKeyword(
            prefix="EXAM",
            patterns=[r"\bEXAM", r"\bEVALUATION\b", r"\bCONTR[OÔ]LE CONTINU\b", r"\bDS\b"],
        ),
    ]


class TransformRules(BaseModel):
    """Locale-specific vocabulary used by the event transformer."""

    blacklist: list[str] = Field(default_factory=lambda: list(DEFAULT_BLACKLIST))
    replacements: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_REPLACEMENTS))
    type_keywords: list[TypeKeyword] = Field(default_factory=_default_type_keywords)
    machine_markers: list[str] = Field(default_factory=lambda: [r"\bMACHINE\b", r"\bPC\b"])
    machine_sites: list[str] = Field(default_factory=lambda: ["CREMI"])
    holiday_markers: list[str] = Field(default_factory=lambda: ["vacances"])
    default_event_type: str = "Other"
    professor_stopwords: list[str] = Field(
        default_factory=lambda: ["Groupe", "Promo", "Cours", "Examen", "Examens", "Annulé"]
    )


class FeedSettings(BaseModel):
    """Typed runtime settings for the feed service."""

    # Upstream
    celcat_url: str = DEFAULT_CELCAT_URL
    celcat_timeout: float = 10.0
    celcat_search_url: str = DEFAULT_CELCAT_SEARCH_URL
    celcat_status_url: str = DEFAULT_CELCAT_STATUS_URL
    status_timeout: float = 3.0

    # Group search
    search_min_length: int = 3
    search_max_results: int = 15
    search_cache_ttl: int = 60
    search_cache_max_entries: int = 500

    # Cache tier (seconds)
    redis_url: str = ""
    redis_socket_timeout: float = 3.0
    cache_ttl_fresh: int = 7200
    cache_ttl_stale: int = 86400
    cache_ttl_memory: int = 300
    memory_prune_threshold: int = 120
    cache_prune_probability: float = 0.1
    redis_failure_threshold: int = 5
    redis_reset_timeout: float = 60.0
    stats_window: int = 86400

    # Feed output
    calendar_timezone: str = "Europe/Paris"
    calendar_cache_ttl: int = 3600

    # Admin and notifications
    cron_secret: str = "dev-secret"
    notification_webhook_url: str = ""
    notifications_enabled: bool = True
    warmup_min_requests: int = 3
    warmup_max_groups: int = MAX_GROUPS_PER_REQUEST
    warmup_delay_seconds: float = 0.5

    # Server
    preferences_file: str = "preferences.json"
    server_bind: str = "0.0.0.0"  # nosec B104 - default bind, overridable via env
    server_port: int = 8080
    environment: str = "production"
    debug_logging: bool = False

    rules: TransformRules = Field(default_factory=TransformRules)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev")

    @property
    def remote_cache_enabled(self) -> bool:
        return bool(self.redis_url)


# env var -> (settings field, converter)
_NUMERIC_ENV: dict[str, tuple[str, Any]] = {
    "CELCAT_TIMEOUT": ("celcat_timeout", float),
    "CELCAT_STATUS_TIMEOUT": ("status_timeout", float),
    "SEARCH_CACHE_TTL": ("search_cache_ttl", int),
    "REDIS_SOCKET_TIMEOUT": ("redis_socket_timeout", float),
    "CACHE_TTL_FRESH": ("cache_ttl_fresh", int),
    "CACHE_TTL_STALE": ("cache_ttl_stale", int),
    "CACHE_TTL_MEMORY": ("cache_ttl_memory", int),
    "MEMORY_CACHE_PRUNE_THRESHOLD": ("memory_prune_threshold", int),
    "CACHE_PRUNE_PROBABILITY": ("cache_prune_probability", float),
    "REDIS_FAILURE_THRESHOLD": ("redis_failure_threshold", int),
    "REDIS_RESET_TIMEOUT": ("redis_reset_timeout", float),
    "STATS_WINDOW": ("stats_window", int),
    "CALENDAR_CACHE_TTL": ("calendar_cache_ttl", int),
    "CELCAT_FEED_WEB_PORT": ("server_port", int),
}

_STRING_ENV: dict[str, str] = {
    "CELCAT_URL": "celcat_url",
    "CELCAT_SEARCH_URL": "celcat_search_url",
    "CELCAT_STATUS_URL": "celcat_status_url",
    "REDIS_URL": "redis_url",
    "CALENDAR_TIMEZONE": "calendar_timezone",
    "CRON_SECRET": "cron_secret",
    "NOTIFICATION_WEBHOOK_URL": "notification_webhook_url",
    "CELCAT_FEED_PREFERENCES_FILE": "preferences_file",
    "CELCAT_FEED_WEB_HOST": "server_bind",
    "CELCAT_FEED_ENV": "environment",
}


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_json(key: str, expected: type, default: Any) -> Any:
    raw = os.environ.get(key)
    if not raw:
        return default
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("Failed to parse %s as JSON; using default", key)
        return default
    if not isinstance(parsed, expected):
        logger.warning("Ignoring %s: expected a JSON %s", key, expected.__name__)
        return default
    return parsed


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_settings_from_env(self) -> FeedSettings:
        """Build typed settings from environment variables.

        Returns:
            FeedSettings populated from the environment, defaults elsewhere
        """
        values: dict[str, Any] = {}

        for env_key, field_name in _STRING_ENV.items():
            raw = os.environ.get(env_key)
            if raw:
                values[field_name] = raw.strip()

        for env_key, (field_name, convert) in _NUMERIC_ENV.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                values[field_name] = convert(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)

        notifications = os.environ.get("NOTIFICATIONS_ENABLED")
        if notifications:
            values["notifications_enabled"] = _env_bool(notifications)

        debug = os.environ.get("CELCAT_FEED_DEBUG")
        if debug:
            values["debug_logging"] = _env_bool(debug)

        rules = TransformRules()
        extra_blacklist = _env_json("CELCAT_BLACKLIST", list, [])
        for keyword in extra_blacklist:
            if isinstance(keyword, str) and keyword and keyword not in rules.blacklist:
                rules.blacklist.append(keyword)
        rules.replacements = _env_json("CELCAT_REPLACEMENTS", dict, rules.replacements)
        values["rules"] = rules

        return FeedSettings(**values)

    def load_full_config(self) -> FeedSettings:
        """Load .env file and build settings from environment.

        This is the main entry point for loading configuration.

        Returns:
            FeedSettings instance
        """
        self.load_env_file()
        settings = self.build_settings_from_env()
        if not settings.remote_cache_enabled:
            logger.warning("REDIS_URL not set - caching will be memory-only")
        return settings
