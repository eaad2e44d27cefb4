"""Application settings loaded once from the environment (and ``.env``)."""

import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from errors import ConfigError

ENV_FILE = Path(__file__).parent / ".env"

STORAGE_BACKENDS = ("auto", "mongodb", "memory", "none")


def _get_int(env: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the service."""
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "visitor_analytics"
    mongodb_collection: str = "visitors"
    storage_backend: str = "auto"

    frontend_url: str = "http://localhost:3000"
    admin_token: str = ""

    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 1000

    max_payload_bytes: int = 10 * 1024 * 1024
    storage_timeout_seconds: float = 5.0
    query_timeout_seconds: float = 10.0

    stats_timezone: str = "UTC"
    event_retention_days: int = 0

    port: int = 3001
    log_level: str = "INFO"

    @property
    def tz(self) -> tzinfo:
        """Timezone used for the hour-of-day histogram."""
        if self.stats_timezone.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(self.stats_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigError(f"Unknown STATS_TIMEZONE {self.stats_timezone!r}")

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``env`` (defaults to ``os.environ`` after loading ``.env``)."""
        if env is None:
            # Existing environment variables take precedence over .env
            load_dotenv(ENV_FILE, override=False)
            env = os.environ

        backend = env.get("STORAGE_BACKEND", "auto").strip().lower() or "auto"
        if backend not in STORAGE_BACKENDS:
            raise ConfigError(
                f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}, got {backend!r}"
            )

        return cls(
            mongodb_uri=env.get("MONGODB_URI") or None,
            mongodb_database=env.get("MONGODB_DATABASE", "visitor_analytics"),
            mongodb_collection=env.get("MONGODB_COLLECTION", "visitors"),
            storage_backend=backend,
            frontend_url=env.get("FRONTEND_URL", "http://localhost:3000"),
            admin_token=env.get("ADMIN_TOKEN", ""),
            rate_limit_window_seconds=_get_int(env, "RATE_LIMIT_WINDOW_SECONDS", 15 * 60, minimum=1),
            rate_limit_max_requests=_get_int(env, "RATE_LIMIT_MAX_REQUESTS", 1000, minimum=1),
            max_payload_bytes=_get_int(env, "MAX_PAYLOAD_BYTES", 10 * 1024 * 1024, minimum=1),
            storage_timeout_seconds=_get_float(env, "STORAGE_TIMEOUT_SECONDS", 5.0),
            query_timeout_seconds=_get_float(env, "QUERY_TIMEOUT_SECONDS", 10.0),
            stats_timezone=env.get("STATS_TIMEZONE", "UTC"),
            event_retention_days=_get_int(env, "EVENT_RETENTION_DAYS", 0),
            port=_get_int(env, "PORT", 3001, minimum=1),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
