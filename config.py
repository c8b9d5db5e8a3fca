"""
Runtime configuration for the Portfolio API

Values come from the process environment (a local .env file is loaded on
import). Settings are read at use time, so a missing JWT secret is reported
by the first request that needs it rather than at startup.
"""
import os
import re
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_EXPIRES_IN = "7d"
DEFAULT_SALT_ROUNDS = 10

_SECOND = 1
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR
_WEEK = 7 * _DAY
_YEAR = 365.25 * _DAY

_UNITS = {
    "ms": 0.001, "msec": 0.001, "msecs": 0.001, "millisecond": 0.001, "milliseconds": 0.001,
    "s": _SECOND, "sec": _SECOND, "secs": _SECOND, "second": _SECOND, "seconds": _SECOND,
    "m": _MINUTE, "min": _MINUTE, "mins": _MINUTE, "minute": _MINUTE, "minutes": _MINUTE,
    "h": _HOUR, "hr": _HOUR, "hrs": _HOUR, "hour": _HOUR, "hours": _HOUR,
    "d": _DAY, "day": _DAY, "days": _DAY,
    "w": _WEEK, "week": _WEEK, "weeks": _WEEK,
    "y": _YEAR, "yr": _YEAR, "yrs": _YEAR, "year": _YEAR, "years": _YEAR,
}

_DURATION_RE = re.compile(r"^(-?(?:\d+)?\.?\d+)\s*([a-z]+)?$", re.IGNORECASE)


class ConfigError(ValueError):
    """Raised when an environment value cannot be interpreted."""


def parse_expires_in(raw: Optional[str]) -> int:
    """Convert a token lifetime setting into whole seconds.

    An all-digit string is taken as seconds. Anything else is read as a
    duration literal such as ``"7d"``, ``"12h"`` or ``"2 days"``; a bare
    non-integer number (``"1.5"``) is milliseconds.
    """
    value = (raw or "").strip()
    if not value:
        value = DEFAULT_EXPIRES_IN
    if value.isdigit():
        return int(value)

    match = _DURATION_RE.match(value)
    if not match:
        raise ConfigError(f"JWT_EXPIRES_IN is invalid: {value!r}")
    amount = float(match.group(1))
    unit = (match.group(2) or "ms").lower()
    if unit not in _UNITS:
        raise ConfigError(f"JWT_EXPIRES_IN has an unknown unit: {value!r}")

    seconds = int(amount * _UNITS[unit])
    if seconds <= 0:
        raise ConfigError(f"JWT_EXPIRES_IN must be positive: {value!r}")
    return seconds


def _split_origins(raw: str) -> List[str]:
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "portfolio"
    jwt_secret: Optional[str] = None
    jwt_expires_in: str = DEFAULT_EXPIRES_IN
    bcrypt_salt_rounds: int = DEFAULT_SALT_ROUNDS
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"
    log_format: str = "text"
    port: int = 8000

    @property
    def token_lifetime_seconds(self) -> int:
        return parse_expires_in(self.jwt_expires_in)


def get_settings() -> Settings:
    """Build settings from the current environment."""
    rounds_raw = os.getenv("BCRYPT_SALT_ROUNDS", "")
    try:
        rounds = int(rounds_raw) if rounds_raw.strip() else DEFAULT_SALT_ROUNDS
    except ValueError:
        rounds = DEFAULT_SALT_ROUNDS

    return Settings(
        database_url=os.getenv("DATABASE_URL") or "mongodb://localhost:27017",
        database_name=os.getenv("DATABASE_NAME") or "portfolio",
        jwt_secret=os.getenv("JWT_SECRET") or None,
        jwt_expires_in=os.getenv("JWT_EXPIRES_IN") or DEFAULT_EXPIRES_IN,
        bcrypt_salt_rounds=rounds,
        cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "http://localhost:5173")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_format=os.getenv("LOG_FORMAT", "text"),
        port=int(os.getenv("PORT", 8000)),
    )
