"""Runtime configuration.

All environment variable parsing lives here; the rest of the code receives a
typed ``Settings`` value.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from errors import ConfigError

DEFAULT_DB_PATH = Path("data") / "history.db"
DEFAULT_UPSTREAM_URL = "https://disease.sh/v3/covid-19"
DEFAULT_BELLWETHER = "Italy"
DEFAULT_SHIFT_CUTOFF_HOUR = 15
DEFAULT_SHIFT_GRACE_MINUTES = 10
DEFAULT_POLL_INTERVAL_SECONDS = 10 * 60
DEFAULT_FETCH_TIMEOUT_SECONDS = 20
DEFAULT_MAX_LAST_DAYS = 90


@dataclass(frozen=True)
class Settings:
    """Validated runtime configuration.

    Attributes:
        db_path: SQLite database file, or ``:memory:``.
        upstream_url: Base URL of the disease.sh compatible API.
        bellwether: Country whose publication timing signals the upstream day rollover.
        shift_cutoff_hour: UTC hour before which a reported bellwether figure means
            the upstream "today" is still yesterday.
        shift_grace_minutes: Minutes after UTC midnight during which no shift is assumed.
        poll_interval_seconds: Delay between reconciliation cycles.
        fetch_timeout_seconds: Per-request upstream timeout.
        fetch_retries: HTTP-level retries per upstream request.
        max_last_days: Upper bound for the ``lastDays`` read parameter.
        polling_enabled: Whether the API process runs the polling loop.
        log_level: structlog filtering level name.
    """

    db_path: Path | str = DEFAULT_DB_PATH
    upstream_url: str = DEFAULT_UPSTREAM_URL
    bellwether: str = DEFAULT_BELLWETHER
    shift_cutoff_hour: int = DEFAULT_SHIFT_CUTOFF_HOUR
    shift_grace_minutes: int = DEFAULT_SHIFT_GRACE_MINUTES
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    fetch_timeout_seconds: int = DEFAULT_FETCH_TIMEOUT_SECONDS
    fetch_retries: int = 0
    max_last_days: int = DEFAULT_MAX_LAST_DAYS
    polling_enabled: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``COVID_*`` environment variables.

        Raises:
            ConfigError: If a value cannot be parsed or is out of range.
        """
        db_value = os.getenv("COVID_DB_PATH", str(DEFAULT_DB_PATH))
        cutoff = _parse_int("COVID_SHIFT_CUTOFF_HOUR", DEFAULT_SHIFT_CUTOFF_HOUR, minimum=0)
        if cutoff > 24:
            raise ConfigError(f"COVID_SHIFT_CUTOFF_HOUR must be between 0 and 24, got {cutoff}.")
        return cls(
            db_path=db_value if db_value == ":memory:" else Path(db_value).expanduser(),
            upstream_url=os.getenv("COVID_UPSTREAM_URL", DEFAULT_UPSTREAM_URL).rstrip("/"),
            bellwether=os.getenv("COVID_BELLWETHER", DEFAULT_BELLWETHER),
            shift_cutoff_hour=cutoff,
            shift_grace_minutes=_parse_int("COVID_SHIFT_GRACE_MINUTES", DEFAULT_SHIFT_GRACE_MINUTES, minimum=0),
            poll_interval_seconds=_parse_int(
                "COVID_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS, minimum=1
            ),
            fetch_timeout_seconds=_parse_int(
                "COVID_FETCH_TIMEOUT_SECONDS", DEFAULT_FETCH_TIMEOUT_SECONDS, minimum=1
            ),
            fetch_retries=_parse_int("COVID_FETCH_RETRIES", 0, minimum=0),
            max_last_days=_parse_int("COVID_MAX_LAST_DAYS", DEFAULT_MAX_LAST_DAYS, minimum=1),
            polling_enabled=_parse_bool("COVID_POLLING", True),
            log_level=os.getenv("COVID_LOG_LEVEL", "INFO").upper(),
        )


def _parse_int(name: str, default: int, minimum: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        value = int(raw_value)
    except ValueError as error:
        raise ConfigError(f"Invalid {name} value: expected integer, got '{raw_value}'.") from error
    if value < minimum:
        raise ConfigError(f"Invalid {name} value: must be >= {minimum}, got {value}.")
    return value


def _parse_bool(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None or raw_value.strip() == "":
        return default
    text = raw_value.strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid {name} value: expected a boolean flag, got '{raw_value}'.")
