"""CLI settings: explicit options win over environment variables over defaults."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_POLL_INTERVAL = 0.5
# Full-history jobs cover years of hourly readings per sensor.
DEFAULT_TIMEOUT = 300.0
DEFAULT_LOCATION = "storage"

_BASE_URL_ENV = "API_BASE_URL"
_POLL_INTERVAL_ENV = "CLI_POLL_INTERVAL"
_TIMEOUT_ENV = "CLI_POLL_TIMEOUT"
_LOCATION_ENV = "CLI_DEFAULT_LOCATION"
_PHARMACY_ENV = "CLI_PHARMACY_ID"

_DURATION = re.compile(r"^(\d+(?:\.\d+)?)\s*([smh]?)$", re.IGNORECASE)
_UNIT_SECONDS = {"": 1.0, "s": 1.0, "m": 60.0, "h": 3600.0}


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_timeout: float = DEFAULT_TIMEOUT
    default_location: str = DEFAULT_LOCATION
    pharmacy_id: Optional[str] = None


def _read_duration(value: Optional[str], default: float) -> float:
    """Parse ``"2"``, ``"90s"``, ``"5m"`` or ``"1h"`` into seconds."""
    match = _DURATION.match((value or "").strip())
    if match is None:
        return default
    seconds = float(match.group(1)) * _UNIT_SECONDS[match.group(2).lower()]
    return seconds if seconds > 0 else default


def load_config(
    base_url: Optional[str] = None,
    poll_interval: Optional[float] = None,
    poll_timeout: Optional[float] = None,
) -> CLIConfig:
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    if poll_interval is None:
        poll_interval = _read_duration(os.getenv(_POLL_INTERVAL_ENV), DEFAULT_POLL_INTERVAL)
    if poll_timeout is None:
        poll_timeout = _read_duration(os.getenv(_TIMEOUT_ENV), DEFAULT_TIMEOUT)
    location = (os.getenv(_LOCATION_ENV) or "").strip().lower() or DEFAULT_LOCATION
    pharmacy_id = (os.getenv(_PHARMACY_ENV) or "").strip() or None
    return CLIConfig(
        base_url=url.rstrip("/"),
        poll_interval=poll_interval,
        poll_timeout=poll_timeout,
        default_location=location,
        pharmacy_id=pharmacy_id,
    )
