from __future__ import annotations

import logging
from enum import Enum
from logging.config import dictConfig
from typing import Any, Iterable, Sequence

from settings import get_settings

# Subject keys lead the context so a job's or sensor's lines read alike.
_SUBJECT_KEYS = ("job_id", "sensor_id", "pharmacy_id", "alert_id")
_DETAIL_KEYS = (
    "mode",
    "location",
    "alert_type",
    "severity",
    "status",
    "readings_written",
    "alerts_written",
    "duration_ms",
    "error_count",
    "reason",
)
_DEFAULT_EXTRA_KEYS = _SUBJECT_KEYS + _DETAIL_KEYS

# Per-request INFO lines from the SensorPush HTTP client drown out job logs.
_QUIET_LOGGERS = ("httpx", "httpcore")

_configured = False


def _render(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    text = str(value)
    if not text or any(ch.isspace() for ch in text) or '"' in text:
        return '"' + text.replace('"', '\\"') + '"'
    return text


class ContextualFormatter(logging.Formatter):
    """Appends ``key=value`` pairs for known ``extra`` fields, subjects first."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context: list[str] = []
        for key in self._extra_keys:
            value = getattr(record, key, None)
            if value is not None:
                context.append(f"{key}={_render(value)}")
        if not context:
            return message
        return f"{message} | {' '.join(context)}"


def configure_logging(level: str | int | None = None) -> None:
    """Configure application-wide logging with contextual formatting."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    log_level = level if level is not None else settings.log_level

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
