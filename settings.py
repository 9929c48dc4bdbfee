from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "RECORD_STORE_PATH"
_JOB_TABLE_PATH_ENV = "JOB_TABLE_PATH"
_WORKER_COUNT_ENV = "GENERATOR_WORKER_COUNT"
_CHUNK_SIZE_ENV = "GENERATOR_CHUNK_SIZE"
_SEED_ENV = "GENERATOR_SEED"
_ARCHIVE_DAYS_ENV = "ARCHIVE_AFTER_DAYS"
_SAMPLE_DAYS_ENV = "SAMPLE_DAYS"
_HISTORY_START_ENV = "HISTORY_START_DATE"
_SENSORPUSH_EMAIL_ENV = "SENSORPUSH_EMAIL"
_SENSORPUSH_PASSWORD_ENV = "SENSORPUSH_PASSWORD"
_SENSORPUSH_BASE_URL_ENV = "SENSORPUSH_BASE_URL"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_HISTORY_START = date(2019, 1, 1)
DEFAULT_SENSORPUSH_BASE_URL = "https://api.sensorpush.com/api/v1"


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    job_table_path: Optional[str]
    generator_workers: int
    chunk_size: int
    generator_seed: Optional[int]
    archive_after_days: int
    sample_days: int
    history_start: date
    sensorpush_email: Optional[str]
    sensorpush_password: Optional[str]
    sensorpush_base_url: str
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        return int(candidate)
    except ValueError:
        return None


def _read_date(name: str, default: date) -> date:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        return date.fromisoformat(candidate)
    except ValueError:
        return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/records"),
        job_table_path=_read_optional_env(_JOB_TABLE_PATH_ENV, "./tmp/jobs.json"),
        generator_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        chunk_size=_read_positive_int(_CHUNK_SIZE_ENV, 1000),
        generator_seed=_read_optional_int(_SEED_ENV),
        archive_after_days=_read_positive_int(_ARCHIVE_DAYS_ENV, 20),
        sample_days=_read_positive_int(_SAMPLE_DAYS_ENV, 7),
        history_start=_read_date(_HISTORY_START_ENV, DEFAULT_HISTORY_START),
        sensorpush_email=_read_optional_env(_SENSORPUSH_EMAIL_ENV, None),
        sensorpush_password=_read_optional_env(_SENSORPUSH_PASSWORD_ENV, None),
        sensorpush_base_url=_read_str_env(
            _SENSORPUSH_BASE_URL_ENV, DEFAULT_SENSORPUSH_BASE_URL
        ),
        log_level=_read_log_level("INFO"),
    )
