from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable

from datastore.job_table import build_default_job_table
from services.seeding import build_default_seeding_service
from settings import get_settings
from storage.record_store import build_default_store


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


CACHES = (
    get_settings,
    build_default_store,
    build_default_job_table,
    build_default_seeding_service,
)


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    store_root = tmp_path / "records"
    table_path = tmp_path / "jobs.json"

    monkeypatch.setenv("RECORD_STORE_PATH", str(store_root))
    monkeypatch.setenv("JOB_TABLE_PATH", str(table_path))
    monkeypatch.setenv("GENERATOR_WORKER_COUNT", "2")
    monkeypatch.setenv("GENERATOR_CHUNK_SIZE", "250")
    monkeypatch.setenv("GENERATOR_SEED", "17")
    monkeypatch.setenv("ARCHIVE_AFTER_DAYS", "30")
    monkeypatch.setenv("SAMPLE_DAYS", "3")
    monkeypatch.setenv("HISTORY_START_DATE", "2021-06-01")

    _clear_caches(CACHES)

    store = build_default_store()
    table = build_default_job_table()
    service = build_default_seeding_service()

    try:
        assert store.root_path == store_root
        assert table.persistence_path == table_path
        assert service.executor._max_workers == 2
        assert service.chunk_size == 250
        assert service.seed == 17
        assert service.archive_after == timedelta(days=30)
        assert service.sample_days == 3
        assert service.history_start == date(2021, 6, 1)
    finally:
        service.shutdown()
        _clear_caches(CACHES)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("GENERATOR_WORKER_COUNT", "zero")
    monkeypatch.setenv("GENERATOR_CHUNK_SIZE", "-5")
    monkeypatch.setenv("GENERATOR_SEED", "  ")
    monkeypatch.setenv("HISTORY_START_DATE", "last year")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("RECORD_STORE_PATH", " ")
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert settings.generator_workers == 4
        assert settings.chunk_size == 1000
        assert settings.generator_seed is None
        assert settings.history_start == date(2019, 1, 1)
        assert settings.log_level == "DEBUG"
        assert settings.store_path is None
        assert settings.archive_after_days == 20
    finally:
        get_settings.cache_clear()
