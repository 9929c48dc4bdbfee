import logging
from datetime import date, datetime, timezone
from typing import Iterable, List

import pytest

from app.schemas import GenerationMode, GenerationRequest, JobStatus, SensorAssignmentIn
from datastore.job_table import JobTable
from models.profiles import ProfileTableError
from models.records import SensorAssignment, SensorReading
from services.seeding import SeedingService, SensorGenerationError
from storage.record_store import RecordStore


class RecordingStore(RecordStore):
    """Store that remembers chunk sizes and can fail for chosen sensors."""

    def __init__(self, failing: Iterable[str] = ()) -> None:
        super().__init__()
        self.failing = set(failing)
        self.chunk_sizes: List[int] = []

    def insert_readings(self, readings: Iterable[SensorReading]) -> int:
        batch = list(readings)
        if batch and batch[0].sensor_id in self.failing:
            raise RuntimeError(f"write rejected for {batch[0].sensor_id}")
        self.chunk_sizes.append(len(batch))
        return super().insert_readings(batch)


class ChunkLimitStore(RecordStore):
    """Store that accepts a fixed number of reading chunks, then fails."""

    def __init__(self, accepted_chunks: int) -> None:
        super().__init__()
        self.accepted_chunks = accepted_chunks

    def insert_readings(self, readings: Iterable[SensorReading]) -> int:
        if self.accepted_chunks == 0:
            raise OSError("disk full")
        self.accepted_chunks -= 1
        return super().insert_readings(readings)


class FlakyJobTable(JobTable):
    """Job table whose n-th ``put_item`` calls raise."""

    def __init__(self, failing_calls: Iterable[int]) -> None:
        super().__init__(name="flaky")
        self.failing_calls = set(failing_calls)
        self.calls = 0

    def put_item(self, item) -> None:
        self.calls += 1
        if self.calls in self.failing_calls:
            raise OSError("job table unavailable")
        super().put_item(item)


def _service(
    store: RecordStore, chunk_size: int = 50, seed: int = 5, jobs: JobTable | None = None
) -> SeedingService:
    return SeedingService(
        store=store,
        jobs=jobs or JobTable(name="test"),
        workers=1,
        chunk_size=chunk_size,
        seed=seed,
    )


def _request(*sensor_ids: str, location: str = "refrigerator") -> GenerationRequest:
    return GenerationRequest(
        mode=GenerationMode.custom,
        sensors=[
            SensorAssignmentIn(sensor_id=sensor_id, pharmacy_id="ph-1", location_type=location)
            for sensor_id in sensor_ids
        ],
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 3),
    )


def test_generate_for_sensor_writes_in_bounded_chunks() -> None:
    store = RecordingStore()
    service = _service(store, chunk_size=50)
    assignment = SensorAssignment(sensor_id="sp-1", pharmacy_id="ph-1", location_type="freezer")

    summary = service.generate_for_sensor(assignment, date(2024, 1, 1), date(2024, 1, 3))

    assert summary.readings_written == 72
    assert summary.location == "freezer"
    assert store.chunk_sizes == [50, 22]
    assert len(store.readings_for("sp-1")) == 72
    assert summary.alerts_written == store.stats().alerts.total
    service.shutdown()


def test_unknown_location_reports_storage_profile() -> None:
    service = _service(RecordStore())
    assignment = SensorAssignment(sensor_id="sp-1", pharmacy_id="ph-1", location_type="attic")

    summary = service.generate_for_sensor(assignment, date(2024, 1, 1), date(2024, 1, 1))

    assert summary.location == "storage"
    assert summary.readings_written == 24
    service.shutdown()


def test_seeded_service_is_reproducible() -> None:
    first, second = RecordStore(), RecordStore()
    assignment = SensorAssignment(sensor_id="sp-1", pharmacy_id="ph-1", location_type="storage")

    for store in (first, second):
        service = _service(store, seed=42)
        service.generate_for_sensor(assignment, date(2024, 1, 1), date(2024, 1, 2))
        service.shutdown()

    assert [r.temperature for r in first.readings_for("sp-1")] == [
        r.temperature for r in second.readings_for("sp-1")
    ]


def test_job_completes_for_all_sensors() -> None:
    store = RecordStore()
    service = _service(store)

    job_id = service.enqueue(_request("sp-1", "sp-2"))
    service.wait(job_id, timeout=10)

    job = service.fetch_job(job_id)
    assert job.status is JobStatus.completed
    assert job.readings_written == 144
    assert [s.sensor_id for s in job.sensors] == ["sp-1", "sp-2"]
    assert job.start_date == date(2024, 1, 1)
    assert job.end_date == date(2024, 1, 3)
    assert job.finished_at is not None
    assert isinstance(job.duration_ms, int)
    assert store.stats().readings.by_sensor == 2
    service.shutdown()


def test_failing_sensor_does_not_abort_job(caplog) -> None:
    store = RecordingStore(failing={"bad"})
    service = _service(store)

    with caplog.at_level(logging.WARNING):
        job_id = service.enqueue(_request("bad", "good"))
        service.wait(job_id, timeout=10)

    job = service.fetch_job(job_id)
    assert job.status is JobStatus.partial
    assert [s.sensor_id for s in job.sensors] == ["good"]
    assert len(job.errors) == 1
    assert job.errors[0].sensor_id == "bad"
    assert "write rejected" in job.errors[0].reason

    records = [r for r in caplog.records if r.name == "services.seeding"]
    assert any(getattr(r, "sensor_id", None) == "bad" for r in records)
    service.shutdown()


def test_job_fails_when_every_sensor_fails() -> None:
    service = _service(RecordingStore(failing={"bad"}))

    job_id = service.enqueue(_request("bad"))
    service.wait(job_id, timeout=10)

    assert service.fetch_job(job_id).status is JobStatus.failed
    service.shutdown()


def test_sensor_failing_midway_keeps_flushed_counts() -> None:
    store = ChunkLimitStore(accepted_chunks=1)
    service = _service(store, chunk_size=24)

    job_id = service.enqueue(_request("sp-1"))
    service.wait(job_id, timeout=10)

    job = service.fetch_job(job_id)
    assert job.status is JobStatus.partial
    assert job.readings_written == 24
    assert len(store.readings_for("sp-1")) == 24
    assert [(s.sensor_id, s.readings_written) for s in job.sensors] == [("sp-1", 24)]
    assert job.alerts_written == store.stats().alerts.total
    assert [(e.sensor_id, e.reason) for e in job.errors] == [("sp-1", "disk full")]
    service.shutdown()


def test_generate_for_sensor_error_carries_partial_summary() -> None:
    service = _service(ChunkLimitStore(accepted_chunks=2), chunk_size=24)
    assignment = SensorAssignment(sensor_id="sp-1", pharmacy_id="ph-1", location_type="freezer")

    with pytest.raises(SensorGenerationError) as excinfo:
        service.generate_for_sensor(assignment, date(2024, 1, 1), date(2024, 1, 3))

    assert excinfo.value.summary.readings_written == 48
    assert excinfo.value.summary.location == "freezer"
    assert isinstance(excinfo.value.__cause__, OSError)
    service.shutdown()


def test_job_table_failure_mid_job_marks_job_failed() -> None:
    store = RecordStore()
    service = _service(store, jobs=FlakyJobTable(failing_calls={2}))

    job_id = service.enqueue(_request("sp-1"))
    service.wait(job_id, timeout=10)

    job = service.fetch_job(job_id)
    assert job.status is JobStatus.failed
    assert job.finished_at is not None
    assert [e.reason for e in job.errors] == ["job table unavailable"]
    assert store.stats().readings.total == 0
    service.shutdown()


def test_failed_final_write_is_retried_as_failure() -> None:
    service = _service(RecordStore(), jobs=FlakyJobTable(failing_calls={3}))

    job_id = service.enqueue(_request("sp-1"))
    service.wait(job_id, timeout=10)

    job = service.fetch_job(job_id)
    assert job.status is JobStatus.failed
    assert job.readings_written == 72
    assert job.errors[-1].reason == "Could not record job result: job table unavailable"
    service.shutdown()


def test_list_jobs_filters_by_status() -> None:
    service = _service(RecordingStore(failing={"bad"}))
    ok = service.enqueue(_request("good"))
    service.wait(ok, timeout=10)
    broken = service.enqueue(_request("bad"))
    service.wait(broken, timeout=10)

    assert [j.job_id for j in service.list_jobs(status=JobStatus.failed)] == [broken]
    assert {j.job_id for j in service.list_jobs()} == {ok, broken}
    service.shutdown()


def test_missing_profile_table_fails_job(monkeypatch) -> None:
    def broken(_location):
        raise ProfileTableError("profile table missing")

    monkeypatch.setattr("services.seeding.get_profile", broken)
    service = _service(RecordStore())

    job_id = service.enqueue(_request("sp-1", "sp-2"))
    service.wait(job_id, timeout=10)

    job = service.fetch_job(job_id)
    assert job.status is JobStatus.failed
    assert len(job.errors) == 1
    assert job.errors[0].reason == "profile table missing"
    service.shutdown()


def test_enqueue_requires_sensors() -> None:
    service = _service(RecordStore())

    with pytest.raises(ValueError):
        service.enqueue(GenerationRequest(mode=GenerationMode.sample))
    service.shutdown()


def test_custom_mode_requires_both_dates() -> None:
    service = _service(RecordStore())
    request = GenerationRequest(
        mode=GenerationMode.custom,
        sensors=[SensorAssignmentIn(sensor_id="sp-1", pharmacy_id="ph-1")],
        start_date=date(2024, 1, 1),
    )

    with pytest.raises(ValueError):
        service.enqueue(request)
    service.shutdown()


def test_resolve_range_for_each_mode() -> None:
    service = _service(RecordStore())
    today = date(2024, 3, 10)

    sample = service.resolve_range(GenerationRequest(mode=GenerationMode.sample), today=today)
    full = service.resolve_range(GenerationRequest(mode=GenerationMode.full), today=today)

    assert sample == (date(2024, 3, 3), today)
    assert full == (date(2019, 1, 1), today)
    service.shutdown()


def test_fetch_missing_job_raises() -> None:
    service = _service(RecordStore())

    with pytest.raises(KeyError):
        service.fetch_job("missing")
    service.shutdown()


def test_archived_flags_use_generation_time() -> None:
    store = RecordStore()
    service = _service(store)
    assignment = SensorAssignment(sensor_id="sp-1", pharmacy_id="ph-1", location_type="storage")

    service.generate_for_sensor(
        assignment,
        date(2024, 1, 1),
        date(2024, 1, 1),
        now=datetime(2024, 1, 10, tzinfo=timezone.utc),
    )

    assert all(r.archived is False for r in store.readings_for("sp-1"))
    service.shutdown()
