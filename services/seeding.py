"""Background orchestration for synthetic data generation jobs."""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from app.schemas import (
    GenerationJob,
    GenerationMode,
    GenerationRequest,
    JobError,
    JobStatus,
    SensorSummary,
)
from datastore.job_table import JobTable, build_default_job_table
from models.profiles import ProfileTableError, get_profile
from models.records import SensorAssignment
from services.generator import SyntheticSeriesGenerator, iter_chunks
from settings import DEFAULT_HISTORY_START, get_settings
from storage.record_store import RecordStore, build_default_store

logger = logging.getLogger(__name__)


class SensorGenerationError(RuntimeError):
    """A sensor failed mid-series; ``summary`` counts the chunks already stored."""

    def __init__(self, summary: SensorSummary, cause: Exception) -> None:
        super().__init__(str(cause))
        self.summary = summary


class SeedingService:
    """Coordinates generation jobs, chunked persistence, and job lookup."""

    def __init__(
        self,
        store: RecordStore,
        jobs: JobTable,
        workers: int = 4,
        chunk_size: int = 1000,
        seed: Optional[int] = None,
        sample_days: int = 7,
        history_start: date = DEFAULT_HISTORY_START,
        archive_after: timedelta = timedelta(days=20),
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {chunk_size}")
        self.store = store
        self.jobs = jobs
        self.chunk_size = chunk_size
        self.seed = seed
        self.sample_days = sample_days
        self.history_start = history_start
        self.archive_after = archive_after
        self.executor = ThreadPoolExecutor(max_workers=workers)
        self._futures: Dict[str, Future[None]] = {}
        self._futures_lock = Lock()

    def resolve_range(
        self, request: GenerationRequest, today: Optional[date] = None
    ) -> Tuple[date, date]:
        """Turn a request's mode into a concrete inclusive date range."""
        end = today or datetime.now(timezone.utc).date()
        if request.mode is GenerationMode.sample:
            return end - timedelta(days=self.sample_days), end
        if request.mode is GenerationMode.full:
            return self.history_start, end
        if request.start_date is None or request.end_date is None:
            raise ValueError("Custom generation requires both start_date and end_date.")
        return request.start_date, request.end_date

    def enqueue(self, request: GenerationRequest) -> str:
        """Record a pending job and start it on the worker pool."""
        if not request.sensors:
            raise ValueError("At least one sensor assignment is required.")
        start, end = self.resolve_range(request)

        job_id = str(uuid4())
        self.jobs.put_item(
            GenerationJob(
                job_id=job_id,
                mode=request.mode,
                status=JobStatus.pending,
                requested_at=datetime.now(timezone.utc),
                start_date=start,
                end_date=end,
            )
        )

        future = self.executor.submit(self.run_job, job_id, request, start, end)
        with self._futures_lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda _f, jid=job_id: self._clear_future(jid))
        logger.info(
            "Queued generation job",
            extra={"job_id": job_id, "mode": request.mode.value},
        )
        return job_id

    def fetch_job(self, job_id: str) -> GenerationJob:
        job = self.jobs.get_item(job_id)
        if job is None:
            raise KeyError(f"Generation job {job_id!r} not found.")
        return job

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        mode: Optional[GenerationMode] = None,
        limit: Optional[int] = None,
    ) -> List[GenerationJob]:
        return self.jobs.scan(status=status, mode=mode, limit=limit)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _clear_future(self, job_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def run_job(
        self, job_id: str, request: GenerationRequest, start: date, end: date
    ) -> None:
        start_time = time.perf_counter()
        job = self.fetch_job(job_id)
        summaries: List[SensorSummary] = []
        errors: List[JobError] = []
        status = JobStatus.failed

        try:
            job.status = JobStatus.running
            self.jobs.put_item(job)
            for sensor in request.sensors:
                assignment = sensor.to_assignment()
                try:
                    summaries.append(self.generate_for_sensor(assignment, start, end))
                except ProfileTableError as exc:
                    logger.error(
                        "Profile table unavailable; aborting job",
                        extra={"job_id": job_id, "reason": str(exc)},
                    )
                    errors.append(JobError(reason=str(exc)))
                    break
                except SensorGenerationError as exc:
                    logger.warning(
                        "Skipping sensor after generation failure",
                        extra={
                            "job_id": job_id,
                            "sensor_id": assignment.sensor_id,
                            "readings_written": exc.summary.readings_written,
                            "reason": str(exc),
                        },
                    )
                    errors.append(JobError(sensor_id=assignment.sensor_id, reason=str(exc)))
                    # Chunks flushed before the failure stay in the store.
                    if exc.summary.readings_written or exc.summary.alerts_written:
                        summaries.append(exc.summary)

            if not errors:
                status = JobStatus.completed
            elif summaries:
                status = JobStatus.partial
        except Exception as exc:  # noqa: BLE001 - a job must never stay running
            logger.exception("Generation job crashed", extra={"job_id": job_id})
            errors.append(JobError(reason=str(exc)))
            status = JobStatus.failed
        finally:
            self._finish(job, status, summaries, errors, start_time)

    def _finish(
        self,
        job: GenerationJob,
        status: JobStatus,
        summaries: List[SensorSummary],
        errors: List[JobError],
        start_time: float,
    ) -> None:
        job.status = status
        job.sensors = summaries
        job.errors = errors
        job.readings_written = sum(s.readings_written for s in summaries)
        job.alerts_written = sum(s.alerts_written for s in summaries)
        job.finished_at = datetime.now(timezone.utc)
        job.duration_ms = int((time.perf_counter() - start_time) * 1000)
        try:
            self.jobs.put_item(job)
        except Exception as exc:  # noqa: BLE001 - retried once as a failed record
            logger.exception("Could not record job result", extra={"job_id": job.job_id})
            job.status = JobStatus.failed
            job.errors = [*errors, JobError(reason=f"Could not record job result: {exc}")]
            self.jobs.put_item(job)

        logger.info(
            "Finished generation job",
            extra={
                "job_id": job.job_id,
                "status": job.status.value,
                "readings_written": job.readings_written,
                "alerts_written": job.alerts_written,
                "duration_ms": job.duration_ms,
                "error_count": len(job.errors) or None,
            },
        )

    def generate_for_sensor(
        self,
        assignment: SensorAssignment,
        start: date | datetime,
        end: date | datetime,
        now: Optional[datetime] = None,
    ) -> SensorSummary:
        """Generate and persist one sensor's series in bounded chunks."""
        profile = get_profile(assignment.location_type)
        # Same seed, same sensor -> same series; sensors still differ from each other.
        seed = None if self.seed is None else f"{self.seed}:{assignment.sensor_id}"
        generator = SyntheticSeriesGenerator(
            rng=random.Random(seed),
            archive_after=self.archive_after,
        )
        samples = generator.generate(
            profile,
            start,
            end,
            sensor_id=assignment.sensor_id,
            pharmacy_id=assignment.pharmacy_id,
            location=assignment.location_type,
            now=now,
        )

        summary = SensorSummary(sensor_id=assignment.sensor_id, location=profile.location)
        try:
            for chunk in iter_chunks(samples, self.chunk_size):
                summary.readings_written += self.store.insert_readings(
                    sample.reading for sample in chunk
                )
                alerts = [sample.alert for sample in chunk if sample.alert is not None]
                if alerts:
                    summary.alerts_written += self.store.insert_alerts(alerts)
        except Exception as exc:
            raise SensorGenerationError(summary, exc) from exc

        logger.info(
            "Generated data for sensor",
            extra={
                "sensor_id": assignment.sensor_id,
                "pharmacy_id": assignment.pharmacy_id,
                "location": profile.location,
                "readings_written": summary.readings_written,
                "alerts_written": summary.alerts_written,
            },
        )
        return summary


@lru_cache
def build_default_seeding_service(
    workers: Optional[int] = None,
) -> SeedingService:
    """Factory that wires the seeding service from settings."""
    settings = get_settings()
    return SeedingService(
        store=build_default_store(),
        jobs=build_default_job_table(),
        workers=workers or settings.generator_workers,
        chunk_size=settings.chunk_size,
        seed=settings.generator_seed,
        sample_days=settings.sample_days,
        history_start=settings.history_start,
        archive_after=timedelta(days=settings.archive_after_days),
    )
