"""Generation job records, kept in memory and mirrored to a JSON file."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from app.schemas import GenerationJob, GenerationMode, JobError, JobStatus
from settings import get_settings

logger = logging.getLogger(__name__)

_jobs_adapter = TypeAdapter(List[GenerationJob])

UNFINISHED = frozenset({JobStatus.pending, JobStatus.running})
INTERRUPTED_REASON = "Service stopped before the job finished."


class JobTable:
    """Job records keyed by id. Reads return copies; ``put_item`` is the only write."""

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._jobs: Dict[str, GenerationJob] = {}
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._restore(persistence_path)

    def put_item(self, item: GenerationJob) -> None:
        with self._lock:
            self._jobs[item.job_id] = item.model_copy(deep=True)
            self._write()

    def get_item(self, key: str) -> Optional[GenerationJob]:
        with self._lock:
            job = self._jobs.get(key)
            return None if job is None else job.model_copy(deep=True)

    def scan(
        self,
        status: Optional[JobStatus] = None,
        mode: Optional[GenerationMode] = None,
        limit: Optional[int] = None,
    ) -> List[GenerationJob]:
        """Jobs matching the filters, most recently requested first."""
        with self._lock:
            matches = [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if (status is None or job.status is status)
                and (mode is None or job.mode is mode)
            ]
        matches.sort(key=lambda job: job.requested_at, reverse=True)
        return matches if limit is None else matches[:limit]

    def _write(self) -> None:
        if not self.persistence_path:
            return
        ordered = sorted(self._jobs.values(), key=lambda job: job.requested_at)
        self.persistence_path.write_bytes(_jobs_adapter.dump_json(ordered, indent=2))

    def _restore(self, path: Path) -> None:
        if not path.exists():
            return
        try:
            jobs = _jobs_adapter.validate_json(path.read_bytes() or b"[]")
        except (OSError, ValidationError) as exc:
            logger.warning(
                "Ignoring unreadable job table",
                extra={"reason": f"{path}: {exc.__class__.__name__}"},
            )
            return

        # Workers from an earlier process are gone; their jobs can never finish.
        interrupted = 0
        now = datetime.now(timezone.utc)
        for job in jobs:
            if job.status in UNFINISHED:
                job.status = JobStatus.failed
                job.finished_at = now
                job.errors.append(JobError(reason=INTERRUPTED_REASON))
                interrupted += 1
            self._jobs[job.job_id] = job
        if interrupted:
            logger.warning(
                "Marked interrupted generation jobs as failed",
                extra={"error_count": interrupted},
            )
            self._write()


@lru_cache
def build_default_job_table(path: Optional[str] = None) -> JobTable:
    settings = get_settings()
    table_path = settings.job_table_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return JobTable(name="generation_jobs", persistence_path=persistence)
