"""In-process job store.

State machine: ``queued -> running -> {completed | failed}``. All
transitions happen under one lock; the first terminal transition for a job
wins and later ones are ignored, so a timeout racing a late success always
resolves the same way.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict

from protoreg.domain.entities import CompilationResult, Job, JobStatus
from protoreg.domain.errors import JobNotFoundError

logger = logging.getLogger(__name__)

_ALLOWED = {
    JobStatus.QUEUED: {JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class JobStore:
    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job_id: str, language: str) -> Job:
        """Register a queued job.

        A terminal job with the same id is replaced by a fresh attempt; a
        job that is still queued or running is returned unchanged.
        """
        with self._lock:
            existing = self._jobs.get(job_id)
            if existing is not None and not existing.status.is_terminal:
                return existing.snapshot()
            job = Job(id=job_id, language=language)
            self._jobs[job_id] = job
            return job.snapshot()

    def transition(self, job_id: str, status: JobStatus) -> bool:
        """Move a job to ``status``; returns False when the move is not allowed."""
        with self._lock:
            job = self._require(job_id)
            if status not in _ALLOWED[job.status]:
                logger.debug(f"Ignoring {job.status.value} -> {status.value} for job {job_id}")
                return False
            job.status = status
            now = datetime.now()
            if status is JobStatus.RUNNING:
                job.started_at = now
            elif status.is_terminal:
                job.completed_at = now
            return True

    def complete(self, job_id: str, result: CompilationResult) -> bool:
        with self._lock:
            job = self._require(job_id)
            if job.status.is_terminal:
                logger.debug(f"Job {job_id} already {job.status.value}, dropping completion")
                return False
            job.status = JobStatus.COMPLETED
            job.completed_at = datetime.now()
            job.cache_hit = result.cache_hit
            job.result = result
            job.error = ""
            return True

    def fail(self, job_id: str, error: str, result: CompilationResult | None = None) -> bool:
        with self._lock:
            job = self._require(job_id)
            if job.status.is_terminal:
                logger.debug(f"Job {job_id} already {job.status.value}, dropping failure")
                return False
            job.status = JobStatus.FAILED
            job.completed_at = datetime.now()
            job.error = error
            job.result = result
            return True

    def get(self, job_id: str) -> Job:
        with self._lock:
            return self._require(job_id).snapshot()

    def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job
