# services/job_service.py

"""
Job registry - thread-safe store of aggregation job state
"""

import uuid
import logging
import threading
from typing import Dict, Optional
from datetime import datetime
from csv_aggregator.models.job import JobStatus, JobState

logger = logging.getLogger(__name__)


class JobRegistry:
    """Keyed store of job snapshots.

    Entries are immutable JobStatus models; every mutation builds a new model
    and swaps it in under the lock, so readers only ever see whole updates.
    Mutators ignore unknown ids and jobs that already reached a terminal state.
    """

    def __init__(self):
        self._jobs: Dict[str, JobStatus] = {}
        self._lock = threading.Lock()

    def create(self) -> str:
        """Create a new job in processing state"""
        job = JobStatus(
            job_id=str(uuid.uuid4()),
            status=JobState.PROCESSING,
            created_at=datetime.now().isoformat()
        )

        with self._lock:
            self._jobs[job.job_id] = job

        return job.job_id

    def get(self, job_id: str) -> Optional[JobStatus]:
        """Get job status"""
        with self._lock:
            return self._jobs.get(job_id)

    def _replace(self, job_id: str, **changes) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return False
            self._jobs[job_id] = job.model_copy(update=changes)
            return True

    def update_progress(self, job_id: str, records_accepted: int):
        """Record a progress checkpoint without touching the status"""
        self._replace(job_id, records_accepted=records_accepted)

    def mark_completed(
            self,
            job_id: str,
            download_url: str,
            processing_time: float,
            category_count: int,
            records_accepted: int
    ):
        """Mark job as completed"""
        self._replace(
            job_id,
            status=JobState.COMPLETED,
            download_url=download_url,
            processing_time=processing_time,
            category_count=category_count,
            records_accepted=records_accepted,
            completed_at=datetime.now().isoformat()
        )

    def mark_failed(self, job_id: str, error: str):
        """Mark job as failed; a failed job has no aggregated rows"""
        self._replace(
            job_id,
            status=JobState.FAILED,
            error=error,
            records_accepted=0,
            completed_at=datetime.now().isoformat()
        )

    def clear_finished_jobs(self) -> int:
        """Drop completed and failed jobs and return how many were dropped"""
        with self._lock:
            finished = [jid for jid, job in self._jobs.items() if job.status.is_terminal]
            for jid in finished:
                del self._jobs[jid]

        logger.info(f"Cleared {len(finished)} finished jobs")
        return len(finished)

    def get_active_jobs_count(self) -> int:
        """Get count of jobs still processing"""
        with self._lock:
            return sum(1 for job in self._jobs.values() if not job.status.is_terminal)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
