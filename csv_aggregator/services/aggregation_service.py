# services/aggregation_service.py

"""
Aggregation service - runs CSV aggregation jobs on a bounded worker pool
"""

import os
import time
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from contextlib import closing
from pathlib import Path
from typing import Dict, Optional, Union

from csv_aggregator.core.config import Settings
from csv_aggregator.core.exceptions import (
    AccessError,
    AggregatorError,
    CapacityError,
    JobCancelledError,
)
from csv_aggregator.models.job import JobStatus
from csv_aggregator.services.csv_parser import iter_records
from csv_aggregator.services.job_service import JobRegistry
from csv_aggregator.services.reducer import DEFAULT_BATCH_SIZE, aggregate
from csv_aggregator.services.result_writer import result_filename, write_result_csv

logger = logging.getLogger(__name__)

INPUT_CLEANUP_POLICIES = ("on_success", "always", "never")


class AggregationService:
    """Accepts input files, aggregates them in the background, reports status.

    At most ``max_workers`` jobs run at once and up to ``max_queued_jobs``
    more wait for a worker. Beyond that ``submit`` raises CapacityError, or
    waits for a free slot when ``block_when_full`` is set.
    """

    def __init__(
            self,
            registry: JobRegistry,
            upload_dir: Union[str, Path] = "uploads",
            result_dir: Union[str, Path] = "results",
            batch_size: int = DEFAULT_BATCH_SIZE,
            max_workers: int = 4,
            max_queued_jobs: int = 100,
            block_when_full: bool = False,
            submit_timeout_seconds: Optional[float] = None,
            input_cleanup: str = "on_success"
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if max_queued_jobs < 0:
            raise ValueError("max_queued_jobs must not be negative")
        if input_cleanup not in INPUT_CLEANUP_POLICIES:
            raise ValueError(f"Unknown input cleanup policy: {input_cleanup}")

        self.registry = registry
        self.upload_dir = Path(upload_dir)
        self.result_dir = Path(result_dir)
        self.batch_size = batch_size
        self.block_when_full = block_when_full
        self.submit_timeout_seconds = submit_timeout_seconds
        self.input_cleanup = input_cleanup

        self._setup_directories()

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="aggregation-worker"
        )
        self._slots = threading.BoundedSemaphore(max_workers + max_queued_jobs)
        self._cancel_events: Dict[str, threading.Event] = {}
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

        logger.info(
            f"AggregationService initialized: max_workers={max_workers}, "
            f"max_queued_jobs={max_queued_jobs}, batch_size={batch_size}, "
            f"input_cleanup={input_cleanup}"
        )

    @classmethod
    def from_settings(cls, settings: Settings, registry: Optional[JobRegistry] = None) -> "AggregationService":
        return cls(
            registry=registry if registry is not None else JobRegistry(),
            upload_dir=settings.upload_dir,
            result_dir=settings.result_dir,
            batch_size=settings.batch_size,
            max_workers=settings.max_workers,
            max_queued_jobs=settings.max_queued_jobs,
            block_when_full=settings.block_when_full,
            submit_timeout_seconds=settings.submit_timeout_seconds,
            input_cleanup=settings.input_cleanup
        )

    def _setup_directories(self):
        """Create upload and result directories"""
        for dir_path in (self.upload_dir, self.result_dir):
            dir_path.mkdir(parents=True, exist_ok=True)
            logger.debug(f"  Created/verified directory: {dir_path}")

    def submit(self, file_path: Union[str, Path]) -> str:
        """Start aggregating ``file_path`` in the background and return the job id"""
        if self.block_when_full:
            acquired = self._slots.acquire(timeout=self.submit_timeout_seconds)
        else:
            acquired = self._slots.acquire(blocking=False)

        if not acquired:
            logger.warning(f"Rejected submission for {file_path}: worker pool is at capacity")
            raise CapacityError("Too many jobs in progress, try again later")

        job_id = self.registry.create()
        cancel_event = threading.Event()

        try:
            with self._lock:
                self._cancel_events[job_id] = cancel_event
                future = self._executor.submit(
                    self._run_job, job_id, Path(file_path), cancel_event
                )
                self._futures[job_id] = future
        except RuntimeError as e:
            # Executor already shut down
            with self._lock:
                self._cancel_events.pop(job_id, None)
            self.registry.mark_failed(job_id, f"Service is shutting down: {e}")
            self._slots.release()
            raise

        future.add_done_callback(lambda _: self._forget_future(job_id))

        logger.info(f"Submitted job {job_id} for {file_path}")
        return job_id

    def _forget_future(self, job_id: str):
        with self._lock:
            self._futures.pop(job_id, None)

    def query(self, job_id: str) -> Optional[JobStatus]:
        """Current snapshot of a job, or None if the id is unknown"""
        return self.registry.get(job_id)

    def result_location(self, filename: str) -> Path:
        """Path of a result artifact; callers must reject traversal first"""
        return self.result_dir / filename

    def cancel(self, job_id: str) -> bool:
        """Ask a running or queued job to stop at its next checkpoint.

        Returns False when the job is unknown or already finished. A True
        result means the request was delivered: a job that is past its last
        checkpoint still completes normally.
        """
        with self._lock:
            event = self._cancel_events.get(job_id)

        if event is None:
            return False

        event.set()

        job = self.registry.get(job_id)
        if job is None or job.status.is_terminal:
            return False

        logger.info(f"Cancellation requested for job {job_id}")
        return True

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[JobStatus]:
        """Block until the job leaves processing (or timeout) and return its snapshot"""
        with self._lock:
            future = self._futures.get(job_id)

        if future is not None:
            try:
                # The worker records its own failures, so only the wait can raise
                future.exception(timeout=timeout)
            except FutureTimeoutError:
                logger.debug(f"Timed out after {timeout}s waiting for job {job_id}")

        return self.registry.get(job_id)

    def shutdown(self, wait: bool = True):
        """Stop accepting work and optionally wait for running jobs"""
        logger.info("Shutting down AggregationService")
        self._executor.shutdown(wait=wait)

    def _run_job(self, job_id: str, file_path: Path, cancel_event: threading.Event):
        """Background task for a single aggregation job"""
        start_time = time.monotonic()
        succeeded = False
        logger.info(f"Job {job_id} started: {file_path}")

        try:
            if cancel_event.is_set():
                raise JobCancelledError()

            def checkpoint(records_accepted: int):
                self.registry.update_progress(job_id, records_accepted)
                logger.debug(f"Job {job_id} checkpoint: {records_accepted} records")
                if cancel_event.is_set():
                    raise JobCancelledError()

            try:
                input_file = open(file_path, 'rb')
            except OSError as e:
                raise AccessError(f"Failed to open file: {e}") from e

            with input_file, closing(iter_records(input_file)) as records:
                result = aggregate(records, self.batch_size, checkpoint)

            output_name = result_filename(job_id)
            write_result_csv(self.result_location(output_name), result.totals)

            processing_time = time.monotonic() - start_time
            self.registry.mark_completed(
                job_id,
                download_url=f"/download/{output_name}",
                processing_time=processing_time,
                category_count=result.category_count,
                records_accepted=result.records_accepted
            )
            succeeded = True
            logger.info(
                f"Job {job_id} completed in {processing_time:.3f}s: "
                f"{result.records_accepted} records, {result.category_count} categories"
            )

        except AggregatorError as e:
            logger.warning(f"Job {job_id} failed: {e}")
            self.registry.mark_failed(job_id, str(e))

        except Exception as e:
            logger.error(f"Unexpected error in job {job_id}: {e}", exc_info=True)
            self.registry.mark_failed(job_id, f"Internal error: {e}")

        finally:
            self._cleanup_input(job_id, file_path, succeeded)
            with self._lock:
                self._cancel_events.pop(job_id, None)
            self._slots.release()

    def _cleanup_input(self, job_id: str, file_path: Path, succeeded: bool):
        if self.input_cleanup == "never":
            return
        if self.input_cleanup == "on_success" and not succeeded:
            return

        try:
            file_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Job {job_id}: could not remove input {file_path}: {e}")
