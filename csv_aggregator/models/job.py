# models/job.py

"""
Job-related data models
"""

from pydantic import BaseModel, ConfigDict
from typing import Optional
from enum import Enum


class JobState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not JobState.PROCESSING


class JobStatus(BaseModel):
    """Point-in-time snapshot of a job; never mutated once built"""
    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobState
    download_url: Optional[str] = None
    processing_time: Optional[float] = None
    category_count: Optional[int] = None
    records_accepted: int = 0
    error: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class UploadResponse(BaseModel):
    job_id: str
    message: str


class ClearJobsResponse(BaseModel):
    message: str
    active_jobs: int
