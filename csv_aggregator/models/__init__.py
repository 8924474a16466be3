# models/__init__.py

from .job import JobState, JobStatus, UploadResponse, ClearJobsResponse

__all__ = [
    'JobState',
    'JobStatus',
    'UploadResponse',
    'ClearJobsResponse'
]
