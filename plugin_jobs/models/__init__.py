"""
Data models for plugin-jobs.

Provides internal job records, the durable stores, the job queue, and
Pydantic response models.
"""

from plugin_jobs.models.jobs import (
    JobAction,
    JobRecord,
    JobStatus,
    LogEntry,
    generate_job_id,
)
from plugin_jobs.models.json_store import JsonFileJobStore
from plugin_jobs.models.queue import JobQueue
from plugin_jobs.models.responses import (
    CancelJobResponse,
    JobDetailResponse,
    JobSummary,
    ListJobsResponse,
    SubmitJobResponse,
)
from plugin_jobs.models.sqlite_store import SQLiteJobStore
from plugin_jobs.models.store import JobStore

__all__ = [
    # Response models
    "SubmitJobResponse",
    "JobSummary",
    "ListJobsResponse",
    "JobDetailResponse",
    "CancelJobResponse",
    # Job tracking
    "JobAction",
    "JobStatus",
    "JobRecord",
    "LogEntry",
    "generate_job_id",
    # Storage
    "JobStore",
    "JsonFileJobStore",
    "SQLiteJobStore",
    "JobQueue",
]
