# plugin_jobs/models/responses.py
"""
Pydantic response models for tool outputs.

All tools return structured responses using these models for consistency.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from plugin_jobs.models.jobs import JobRecord


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class SubmitJobResponse(BaseModel):
    """Response from submit_job tool."""

    job_id: str = Field(description="Unique job identifier for tracking")
    action: str = Field(description="Requested plugin operation")
    plugin_name: str | None = Field(default=None, description="Target plugin name")
    status: str = Field(description="Job status (always 'queued' for new jobs)")
    created_at: str = Field(description="Creation timestamp (ISO format)")
    next_steps: str = Field(
        default="Use get_job with job_id to monitor progress",
        description="Instructions for monitoring job progress",
    )


class LogLine(BaseModel):
    """One job log line."""

    timestamp: str = Field(description="When the line was appended (ISO format)")
    message: str = Field(description="Log message")
    percent: float | None = Field(default=None, description="Download progress if reported")


class JobSummary(BaseModel):
    """Summary info for one job in list_jobs output."""

    job_id: str = Field(description="Job identifier")
    action: str = Field(description="Requested plugin operation")
    plugin_name: str | None = Field(default=None, description="Target plugin name")
    status: str = Field(description="Current job status")
    created_at: str = Field(description="Creation timestamp (ISO format)")
    started_at: str | None = Field(default=None, description="When execution started")
    completed_at: str | None = Field(default=None, description="When the job finished")

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobSummary":
        return cls(
            job_id=record.job_id,
            action=record.action.value,
            plugin_name=record.plugin_name,
            status=record.status.value,
            created_at=record.created_at.isoformat(),
            started_at=_iso(record.started_at),
            completed_at=_iso(record.completed_at),
        )


class ListJobsResponse(BaseModel):
    """Response from list_jobs tool."""

    jobs: list[JobSummary] = Field(default_factory=list, description="Jobs, newest first")
    total: int = Field(description="Number of jobs returned")
    current_job_id: str | None = Field(
        default=None, description="Job the worker is executing right now"
    )


class JobDetailResponse(JobSummary):
    """Response from get_job tool: the full job record."""

    url: str | None = Field(default=None, description="Download URL if any")
    options: dict[str, Any] = Field(default_factory=dict, description="Action options")
    logs: list[LogLine] = Field(default_factory=list, description="Execution log, oldest first")
    error: dict[str, Any] | None = Field(default=None, description="Error if the job failed")
    result: dict[str, Any] | None = Field(default=None, description="Result if the job completed")
    cancel_requested: bool = Field(default=False, description="Whether cancellation was requested")

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobDetailResponse":
        summary = JobSummary.from_record(record)
        return cls(
            **summary.model_dump(),
            url=record.url,
            options=record.options,
            logs=[
                LogLine(
                    timestamp=entry.timestamp.isoformat(),
                    message=entry.message,
                    percent=entry.percent,
                )
                for entry in record.logs
            ],
            error=record.error,
            result=record.result,
            cancel_requested=record.cancel_requested,
        )


class CancelJobResponse(BaseModel):
    """Response from cancel_job tool."""

    job_id: str = Field(description="Job identifier")
    status: str = Field(description="Job status at the time of the request")
    cancel_requested: bool = Field(default=True, description="Cancellation flag recorded")
    message: str = Field(
        default="Cancellation requested. The job stops at its next checkpoint if it honours cancellation.",
        description="Human-readable confirmation message",
    )
