# plugin_jobs/tools/get_job.py
"""
get_job tool implementation.

Returns the full job record including its log trail.
"""

import logging

from fastmcp.exceptions import ToolError

from plugin_jobs.models.queue import JobQueue
from plugin_jobs.models.responses import JobDetailResponse
from plugin_jobs.validation.sanitize import sanitize_job_id

logger = logging.getLogger(__name__)


async def get_job(job_id: str, queue: JobQueue) -> dict:
    """
    Get a job by ID.

    A failed job is returned normally (status, error and logs); only an
    unknown ID raises.

    Raises:
        ToolError: If job_id is invalid or not found
    """
    sanitized_id = sanitize_job_id(job_id)

    record = await queue.get(sanitized_id)
    if not record:
        raise ToolError(
            f"Job '{sanitized_id}' not found. Use list_jobs to see available jobs."
        )

    return JobDetailResponse.from_record(record).model_dump()
