# plugin_jobs/tools/list_jobs.py
"""
list_jobs tool implementation.

Lists jobs newest first, optionally filtered by status.
"""

import logging
from typing import TYPE_CHECKING

from fastmcp.exceptions import ToolError

from plugin_jobs.models.queue import JobQueue
from plugin_jobs.models.responses import JobSummary, ListJobsResponse
from plugin_jobs.validation.sanitize import sanitize_status

if TYPE_CHECKING:
    from plugin_jobs.background.worker import BackgroundWorker

logger = logging.getLogger(__name__)


async def list_jobs(
    queue: JobQueue,
    status: str | None = None,
    limit: int | None = None,
    worker: "BackgroundWorker | None" = None,
) -> dict:
    """
    List plugin jobs.

    Args:
        queue: Job queue instance
        status: Only include jobs in this status
        limit: Maximum number of most recent jobs
        worker: Optional worker, to report the job currently executing

    Returns:
        ListJobsResponse as dict

    Raises:
        ToolError: If status or limit is invalid
    """
    wanted = sanitize_status(status)
    if limit is not None and limit < 1:
        raise ToolError(f"Invalid limit {limit}: must be a positive integer")

    records = await queue.list_jobs(status=wanted, limit=limit)
    summaries = [JobSummary.from_record(r) for r in records]

    response = ListJobsResponse(
        jobs=summaries,
        total=len(summaries),
        current_job_id=worker.current_job_id if worker else None,
    )

    logger.info(f"Listed {len(summaries)} job(s)")
    return response.model_dump()
