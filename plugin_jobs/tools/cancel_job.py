# plugin_jobs/tools/cancel_job.py
"""
cancel_job tool implementation.

Records a cancellation request for a queued or running job.
"""

import logging

from fastmcp.exceptions import ToolError

from plugin_jobs.errors import JobNotFoundError, NotCancellableError
from plugin_jobs.models.queue import JobQueue
from plugin_jobs.models.responses import CancelJobResponse
from plugin_jobs.validation.sanitize import sanitize_job_id

logger = logging.getLogger(__name__)


async def cancel_job(job_id: str, queue: JobQueue) -> dict:
    """
    Request cancellation of a job.

    Only records the request; a running job stops at its next checkpoint,
    and work it already committed is kept.

    Returns:
        CancelJobResponse as dict

    Raises:
        ToolError: If job_id is invalid, not found, or the job already finished
    """
    sanitized_id = sanitize_job_id(job_id)

    try:
        record = await queue.request_cancel(sanitized_id)
    except JobNotFoundError:
        raise ToolError(
            f"Job '{sanitized_id}' not found. Use list_jobs to see available jobs."
        )
    except NotCancellableError as e:
        raise ToolError(str(e))

    logger.info(f"Cancel requested for job {sanitized_id}")

    response = CancelJobResponse(job_id=sanitized_id, status=record.status.value)
    return response.model_dump()
