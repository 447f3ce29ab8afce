# plugin_jobs/tools/submit_job.py
"""
submit_job tool implementation.

Validates inputs and queues a plugin operation. Returns immediately; the
background worker executes the job later.
"""

import logging
from typing import Any

from fastmcp.exceptions import ToolError

from plugin_jobs.models.queue import JobQueue
from plugin_jobs.models.responses import SubmitJobResponse
from plugin_jobs.validation.sanitize import validate_job_request

logger = logging.getLogger(__name__)


async def submit_job(
    action: str,
    plugin_name: str | None,
    url: str | None,
    options: dict[str, Any] | None,
    queue: JobQueue,
) -> dict:
    """
    Queue a new plugin job.

    Args:
        action: install, uninstall, update, enable or disable
        plugin_name: Target plugin (required except for install)
        url: Download URL (required for install and update)
        options: Action options (customName, autoUpdate, deleteConfigs)
        queue: Job queue instance

    Returns:
        SubmitJobResponse as dict

    Raises:
        ToolError: If the request is invalid
    """
    job_action, name, clean_url, clean_options = validate_job_request(
        action, plugin_name, url, options
    )

    try:
        job_id = await queue.enqueue(job_action, name, clean_url, clean_options)
    except ValueError as e:
        # ID collision, or options that cannot be stored
        logger.error(f"Could not create job: {e}")
        raise ToolError(f"Cannot create job: {e}")

    record = await queue.get(job_id)
    created_at = record.created_at.isoformat() if record else ""

    logger.info(f"Submitted {job_action.value} job {job_id}")

    response = SubmitJobResponse(
        job_id=job_id,
        action=job_action.value,
        plugin_name=name,
        status="queued",
        created_at=created_at,
    )
    return response.model_dump()
