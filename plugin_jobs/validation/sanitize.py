# plugin_jobs/validation/sanitize.py
"""
Input sanitization and validation utilities.

Validates job submissions before they reach the queue.
"""

import logging
import re
from typing import Any
from urllib.parse import urlparse

from fastmcp.exceptions import ToolError

from plugin_jobs.models.jobs import JobAction, JobStatus

logger = logging.getLogger(__name__)

VALID_ACTIONS = [a.value for a in JobAction]
VALID_STATUSES = [s.value for s in JobStatus]

# Actions that need each parameter
URL_REQUIRED = {JobAction.INSTALL, JobAction.UPDATE}
NAME_REQUIRED = {JobAction.UNINSTALL, JobAction.UPDATE, JobAction.ENABLE, JobAction.DISABLE}


def sanitize_job_id(job_id: str) -> str:
    """
    Sanitize and validate job ID.

    Job IDs must be alphanumeric with hyphens only, 8-64 characters.

    Raises:
        ToolError: If job ID format is invalid
    """
    job_id = job_id.strip()
    pattern = r"^[a-zA-Z0-9-]{8,64}$"
    if not re.match(pattern, job_id):
        raise ToolError(
            f"Invalid job ID '{job_id}': must be 8-64 alphanumeric characters or hyphens"
        )

    return job_id


def sanitize_action(action: str) -> JobAction:
    try:
        return JobAction(action.strip().lower())
    except ValueError:
        raise ToolError(
            f"Invalid action '{action}'. Valid actions: {', '.join(VALID_ACTIONS)}"
        )


def sanitize_status(status: str | None) -> JobStatus | None:
    if status is None or not status.strip():
        return None
    try:
        return JobStatus(status.strip().lower())
    except ValueError:
        raise ToolError(
            f"Invalid status '{status}'. Valid statuses: {', '.join(VALID_STATUSES)}"
        )


def sanitize_plugin_name(name: str) -> str:
    """
    Validate a plugin name.

    Names become file names in the plugins directory, so path separators
    and leading dots are rejected.

    Raises:
        ToolError: If the name is empty or unsafe
    """
    cleaned = name.strip()
    if not re.match(r"^[A-Za-z0-9][A-Za-z0-9_.+-]{0,127}$", cleaned) or ".." in cleaned:
        raise ToolError(
            f"Invalid plugin name '{name}': use letters, digits, '.', '_', '+' or '-'"
        )
    return cleaned


def sanitize_url(url: str) -> str:
    cleaned = url.strip()
    parsed = urlparse(cleaned)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ToolError(f"Invalid URL '{url}': must be an http(s) URL")
    return cleaned


def validate_job_request(
    action: str,
    plugin_name: str | None,
    url: str | None,
    options: dict[str, Any] | None,
) -> tuple[JobAction, str | None, str | None, dict[str, Any]]:
    """
    Validate a job submission.

    Rules per action: install needs a URL; update needs a name and a URL;
    uninstall/enable/disable need a name.

    Returns:
        (action, plugin_name, url, options) cleaned

    Raises:
        ToolError: If the request is invalid
    """
    job_action = sanitize_action(action)

    cleaned_name = sanitize_plugin_name(plugin_name) if plugin_name else None
    cleaned_url = sanitize_url(url) if url else None

    if job_action in URL_REQUIRED and not cleaned_url:
        raise ToolError(f"URL is required for {job_action.value} action")
    if job_action in NAME_REQUIRED and not cleaned_name:
        raise ToolError(f"Plugin name is required for {job_action.value} action")

    if options is not None and not isinstance(options, dict):
        raise ToolError("options must be an object")
    cleaned_options = dict(options or {})

    custom_name = cleaned_options.get("customName")
    if custom_name:
        cleaned_options["customName"] = sanitize_plugin_name(str(custom_name))

    return job_action, cleaned_name, cleaned_url, cleaned_options
