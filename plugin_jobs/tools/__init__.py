"""Tool implementations shared by the MCP server and the CLI."""

from plugin_jobs.tools.cancel_job import cancel_job
from plugin_jobs.tools.get_job import get_job
from plugin_jobs.tools.list_jobs import list_jobs
from plugin_jobs.tools.submit_job import submit_job

__all__ = ["submit_job", "list_jobs", "get_job", "cancel_job"]
