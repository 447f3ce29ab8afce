# plugin_jobs/server.py
"""
FastMCP server instance with tool registration.

CRITICAL: configure_logging() is called first to prevent stdout pollution.
All logging goes to stderr as JSON.
"""

# Configure logging FIRST before any other imports
from plugin_jobs.logging_config import configure_logging

configure_logging()

import logging
from typing import Any

from fastmcp import FastMCP

from plugin_jobs.background.lifecycle import ServerLifecycle
from plugin_jobs.config.loader import load_config
from plugin_jobs.config.schema import PluginJobsConfig
from plugin_jobs.tools.cancel_job import cancel_job as _cancel_job
from plugin_jobs.tools.get_job import get_job as _get_job
from plugin_jobs.tools.list_jobs import list_jobs as _list_jobs
from plugin_jobs.tools.submit_job import submit_job as _submit_job

logger = logging.getLogger(__name__)

mcp = FastMCP("plugin-jobs")

# Lifecycle manager (initialized by __main__.py)
_lifecycle: ServerLifecycle | None = None


def get_lifecycle() -> ServerLifecycle:
    """
    Get the running lifecycle manager.

    Raises:
        RuntimeError: If lifecycle not initialized (should never happen)
    """
    if _lifecycle is None:
        raise RuntimeError("Server lifecycle not initialized. Call initialize_lifecycle() first.")
    return _lifecycle


async def initialize_lifecycle(config: PluginJobsConfig | None = None) -> ServerLifecycle:
    """
    Initialize the server lifecycle (store + crash recovery + worker + signals).

    Must be called before any tool calls. Called by __main__.py on startup.

    Args:
        config: PluginJobsConfig instance (loaded from disk if None)
    """
    global _lifecycle

    actual_config = config or load_config()
    configure_logging(actual_config.logging.level)

    _lifecycle = ServerLifecycle(actual_config)
    await _lifecycle.startup()

    logger.info("Lifecycle initialized: store + worker + signals ready")
    return _lifecycle


@mcp.tool()
async def submit_job(
    action: str,
    plugin_name: str | None = None,
    url: str | None = None,
    options: dict[str, Any] | None = None,
) -> dict:
    """Queue a plugin install/uninstall/update/enable/disable job. Returns the job ID immediately."""
    return await _submit_job(action, plugin_name, url, options, queue=get_lifecycle().queue)


@mcp.tool()
async def list_jobs(status: str | None = None, limit: int | None = None) -> dict:
    """List plugin jobs newest first, optionally filtered by status."""
    lifecycle = get_lifecycle()
    return await _list_jobs(lifecycle.queue, status, limit, worker=lifecycle.worker)


@mcp.tool()
async def get_job(job_id: str) -> dict:
    """Get a plugin job with its status, logs, result and error."""
    return await _get_job(job_id, queue=get_lifecycle().queue)


@mcp.tool()
async def cancel_job(job_id: str) -> dict:
    """Request cancellation of a queued or running plugin job."""
    return await _cancel_job(job_id, queue=get_lifecycle().queue)


logger.info("MCP server initialized with 4 tools")
