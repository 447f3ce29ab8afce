# plugin_jobs/__main__.py
"""
Entry point for the plugin-jobs MCP server.

CRITICAL: Server imports configure_logging() first to prevent stdout pollution.

Starts the lifecycle (store + worker + signals) before serving tools over stdio.
"""

import asyncio
import logging

from plugin_jobs.server import initialize_lifecycle, mcp

logger = logging.getLogger(__name__)


async def main() -> None:
    """
    Main entry point.

    Initializes lifecycle and then runs the MCP server until stdin closes.
    """
    lifecycle = await initialize_lifecycle()
    try:
        logger.info("Starting MCP server on stdio transport")
        await mcp.run_stdio_async()
    finally:
        await lifecycle.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
