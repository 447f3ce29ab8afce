# plugin_jobs/background/signals.py
"""
Graceful shutdown signal handling for Windows and Unix.

Registers SIGINT/SIGTERM handlers that run the lifecycle shutdown (worker
stop within its grace window, then store close).
"""

import asyncio
import logging
import signal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plugin_jobs.background.lifecycle import ServerLifecycle

logger = logging.getLogger(__name__)


def setup_signal_handlers(lifecycle: "ServerLifecycle") -> None:
    """
    Set up signal handlers for graceful shutdown.

    Handles SIGINT (Ctrl+C) and SIGTERM with platform-specific fallbacks.

    On Windows (ProactorEventLoop), add_signal_handler is not supported,
    so we fall back to signal.signal().

    Args:
        lifecycle: ServerLifecycle to shut down
    """
    loop = asyncio.get_running_loop()

    async def _shutdown(sig_name: str) -> None:
        logger.info(f"Received {sig_name}, shutting down gracefully...")
        await lifecycle.shutdown()
        logger.info("Shutdown complete")

    def _signal_callback(sig_num, frame) -> None:
        """
        Fallback signal handler for Windows.

        Schedules the shutdown coroutine on the running loop.
        """
        sig_name = signal.Signals(sig_num).name
        logger.info(f"Signal handler triggered: {sig_name}")
        loop.call_soon_threadsafe(lambda: loop.create_task(_shutdown(sig_name)))

    # Try loop-based signal handling (Unix)
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(
                sig, lambda name=sig.name: loop.create_task(_shutdown(name))
            )
        logger.info("Signal handlers registered (loop-based)")

    except NotImplementedError:
        # Fall back to signal.signal() for Windows
        signal.signal(signal.SIGINT, _signal_callback)
        signal.signal(signal.SIGTERM, _signal_callback)
        logger.info("Signal handlers registered (fallback for Windows)")


def remove_signal_handlers() -> None:
    """Undo loop-based handlers (no-op where they were never installed)."""
    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
    except (NotImplementedError, RuntimeError):
        pass
