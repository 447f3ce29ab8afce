# plugin_jobs/background/lifecycle.py
"""
Server lifecycle management.

Coordinates startup (store initialization + crash recovery + worker) and
shutdown.
"""

import asyncio
import logging
from pathlib import Path

from plugin_jobs.background.signals import remove_signal_handlers, setup_signal_handlers
from plugin_jobs.background.worker import BackgroundWorker
from plugin_jobs.config.loader import get_data_dir
from plugin_jobs.config.schema import PluginJobsConfig
from plugin_jobs.executor.base import ExecutorRegistry
from plugin_jobs.executor.plugins import PluginDirectoryExecutor
from plugin_jobs.models.json_store import JsonFileJobStore
from plugin_jobs.models.queue import JobQueue
from plugin_jobs.models.sqlite_store import SQLiteJobStore
from plugin_jobs.models.store import JobStore

logger = logging.getLogger(__name__)


def create_store(config: PluginJobsConfig) -> JobStore:
    """Build the job store selected by ``storage.backend``."""
    data_dir = get_data_dir(config)
    if config.storage.backend == "sqlite":
        return SQLiteJobStore(data_dir / "plugin-jobs.db")
    return JsonFileJobStore(data_dir / "plugin-jobs.json")


def create_registry(config: PluginJobsConfig) -> ExecutorRegistry:
    """Build the default executor registry backed by the plugins directory."""
    executor = PluginDirectoryExecutor(
        Path(config.plugins.plugins_dir),
        download_timeout=config.plugins.download_timeout,
        download_retries=config.plugins.download_retries,
    )
    return executor.registry()


class ServerLifecycle:
    """
    Server lifecycle coordinator.

    Manages:
        - Store initialization (corrupt store quarantined) and crash recovery
        - Background worker lifecycle
        - Signal handler registration
        - Graceful shutdown
    """

    def __init__(
        self,
        config: PluginJobsConfig | None = None,
        store: JobStore | None = None,
        registry: ExecutorRegistry | None = None,
    ) -> None:
        """
        Initialize server lifecycle manager.

        Args:
            config: PluginJobsConfig (defaults if None)
            store: Optional store override (defaults to the configured backend)
            registry: Optional executor registry (defaults to PluginDirectoryExecutor)
        """
        self._config = config or PluginJobsConfig()
        self._store = store or create_store(self._config)
        self._queue = JobQueue(
            self._store, retention_limit=self._config.storage.retention_limit
        )
        self._worker = BackgroundWorker(
            self._queue,
            registry or create_registry(self._config),
            poll_interval=self._config.worker.poll_interval,
            shutdown_grace=self._config.worker.shutdown_grace,
            cancel_check_interval=self._config.worker.cancel_check_interval,
        )
        self._closed = asyncio.Event()
        self._shutting_down = False
        logger.info(f"Created ServerLifecycle (backend={self._config.storage.backend})")

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def queue(self) -> JobQueue:
        """Get the job queue (for server.py to pass to tools)."""
        return self._queue

    @property
    def worker(self) -> BackgroundWorker:
        """Get the background worker (for inspection/testing)."""
        return self._worker

    async def startup(self, install_signal_handlers: bool = True) -> list[str]:
        """
        Start the server lifecycle.

        Steps:
            1. Initialize the store (quarantine it if unreadable)
            2. Run crash recovery (mark running -> failed)
            3. Register signal handlers for graceful shutdown
            4. Start background worker

        Returns:
            IDs of jobs recovered from a previous session
        """
        logger.info("Starting server lifecycle...")
        self._closed.clear()
        self._shutting_down = False

        await self._store.initialize()
        await self._queue.initialize()

        recovered = await self._queue.recover_interrupted()
        if recovered:
            logger.warning(
                f"Found {len(recovered)} interrupted job(s) from previous session"
            )
            for job_id in recovered:
                logger.warning(f"  - {job_id}")

        if install_signal_handlers:
            setup_signal_handlers(self)

        await self._worker.start()

        logger.info("Server lifecycle started: worker running, signals registered")
        return recovered

    async def shutdown(self) -> None:
        """
        Shut down the server lifecycle gracefully.

        Steps:
            1. Stop background worker (in-flight job gets the grace window)
            2. Close the store
        """
        if self._shutting_down:
            await self._closed.wait()
            return
        self._shutting_down = True
        logger.info("Shutting down server lifecycle...")

        await self._worker.stop()
        await self._store.close()
        remove_signal_handlers()

        self._closed.set()
        logger.info("Server lifecycle shutdown complete")

    async def wait_closed(self) -> None:
        """Block until shutdown() has completed (e.g. triggered by a signal)."""
        await self._closed.wait()
