# plugin_jobs/background/worker.py
"""
Background worker for sequential job processing.

Polls the job queue, runs at most one job at a time through the executor
registry, and handles graceful shutdown.
"""

import asyncio
import logging
import traceback
from enum import Enum
from typing import Any

from plugin_jobs.errors import ExecutorError
from plugin_jobs.executor.base import CancellationToken, ExecutorRegistry, JobCancelled
from plugin_jobs.models.jobs import JobRecord, JobStatus
from plugin_jobs.models.queue import JobQueue

logger = logging.getLogger(__name__)

INTERRUPTED_BY_SHUTDOWN = "interrupted by shutdown"


class WorkerState(Enum):
    """Worker lifecycle states."""

    IDLE = "idle"
    BUSY = "busy"
    STOPPING = "stopping"
    STOPPED = "stopped"


class BackgroundWorker:
    """
    Sequential background job processor.

    Features:
        - Polls queue for next QUEUED job (FIFO)
        - Processes jobs one at a time (single-flight)
        - Cancellation observed via a watcher task + CancellationToken
        - Executor exceptions mark only that job FAILED; the loop keeps going
        - Graceful stop: no new claims, in-flight job gets a grace window

    There is no timeout on executor calls: a handler that never returns
    stalls the whole queue.
    """

    def __init__(
        self,
        queue: JobQueue,
        registry: ExecutorRegistry,
        poll_interval: float = 2.0,
        shutdown_grace: float = 30.0,
        cancel_check_interval: float = 0.5,
    ) -> None:
        """
        Initialize background worker.

        Args:
            queue: Job queue (the worker's only path to job state)
            registry: Executor handlers per action
            poll_interval: Seconds between queue checks when idle (default: 2.0)
            shutdown_grace: Seconds stop() waits for the in-flight job (default: 30.0)
            cancel_check_interval: Seconds between cancel-flag checks while running
        """
        self._queue = queue
        self._registry = registry
        self._poll_interval = poll_interval
        self._shutdown_grace = shutdown_grace
        self._cancel_check_interval = cancel_check_interval
        self._state = WorkerState.STOPPED
        self._current_job_id: str | None = None
        self._task: asyncio.Task | None = None
        self._stop_event = asyncio.Event()

        logger.info(
            f"Initialized BackgroundWorker (poll_interval={poll_interval}s, "
            f"shutdown_grace={shutdown_grace}s, "
            f"actions={[a.value for a in registry.actions]})"
        )

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def current_job_id(self) -> str | None:
        """Get the currently processing job ID (None if idle)."""
        return self._current_job_id

    @property
    def is_processing(self) -> bool:
        return self._current_job_id is not None

    async def start(self) -> None:
        """
        Start the background worker loop.

        Creates an asyncio task that polls for queued jobs.
        """
        if self._task is not None:
            logger.warning("Worker already started")
            return

        self._stop_event.clear()
        self._state = WorkerState.IDLE
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Background worker started")

    async def stop(self, grace: float | None = None) -> None:
        """
        Stop the background worker gracefully.

        Stops claiming new jobs and waits up to ``grace`` seconds for the
        running job to finish. If it is still running after that, the task
        is cancelled and the job is marked FAILED.

        Args:
            grace: Override for the configured shutdown grace window
        """
        if self._task is None:
            logger.warning("Worker not running")
            return

        grace = self._shutdown_grace if grace is None else grace
        logger.info(f"Stopping background worker (grace={grace}s)...")
        self._state = WorkerState.STOPPING
        self._stop_event.set()

        try:
            await asyncio.wait_for(asyncio.shield(self._task), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning(
                f"Job {self._current_job_id} still running after {grace}s, cancelling"
            )
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                logger.info("Worker task cancelled")

        self._task = None
        self._state = WorkerState.STOPPED
        logger.info("Background worker stopped")

    async def _run_loop(self) -> None:
        """
        Main worker loop: poll queue, process jobs sequentially.

        Errors outside a job (e.g. an unreadable store) are logged and the
        loop carries on after the poll interval.
        """
        logger.info("Worker loop started")

        while not self._stop_event.is_set():
            try:
                processed = await self.run_once()
            except asyncio.CancelledError:
                logger.info("Worker loop cancelled")
                raise
            except Exception:
                logger.exception("Worker tick failed")
                processed = False

            if processed:
                continue

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Worker loop exited")

    async def run_once(self) -> bool:
        """
        Claim and process at most one queued job.

        Returns:
            True if a job was claimed (and finished), False otherwise
        """
        if self._current_job_id is not None:
            # Single-flight: never claim a second job
            return False

        job = await self._queue.next_queued()
        if job is None:
            return False

        self._current_job_id = job.job_id
        self._state = WorkerState.BUSY
        try:
            if job.cancel_requested:
                await self._queue.transition(job.job_id, JobStatus.CANCELLED)
                await self._queue.append_log(job.job_id, "Cancelled before start")
                logger.info(f"Job {job.job_id} cancelled before start")
            else:
                await self._process_job(job)
        finally:
            self._current_job_id = None
            if self._state is WorkerState.BUSY:
                self._state = WorkerState.IDLE
        return True

    async def _process_job(self, job: JobRecord) -> None:
        """
        Run one claimed job through its executor and record the outcome.

        Args:
            job: Claimed QUEUED job
        """
        logger.info(f"Picked up job {job.job_id}: {job.action.value} {job.target}".rstrip())
        await self._queue.transition(job.job_id, JobStatus.RUNNING)
        await self._queue.append_log(job.job_id, f"Started {job.action.value} operation")

        token = CancellationToken()
        watcher = asyncio.create_task(self._watch_cancel(job.job_id, token))

        async def progress(message: str, percent: float | None = None) -> None:
            await self._queue.append_log(job.job_id, message, percent)
            token.raise_if_cancelled()

        try:
            result = await self._registry.execute(job, progress, token)
            outcome = JobStatus.CANCELLED if token.cancelled else JobStatus.COMPLETED

        except JobCancelled:
            outcome = JobStatus.CANCELLED
            result = None

        except asyncio.CancelledError:
            # Shutdown grace window exceeded
            logger.warning(f"Job {job.job_id} interrupted by shutdown")
            await self._finish(
                job.job_id,
                JobStatus.FAILED,
                error={"type": "Interrupted", "message": INTERRUPTED_BY_SHUTDOWN},
                log=f"Failed: {INTERRUPTED_BY_SHUTDOWN}",
            )
            raise

        except Exception as e:
            error = _structured_error(e)
            logger.error(f"Job {job.job_id} failed: {error['type']}: {error['message']}")
            await self._finish(
                job.job_id, JobStatus.FAILED, error=error, log=f"Failed: {error['message']}"
            )
            return

        finally:
            watcher.cancel()
            try:
                await watcher
            except asyncio.CancelledError:
                pass

        if outcome is JobStatus.CANCELLED:
            logger.info(f"Job {job.job_id} cancelled")
            await self._finish(
                job.job_id,
                JobStatus.CANCELLED,
                log="Cancelled; work already performed is not rolled back",
            )
        else:
            payload = _result_payload(result)
            logger.info(f"Job {job.job_id} completed successfully")
            await self._finish(
                job.job_id, JobStatus.COMPLETED, result=payload, log="Completed successfully"
            )

    async def _finish(
        self,
        job_id: str,
        status: JobStatus,
        result: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
        log: str | None = None,
    ) -> None:
        """
        Record a job outcome.

        If the outcome itself cannot be recorded (e.g. a result that is not
        JSON-serializable), the job is failed with an ``OutcomeNotRecorded``
        error instead, so it never stays RUNNING and blocks later claims.
        """
        try:
            if log:
                await self._queue.append_log(job_id, log)
            await self._queue.transition(job_id, status, result=result, error=error)
            return
        except Exception as e:
            logger.error(f"Failed to mark job {job_id} as {status.value}: {e}")
            fallback = {
                "type": "OutcomeNotRecorded",
                "message": f"Could not record {status.value} outcome: {e}",
                "cause": type(e).__name__,
            }

        try:
            await self._queue.append_log(job_id, f"Failed: {fallback['message']}")
            await self._queue.transition(job_id, JobStatus.FAILED, error=fallback)
        except Exception:
            logger.exception(f"Job {job_id} could not be marked failed either")

    async def _watch_cancel(self, job_id: str, token: CancellationToken) -> None:
        while not token.cancelled:
            try:
                if await self._queue.is_cancel_requested(job_id):
                    logger.info(f"Cancellation observed for job {job_id}")
                    token.cancel()
                    return
            except Exception as e:
                logger.warning(f"Cancel check failed for job {job_id}: {e}")
            await asyncio.sleep(self._cancel_check_interval)


def _structured_error(exc: BaseException) -> dict[str, Any]:
    """Build the job ``error`` payload from an executor exception."""
    tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
    error: dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc) or type(exc).__name__,
        "detail": "".join(tb_lines[-3:]),  # Last 3 lines of traceback
    }
    if isinstance(exc, ExecutorError) and exc.details:
        error["details"] = exc.details
    return error


def _result_payload(result: Any) -> dict[str, Any]:
    if result is None:
        return {}
    if isinstance(result, dict):
        return result
    return {"value": result}
