# plugin_jobs/executor/base.py
"""
Operation executor contract.

The worker never performs plugin operations itself. It looks up an async
handler per action in an ExecutorRegistry and hands it the job parameters, a
progress callback and a cancellation token. Handlers that never check the
token (or never report progress) cannot be cancelled once started.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Protocol

from plugin_jobs.errors import ExecutorError
from plugin_jobs.models.jobs import JobAction, JobRecord

logger = logging.getLogger(__name__)


class JobCancelled(Exception):
    """Raised inside an executor when the job's cancellation was observed."""


class CancellationToken:
    """Cooperative cancellation flag shared between the worker and an executor."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelled("Cancellation requested")

    async def wait(self) -> None:
        await self._event.wait()


class ProgressCallback(Protocol):
    """Reports a progress line; every call is also a cancellation checkpoint."""

    def __call__(self, message: str, percent: float | None = None) -> Awaitable[None]: ...


OperationHandler = Callable[
    [str | None, str | None, dict[str, Any], ProgressCallback, CancellationToken],
    Awaitable[dict[str, Any] | None],
]


class ExecutorRegistry:
    """Maps each JobAction to the async handler that performs it."""

    def __init__(self, handlers: dict[JobAction, OperationHandler] | None = None) -> None:
        self._handlers: dict[JobAction, OperationHandler] = dict(handlers or {})

    def register(self, action: JobAction | str, handler: OperationHandler) -> None:
        self._handlers[JobAction(action)] = handler
        logger.debug(f"Registered executor for {JobAction(action).value}")

    def get(self, action: JobAction | str) -> OperationHandler | None:
        return self._handlers.get(JobAction(action))

    @property
    def actions(self) -> list[JobAction]:
        return list(self._handlers)

    async def execute(
        self,
        job: JobRecord,
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> dict[str, Any] | None:
        """
        Run the handler registered for the job's action.

        Raises:
            ExecutorError: If no handler is registered for the action
            Exception: Whatever the handler raises
        """
        handler = self._handlers.get(job.action)
        if handler is None:
            raise ExecutorError(f"Unknown action: {job.action.value}")
        return await handler(
            job.plugin_name, job.url, dict(job.options), progress, cancel_token
        )
