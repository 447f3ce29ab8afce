"""
Operation executors.

Exports:
    - ExecutorRegistry: Action -> handler lookup used by the worker
    - CancellationToken / JobCancelled: Cooperative cancellation
    - PluginDirectoryExecutor: Reference executor for a plugins directory
"""

from plugin_jobs.executor.base import (
    CancellationToken,
    ExecutorRegistry,
    JobCancelled,
    OperationHandler,
    ProgressCallback,
)
from plugin_jobs.executor.plugins import PluginDirectoryExecutor

__all__ = [
    "CancellationToken",
    "ExecutorRegistry",
    "JobCancelled",
    "OperationHandler",
    "ProgressCallback",
    "PluginDirectoryExecutor",
]
