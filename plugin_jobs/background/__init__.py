"""
Background job processing system.

Exports:
    - BackgroundWorker: Sequential job processor
    - WorkerState: Worker lifecycle states
    - setup_signal_handlers: Graceful shutdown signal handling
    - ServerLifecycle: Startup recovery and shutdown coordination
"""

from plugin_jobs.background.lifecycle import ServerLifecycle
from plugin_jobs.background.signals import setup_signal_handlers
from plugin_jobs.background.worker import BackgroundWorker, WorkerState

__all__ = ["BackgroundWorker", "WorkerState", "setup_signal_handlers", "ServerLifecycle"]
