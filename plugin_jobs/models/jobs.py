# plugin_jobs/models/jobs.py
"""
Job tracking models.

Internal models (NOT exposed via MCP) describing one plugin operation and its
execution history, plus the status state machine the queue enforces.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class JobAction(Enum):
    """Plugin operations a job can request."""

    INSTALL = "install"
    UNINSTALL = "uninstall"
    UPDATE = "update"
    ENABLE = "enable"
    DISABLE = "disable"


class JobStatus(Enum):
    """Job lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)

# queued -> cancelled covers a cancel observed before the worker claims the job
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: JobStatus, new: JobStatus) -> bool:
    """Return True if the state machine allows ``current -> new``."""
    return new in ALLOWED_TRANSITIONS[current]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass
class LogEntry:
    """One timestamped line of a job's execution log."""

    timestamp: datetime
    message: str
    percent: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
        }
        if self.percent is not None:
            data["percent"] = self.percent
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogEntry":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            message=data["message"],
            percent=data.get("percent"),
        )


@dataclass
class JobRecord:
    """
    Internal job record (NOT Pydantic - not exposed via MCP).

    ``plugin_name``, ``url`` and ``options`` are opaque to the queue and the
    worker; they are handed to the operation executor unchanged.
    """

    job_id: str
    action: JobAction
    status: JobStatus
    created_at: datetime
    plugin_name: str | None = None
    url: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
    logs: list[LogEntry] = field(default_factory=list)
    error: dict[str, Any] | None = None  # Set only when status=FAILED
    result: dict[str, Any] | None = None  # Set only when status=COMPLETED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancel_requested: bool = False

    @property
    def target(self) -> str:
        """Human-readable operation target for log lines."""
        return self.plugin_name or self.url or ""

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON shape."""
        return {
            "id": self.job_id,
            "action": self.action.value,
            "plugin_name": self.plugin_name,
            "url": self.url,
            "options": self.options,
            "status": self.status.value,
            "logs": [entry.to_dict() for entry in self.logs],
            "error": self.error,
            "result": self.result,
            "created_at": self.created_at.isoformat(),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "cancel_requested": self.cancel_requested,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JobRecord":
        """
        Deserialize from the persisted JSON shape.

        Optional keys missing from older documents fall back to defaults.

        Raises:
            KeyError, ValueError, TypeError: If required fields are missing or malformed
        """
        return cls(
            job_id=data["id"],
            action=JobAction(data["action"]),
            status=JobStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            plugin_name=data.get("plugin_name"),
            url=data.get("url"),
            options=dict(data.get("options") or {}),
            logs=[LogEntry.from_dict(entry) for entry in data.get("logs") or []],
            error=data.get("error"),
            result=data.get("result"),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
            cancel_requested=bool(data.get("cancel_requested", False)),
        )


def generate_job_id() -> str:
    """
    Generate a unique job ID.

    Returns:
        ``job-<epoch milliseconds>-<8 hex chars>``; sorts roughly by creation time
    """
    return f"job-{int(time.time() * 1000)}-{secrets.token_hex(4)}"
