# plugin_jobs/models/queue.py
"""
Job queue over a durable whole-collection store.

JobQueue is the only component that reads or writes the JobStore. Every
mutation runs inside one asyncio.Lock plus the store's cross-process
transaction and round-trips load -> mutate -> save, so API-triggered
mutations (cancel requests, CLI submits from another process) and
worker-triggered mutations (status transitions, log lines) never lose each
other's updates.
"""

import asyncio
import copy
import json
import logging
import warnings
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Callable, TypeVar

from plugin_jobs.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    NotCancellableError,
    PersistenceWriteWarning,
    StoreCorruptError,
    StoreWriteError,
)
from plugin_jobs.models.jobs import (
    JobAction,
    JobRecord,
    JobStatus,
    LogEntry,
    can_transition,
    generate_job_id,
    utcnow,
)
from plugin_jobs.models.store import JobStore, StoreSession

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_LIMIT = 100

INTERRUPTED_BY_RESTART = "interrupted by restart"

T = TypeVar("T")


class JobQueue:
    """
    In-process API over the durable job store.

    Write failures are best-effort: the mutated collection is kept in memory
    (``_pending``), a PersistenceWriteWarning is emitted, and later operations
    work from the pending collection until a save succeeds. While pending,
    jobs submitted and cancel flags set by other processes are still picked
    up from the store.
    """

    def __init__(
        self, store: JobStore, retention_limit: int = DEFAULT_RETENTION_LIMIT
    ) -> None:
        """
        Initialize job queue.

        Args:
            store: Durable job store (JSON file or SQLite)
            retention_limit: Maximum number of jobs kept after an insert (default: 100)
        """
        if retention_limit < 1:
            raise ValueError("retention_limit must be at least 1")
        self._store = store
        self._retention_limit = retention_limit
        self._lock = asyncio.Lock()
        self._pending: list[JobRecord] | None = None
        logger.info(f"Initialized JobQueue (retention_limit={retention_limit})")

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def retention_limit(self) -> int:
        return self._retention_limit

    @property
    def has_unsaved_changes(self) -> bool:
        """True while a failed write is waiting to be reconciled."""
        return self._pending is not None

    async def initialize(self) -> None:
        """
        Verify the store is readable.

        An unreadable store is moved aside and replaced with an empty
        collection; the process keeps running.
        """
        async with self._lock:
            try:
                records = await self._store.load_all()
            except StoreCorruptError as e:
                backup = await self._store.quarantine()
                logger.warning(
                    f"{e}. Starting with an empty job collection"
                    + (f" (backup: {backup})" if backup else "")
                )
                self._pending = []
                async with self._session() as session:
                    await self._save(session, [])
                return
        logger.info(f"Job queue ready with {len(records)} stored job(s)")

    async def recover_interrupted(self) -> list[str]:
        """
        Mark jobs left in RUNNING by a previous process as FAILED.

        A partially applied install/uninstall cannot be safely resumed, so
        the job is failed rather than re-queued.

        Returns:
            IDs of the recovered jobs
        """

        def _recover(records: list[JobRecord]) -> list[str]:
            recovered = []
            for record in records:
                if record.status is JobStatus.RUNNING:
                    now = utcnow()
                    record.logs.append(
                        LogEntry(timestamp=now, message="Job interrupted by restart")
                    )
                    record.status = JobStatus.FAILED
                    record.error = {
                        "type": "Interrupted",
                        "message": INTERRUPTED_BY_RESTART,
                    }
                    record.completed_at = now
                    recovered.append(record.job_id)
            return recovered

        recovered = await self._mutate(_recover)
        if recovered:
            logger.warning(
                f"Crash recovery: marked {len(recovered)} running job(s) as failed"
            )
        return recovered

    async def enqueue(
        self,
        action: JobAction | str,
        plugin_name: str | None = None,
        url: str | None = None,
        options: dict[str, Any] | None = None,
    ) -> str:
        """
        Create a QUEUED job and persist it.

        Never waits for execution. Runs the retention sweep afterwards in the
        same critical section.

        Returns:
            The new job ID

        Raises:
            ValueError: If options cannot be stored as JSON
        """
        _require_json(options, "options")
        record = JobRecord(
            job_id=generate_job_id(),
            action=JobAction(action),
            status=JobStatus.QUEUED,
            created_at=utcnow(),
            plugin_name=plugin_name,
            url=url,
            options=dict(options or {}),
        )

        def _insert(records: list[JobRecord]) -> None:
            if any(r.job_id == record.job_id for r in records):
                raise ValueError(f"Job {record.job_id} already exists")
            records.append(record)
            self._prune(records)

        await self._mutate(_insert)
        logger.info(
            f"Created job {record.job_id}: {record.action.value} {record.target}".rstrip()
        )
        return record.job_id

    async def get(self, job_id: str) -> JobRecord | None:
        """
        Get a job by ID.

        Returns:
            Copy of the JobRecord, or None if not found
        """
        records = await self._read()
        record = _find(records, job_id)
        return copy.deepcopy(record) if record else None

    async def list_jobs(
        self, status: JobStatus | str | None = None, limit: int | None = None
    ) -> list[JobRecord]:
        """
        List jobs, newest first.

        Args:
            status: Only return jobs in this status
            limit: Maximum number of (most recent) jobs to return

        Returns:
            Copies of the matching JobRecords
        """
        wanted = JobStatus(status) if status is not None else None
        records = await self._read()
        matching = [r for r in reversed(records) if wanted is None or r.status is wanted]
        if limit is not None:
            matching = matching[: max(limit, 0)]
        return copy.deepcopy(matching)

    async def next_queued(self) -> JobRecord | None:
        """
        Get the next queued job (FIFO - oldest first).

        Returns:
            Copy of the oldest QUEUED job, or None if there are none
        """
        records = await self._read()
        for record in records:
            if record.status is JobStatus.QUEUED:
                return copy.deepcopy(record)
        return None

    async def running_job(self) -> JobRecord | None:
        records = await self._read()
        for record in records:
            if record.status is JobStatus.RUNNING:
                return copy.deepcopy(record)
        return None

    async def append_log(
        self, job_id: str, message: str, percent: float | None = None
    ) -> None:
        """
        Append a timestamped log line to a job.

        Never raises for a missing job; logging must not abort a running
        operation.
        """

        def _append(records: list[JobRecord]) -> bool:
            record = _find(records, job_id)
            if record is None:
                return False
            record.logs.append(
                LogEntry(timestamp=utcnow(), message=message, percent=percent)
            )
            return True

        if not await self._mutate(_append, save_if=bool):
            logger.warning(f"Dropped log line for missing job {job_id}: {message}")

    async def transition(
        self,
        job_id: str,
        new_status: JobStatus | str,
        result: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> JobRecord:
        """
        Move a job to a new status.

        Sets ``started_at`` on RUNNING and ``completed_at`` on terminal
        statuses.

        Args:
            job_id: Job identifier
            new_status: Target status
            result: Success payload (COMPLETED only)
            error: Structured error (FAILED only)

        Returns:
            Copy of the updated JobRecord

        Raises:
            JobNotFoundError: If the job doesn't exist
            InvalidTransitionError: If the state machine forbids the change,
                or another job is already RUNNING
            ValueError: If result/error don't match the target status or
                cannot be stored as JSON (the job is left unchanged)
        """
        target = JobStatus(new_status)
        if result is not None and target is not JobStatus.COMPLETED:
            raise ValueError("result can only be recorded on completed jobs")
        if error is not None and target is not JobStatus.FAILED:
            raise ValueError("error can only be recorded on failed jobs")
        _require_json(result, "result")
        _require_json(error, "error")

        def _transition(records: list[JobRecord]) -> JobRecord:
            record = _find(records, job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            if not can_transition(record.status, target):
                raise InvalidTransitionError(job_id, record.status.value, target.value)
            if target is JobStatus.RUNNING:
                busy = next(
                    (r for r in records if r.status is JobStatus.RUNNING), None
                )
                if busy is not None:
                    raise InvalidTransitionError(
                        job_id,
                        record.status.value,
                        target.value,
                        reason=f"job {busy.job_id} is already running",
                    )

            now = utcnow()
            record.status = target
            if target is JobStatus.RUNNING:
                record.started_at = now
            if target.is_terminal:
                record.completed_at = now
                record.result = result
                record.error = error
            return copy.deepcopy(record)

        updated = await self._mutate(_transition)
        logger.info(f"Job {job_id} -> {target.value}")
        return updated

    async def request_cancel(self, job_id: str) -> JobRecord:
        """
        Flag a queued or running job for cancellation.

        The worker observes the flag; this call does not stop anything by
        itself. Repeated requests are accepted while the job is active.

        Raises:
            JobNotFoundError: If the job doesn't exist
            NotCancellableError: If the job already finished
        """

        def _cancel(records: list[JobRecord]) -> JobRecord:
            record = _find(records, job_id)
            if record is None:
                raise JobNotFoundError(job_id)
            if record.status.is_terminal:
                raise NotCancellableError(job_id, record.status.value)
            if not record.cancel_requested:
                record.cancel_requested = True
                record.logs.append(
                    LogEntry(timestamp=utcnow(), message="Cancellation requested")
                )
            return copy.deepcopy(record)

        updated = await self._mutate(_cancel)
        logger.info(f"Cancellation requested for job {job_id} ({updated.status.value})")
        return updated

    async def is_cancel_requested(self, job_id: str) -> bool:
        records = await self._read()
        record = _find(records, job_id)
        return bool(record and record.cancel_requested)

    async def prune_if_needed(self) -> int:
        """
        Apply the retention cap.

        Returns:
            Number of jobs removed
        """
        return await self._mutate(self._prune, save_if=bool)

    def _prune(self, records: list[JobRecord]) -> int:
        excess = len(records) - self._retention_limit
        if excess <= 0:
            return 0

        # Oldest first; active jobs are never removed even if the cap stays exceeded
        doomed = set()
        for record in records:
            if len(doomed) >= excess:
                break
            if record.status.is_terminal:
                doomed.add(record.job_id)

        if doomed:
            records[:] = [r for r in records if r.job_id not in doomed]
            logger.info(f"Pruned {len(doomed)} old job(s)")
        if len(records) > self._retention_limit:
            logger.warning(
                f"{len(records)} jobs stored, above retention limit "
                f"{self._retention_limit}: remaining jobs are queued or running"
            )
        return len(doomed)

    async def _read(self) -> list[JobRecord]:
        # No cross-process lock: stores replace their content atomically
        async with self._lock:
            return await self._load(self._store)

    async def _load(self, session: StoreSession) -> list[JobRecord]:
        if self._pending is None:
            return await session.load_all()
        try:
            stored = await session.load_all()
        except (StoreCorruptError, StoreWriteError) as e:
            logger.warning(f"Could not re-read job store, using in-memory jobs: {e}")
            return self._pending
        return _merge_external(self._pending, stored)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[StoreSession]:
        async with AsyncExitStack() as stack:
            try:
                session = await stack.enter_async_context(self._store.transaction())
            except StoreWriteError as e:
                # Degrades like a failed save
                logger.warning(f"Job store lock unavailable, proceeding unlocked: {e}")
                session = self._store
            yield session

    async def _mutate(
        self,
        fn: Callable[[list[JobRecord]], T],
        save_if: Callable[[T], bool] | None = None,
    ) -> T:
        async with self._lock:
            async with self._session() as session:
                # Work on a copy so an exception in fn leaves the pending view untouched
                records = copy.deepcopy(await self._load(session))
                outcome = fn(records)
                if save_if is None or save_if(outcome):
                    await self._save(session, records)
                return outcome

    async def _save(self, session: StoreSession, records: list[JobRecord]) -> None:
        try:
            await session.save_all(records)
        except StoreWriteError as e:
            self._pending = records
            logger.warning(f"Job store write failed, keeping changes in memory: {e}")
            warnings.warn(str(e), PersistenceWriteWarning, stacklevel=3)
            return
        if self._pending is not None:
            logger.info("Job store write succeeded, in-memory changes reconciled")
        self._pending = None


def _find(records: list[JobRecord], job_id: str) -> JobRecord | None:
    for record in records:
        if record.job_id == job_id:
            return record
    return None


def _require_json(value: Any, field: str) -> None:
    if value is None:
        return
    try:
        json.dumps(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{field} is not JSON-serializable: {e}") from e


def _merge_external(
    pending: list[JobRecord], stored: list[JobRecord]
) -> list[JobRecord]:
    """
    Overlay what other processes saved onto the unsaved in-memory collection.

    Only additive changes are taken from the store: active jobs this process
    has never seen, and cancel flags on jobs that are still active here.
    Everything else in ``pending`` wins.
    """
    merged = copy.deepcopy(pending)
    known = {r.job_id: r for r in merged}
    for record in stored:
        mine = known.get(record.job_id)
        if mine is None:
            if not record.status.is_terminal:
                merged.append(copy.deepcopy(record))
            continue
        if record.cancel_requested and not mine.cancel_requested and not mine.status.is_terminal:
            mine.cancel_requested = True
            entry = next(
                (e for e in reversed(record.logs) if e.message == "Cancellation requested"),
                None,
            )
            mine.logs.append(
                copy.deepcopy(entry)
                if entry
                else LogEntry(timestamp=utcnow(), message="Cancellation requested")
            )
    return merged
