# plugin_jobs/models/json_store.py
"""
Single-file JSON job persistence.

The whole collection lives in one JSON document that is replaced with a
write-temp-then-rename protocol, so readers never see a partial file and a
crash mid-write leaves the previous version in place.
"""

import asyncio
import json
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

from filelock import AsyncFileLock, Timeout

from plugin_jobs.errors import StoreCorruptError, StoreWriteError
from plugin_jobs.models.jobs import JobRecord
from plugin_jobs.models.store import JobStore

logger = logging.getLogger(__name__)

# Version of the persisted document layout
DOCUMENT_VERSION = 1

# Seconds to wait for another process's load-mutate-save cycle
LOCK_TIMEOUT = 30.0


class JsonFileJobStore(JobStore):
    """
    JSON-file-backed job storage.

    Features:
        - Atomic replace via temp file + os.replace
        - Temp file is fsynced and re-parsed before the rename
        - Missing or empty file reads as an empty collection
        - Blocking file I/O runs in a worker thread
        - Cross-process write lock on a ``.lock`` sidecar file
    """

    def __init__(self, path: str | Path) -> None:
        """
        Initialize JSON job store.

        Args:
            path: Path to the jobs document (e.g. ``plugin-jobs.json``)
        """
        self._path = Path(path)
        logger.info(f"Created JsonFileJobStore with path: {self._path}")

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(f"{self._path.name}.lock")

    async def initialize(self) -> None:
        await asyncio.to_thread(self._path.parent.mkdir, parents=True, exist_ok=True)

    async def load_all(self) -> list[JobRecord]:
        return await asyncio.to_thread(self._read)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["JsonFileJobStore"]:
        """
        Hold ``<path>.lock`` for one load-mutate-save cycle.

        The lock is an OS file lock, so CLI commands and a running worker
        in another process serialize their cycles on the same document.

        Raises:
            StoreWriteError: If the lock is not obtained within LOCK_TIMEOUT
        """
        lock = AsyncFileLock(self.lock_path, timeout=LOCK_TIMEOUT)
        try:
            await lock.acquire()
        except (Timeout, OSError) as e:
            raise StoreWriteError(f"Could not lock job store {self._path}: {e}") from e
        try:
            yield self
        finally:
            await lock.release()

    async def save_all(self, records: list[JobRecord]) -> None:
        try:
            payload = json.dumps(
                {"version": DOCUMENT_VERSION, "jobs": [r.to_dict() for r in records]},
                indent=2,
                ensure_ascii=False,
            )
        except (TypeError, ValueError) as e:
            raise StoreWriteError(f"Failed to serialize jobs for {self._path}: {e}") from e
        await asyncio.to_thread(self._write_atomic, payload)
        logger.debug(f"Saved {len(records)} job(s) to {self._path}")

    async def quarantine(self) -> Path | None:
        return await asyncio.to_thread(self._move_aside)

    def _read(self) -> list[JobRecord]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []

        if not raw.strip():
            return []

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreCorruptError(str(self._path), f"invalid JSON: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("jobs"), list):
            raise StoreCorruptError(str(self._path), "document has no 'jobs' list")

        records = []
        for index, item in enumerate(data["jobs"]):
            try:
                records.append(JobRecord.from_dict(item))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                raise StoreCorruptError(
                    str(self._path), f"job #{index} is malformed: {e!r}"
                ) from e
        return records

    def _write_atomic(self, payload: str) -> None:
        tmp_path = self._path.with_name(f".{self._path.name}.{uuid.uuid4().hex}.tmp")
        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())

            # Verify the temp file parses before it replaces the live document
            json.loads(tmp_path.read_text(encoding="utf-8"))

            os.replace(tmp_path, self._path)
        except (OSError, ValueError) as e:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove temp file {tmp_path}")
            raise StoreWriteError(f"Failed to save jobs to {self._path}: {e}") from e

    def _move_aside(self) -> Path | None:
        if not self._path.exists():
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup = self._path.with_name(f"{self._path.name}.corrupt-{stamp}")
        os.replace(self._path, backup)
        logger.warning(f"Moved unreadable job store {self._path} to {backup}")
        return backup
