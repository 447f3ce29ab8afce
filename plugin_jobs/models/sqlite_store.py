# plugin_jobs/models/sqlite_store.py
"""
SQLite-backed job persistence.

Same whole-collection contract as JsonFileJobStore: save_all replaces every
row inside one IMMEDIATE transaction, so a crash mid-write rolls back to the
previous collection. transaction() holds that IMMEDIATE lock across the load
as well, so concurrent processes serialize their load-mutate-save cycles.
"""

import asyncio
import json
import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from plugin_jobs.errors import StoreCorruptError, StoreWriteError
from plugin_jobs.models.jobs import JobRecord
from plugin_jobs.models.store import JobStore

logger = logging.getLogger(__name__)

JOBS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS jobs (
    seq INTEGER NOT NULL,
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    data TEXT NOT NULL
)
"""

JOBS_INDEX_SQL = "CREATE INDEX IF NOT EXISTS idx_jobs_seq ON jobs(seq)"

# Seconds a connection waits for another writer's IMMEDIATE transaction
BUSY_TIMEOUT = 30.0


class SQLiteJobStore(JobStore):
    """
    Async SQLite-backed job storage.

    Features:
        - WAL mode for concurrent reads while a write is in progress
        - IMMEDIATE transactions for write safety
        - One row per job holding its JSON document
        - No persistent connections (avoids resource leaks)
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize SQLite job store.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = str(db_path)
        logger.info(f"Created SQLiteJobStore with path: {self._db_path}")

    async def initialize(self) -> None:
        """Create the schema and enable WAL mode."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute(JOBS_TABLE_SQL)
                await db.execute(JOBS_INDEX_SQL)
                await db.commit()
        except sqlite3.DatabaseError as e:
            raise StoreCorruptError(self._db_path, str(e)) from e

    async def load_all(self) -> list[JobRecord]:
        try:
            async with aiosqlite.connect(self._db_path, timeout=BUSY_TIMEOUT) as db:
                return await _select_all(db, self._db_path)
        except sqlite3.DatabaseError as e:
            raise StoreCorruptError(self._db_path, str(e)) from e

    async def save_all(self, records: list[JobRecord]) -> None:
        rows = _to_rows(records, self._db_path)
        try:
            async with aiosqlite.connect(self._db_path, timeout=BUSY_TIMEOUT) as db:
                await db.execute("BEGIN IMMEDIATE")
                try:
                    await _replace_all(db, rows)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
        except sqlite3.Error as e:
            raise StoreWriteError(f"Failed to save jobs to {self._db_path}: {e}") from e
        logger.debug(f"Saved {len(records)} job(s) to {self._db_path}")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["_SQLiteSession"]:
        """
        Open one connection and hold BEGIN IMMEDIATE for a load-mutate-save.

        The session's save_all commits; leaving the block without a save
        rolls back (nothing was written).

        Raises:
            StoreWriteError: If the write lock could not be taken
        """
        try:
            db = await aiosqlite.connect(self._db_path, timeout=BUSY_TIMEOUT)
        except sqlite3.Error as e:
            raise StoreWriteError(f"Could not open job database {self._db_path}: {e}") from e
        try:
            try:
                await db.execute(JOBS_TABLE_SQL)
                await db.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreWriteError(
                    f"Could not lock job database {self._db_path}: {e}"
                ) from e
            session = _SQLiteSession(db, self._db_path)
            try:
                yield session
            finally:
                if not session.committed:
                    await db.rollback()
        finally:
            await db.close()

    async def quarantine(self) -> Path | None:
        path = Path(self._db_path)
        if not path.exists():
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup = path.with_name(f"{path.name}.corrupt-{stamp}")
        await asyncio.to_thread(os.replace, path, backup)
        for suffix in ("-wal", "-shm"):
            sidecar = Path(f"{self._db_path}{suffix}")
            if sidecar.exists():
                await asyncio.to_thread(sidecar.unlink)
        logger.warning(f"Moved unreadable job database {path} to {backup}")
        await self.initialize()
        return backup

    async def close(self) -> None:
        """
        Checkpoint WAL and close database.

        Truncates WAL file to avoid unbounded growth.
        """
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
                logger.info("WAL checkpoint completed")
        except Exception as e:
            logger.warning(f"WAL checkpoint failed: {e}")


class _SQLiteSession:
    """Load/save over a connection already holding BEGIN IMMEDIATE."""

    def __init__(self, db: aiosqlite.Connection, db_path: str) -> None:
        self._db = db
        self._db_path = db_path
        self.committed = False

    async def load_all(self) -> list[JobRecord]:
        try:
            return await _select_all(self._db, self._db_path)
        except sqlite3.DatabaseError as e:
            raise StoreCorruptError(self._db_path, str(e)) from e

    async def save_all(self, records: list[JobRecord]) -> None:
        if self.committed:
            raise StoreWriteError(f"Transaction on {self._db_path} already committed")
        rows = _to_rows(records, self._db_path)
        try:
            await _replace_all(self._db, rows)
            await self._db.commit()
        except sqlite3.Error as e:
            await self._db.rollback()
            raise StoreWriteError(f"Failed to save jobs to {self._db_path}: {e}") from e
        self.committed = True
        logger.debug(f"Saved {len(records)} job(s) to {self._db_path}")


async def _select_all(db: aiosqlite.Connection, db_path: str) -> list[JobRecord]:
    await db.execute(JOBS_TABLE_SQL)
    cursor = await db.execute("SELECT id, data FROM jobs ORDER BY seq ASC")
    rows = await cursor.fetchall()

    records = []
    for job_id, data in rows:
        try:
            records.append(JobRecord.from_dict(json.loads(data)))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise StoreCorruptError(db_path, f"row {job_id} is malformed: {e!r}") from e
    return records


def _to_rows(records: list[JobRecord], db_path: str) -> list[tuple]:
    try:
        return [
            (seq, r.job_id, r.status.value, json.dumps(r.to_dict(), ensure_ascii=False))
            for seq, r in enumerate(records)
        ]
    except (TypeError, ValueError) as e:
        raise StoreWriteError(f"Failed to serialize jobs for {db_path}: {e}") from e


async def _replace_all(db: aiosqlite.Connection, rows: list[tuple]) -> None:
    await db.execute("DELETE FROM jobs")
    await db.executemany(
        "INSERT INTO jobs (seq, id, status, data) VALUES (?, ?, ?, ?)",
        rows,
    )
