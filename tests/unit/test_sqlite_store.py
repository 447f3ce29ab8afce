# tests/unit/test_sqlite_store.py
"""
Unit tests for SQLiteJobStore persistence.

Tests whole-collection replace semantics, ordering, serialization and
quarantine of an unreadable database.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import asyncio

import pytest
import pytest_asyncio

from plugin_jobs.errors import StoreCorruptError, StoreWriteError
from plugin_jobs.models.jobs import JobAction, JobRecord, JobStatus, LogEntry
from plugin_jobs.models.queue import JobQueue
from plugin_jobs.models.sqlite_store import SQLiteJobStore


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> SQLiteJobStore:
    """Create and initialize a test SQLite store."""
    db_path = str(tmp_path / "test_jobs.db")
    store = SQLiteJobStore(db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def sample_record() -> JobRecord:
    """Create a sample job record for testing."""
    now = datetime.now(timezone.utc)
    return JobRecord(
        job_id="job-1700000000000-deadbeef",
        action=JobAction.UPDATE,
        status=JobStatus.COMPLETED,
        created_at=now,
        plugin_name="WorldEdit",
        url="https://example.com/WorldEdit.jar",
        options={"autoUpdate": True},
        logs=[LogEntry(timestamp=now, message="Started update operation")],
        result={"plugin": "WorldEdit", "bytes": 1024},
        started_at=now,
        completed_at=now + timedelta(seconds=2),
    )


@pytest.mark.asyncio
async def test_empty_database_loads_empty(store: SQLiteJobStore):
    assert await store.load_all() == []


@pytest.mark.asyncio
async def test_save_and_load_roundtrip(store: SQLiteJobStore, sample_record: JobRecord):
    """Test saving a job and loading it back preserves all fields."""
    await store.save_all([sample_record])

    loaded = await store.load_all()

    assert loaded == [sample_record]


@pytest.mark.asyncio
async def test_save_replaces_whole_collection(store: SQLiteJobStore, sample_record: JobRecord):
    """save_all is a replace, not an upsert: rows missing from the new list disappear."""
    other = JobRecord(
        job_id="job-1700000000001-cafebabe",
        action=JobAction.DISABLE,
        status=JobStatus.QUEUED,
        created_at=datetime.now(timezone.utc),
        plugin_name="Essentials",
    )
    await store.save_all([sample_record, other])
    await store.save_all([other])

    loaded = await store.load_all()
    assert [r.job_id for r in loaded] == [other.job_id]


@pytest.mark.asyncio
async def test_order_is_preserved(store: SQLiteJobStore):
    """Records come back in the order they were saved, not by ID."""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    records = [
        JobRecord(
            job_id=f"job-{9 - i}-zzzz",
            action=JobAction.ENABLE,
            status=JobStatus.QUEUED,
            created_at=base + timedelta(seconds=i),
            plugin_name=f"P{i}",
        )
        for i in range(5)
    ]
    await store.save_all(records)

    loaded = await store.load_all()
    assert [r.job_id for r in loaded] == [r.job_id for r in records]


@pytest.mark.asyncio
async def test_unreadable_database_raises_corrupt(tmp_path: Path):
    db_path = tmp_path / "broken.db"
    db_path.write_bytes(b"this is not a sqlite database at all" * 100)
    store = SQLiteJobStore(db_path)

    with pytest.raises(StoreCorruptError):
        await store.initialize()


@pytest.mark.asyncio
async def test_quarantine_replaces_database(tmp_path: Path):
    """Quarantine moves the bad file aside and leaves a fresh usable database."""
    db_path = tmp_path / "broken.db"
    db_path.write_bytes(b"garbage" * 1000)
    store = SQLiteJobStore(db_path)

    backup = await store.quarantine()

    assert backup is not None
    assert backup.exists()
    assert await store.load_all() == []


@pytest.mark.asyncio
async def test_unserializable_record_raises_write_error(
    store: SQLiteJobStore, sample_record: JobRecord
):
    """A payload json can't encode fails like any other write; old rows stay."""
    await store.save_all([sample_record])
    sample_record.result = {"finished": datetime.now(timezone.utc)}

    with pytest.raises(StoreWriteError):
        await store.save_all([sample_record])

    (loaded,) = await store.load_all()
    assert loaded.result == {"plugin": "WorldEdit", "bytes": 1024}


@pytest.mark.asyncio
async def test_transaction_without_save_writes_nothing(
    store: SQLiteJobStore, sample_record: JobRecord
):
    async with store.transaction() as session:
        assert await session.load_all() == []

    await store.save_all([sample_record])
    async with store.transaction() as session:
        (loaded,) = await session.load_all()
        loaded.plugin_name = "Renamed"
        await session.save_all([loaded])

    (stored,) = await store.load_all()
    assert stored.plugin_name == "Renamed"


@pytest.mark.asyncio
async def test_two_queues_on_one_database_keep_every_job(tmp_path: Path):
    """Queues in separate processes share the file; no enqueue is lost."""
    db_path = tmp_path / "shared.db"
    first = JobQueue(SQLiteJobStore(db_path))
    second = JobQueue(SQLiteJobStore(db_path))
    await first.store.initialize()
    await first.initialize()
    await second.initialize()

    ids = await asyncio.gather(
        *(first.enqueue(JobAction.ENABLE, f"A{i}") for i in range(5)),
        *(second.enqueue(JobAction.DISABLE, f"B{i}") for i in range(5)),
    )

    stored = [r.job_id for r in await SQLiteJobStore(db_path).load_all()]
    assert sorted(stored) == sorted(ids)
