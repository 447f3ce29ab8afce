# tests/unit/test_json_store.py
"""
Unit tests for JsonFileJobStore persistence.

Tests cover:
    - Round trip of empty, single and large collections
    - Missing / empty file reads as empty
    - Corrupt documents raise StoreCorruptError
    - A failed write leaves the previous document intact (no temp litter)
    - Quarantine moves an unreadable file aside
    - Unserializable payloads fail as StoreWriteError
    - transaction() serializes writers through the lock file
"""

import asyncio
import json
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from plugin_jobs.errors import StoreCorruptError, StoreWriteError
from plugin_jobs.models.jobs import JobAction, JobRecord, JobStatus, LogEntry
from plugin_jobs.models.json_store import JsonFileJobStore


def _make_record(index: int, status: JobStatus = JobStatus.QUEUED) -> JobRecord:
    created = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=index)
    return JobRecord(
        job_id=f"job-{1700000000000 + index}-abcd{index:04x}",
        action=JobAction.INSTALL,
        status=status,
        created_at=created,
        plugin_name=f"Plugin{index}",
        url=f"https://example.com/Plugin{index}.jar",
        options={"autoUpdate": index % 2 == 0},
        logs=[LogEntry(timestamp=created, message="queued")],
    )


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> JsonFileJobStore:
    """Create and initialize a test JSON store."""
    store = JsonFileJobStore(tmp_path / "jobs.json")
    await store.initialize()
    return store


@pytest.mark.asyncio
async def test_missing_file_loads_empty(store: JsonFileJobStore):
    """A store that was never written reads as an empty collection."""
    assert not store.path.exists()
    assert await store.load_all() == []


@pytest.mark.asyncio
async def test_empty_file_loads_empty(store: JsonFileJobStore):
    store.path.write_text("   \n", encoding="utf-8")
    assert await store.load_all() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [0, 1, 150])
async def test_save_load_roundtrip(store: JsonFileJobStore, count: int):
    """load_all returns exactly what save_all wrote, in the same order."""
    records = [_make_record(i) for i in range(count)]

    await store.save_all(records)
    loaded = await store.load_all()

    assert loaded == records
    assert [r.job_id for r in loaded] == [r.job_id for r in records]


@pytest.mark.asyncio
async def test_roundtrip_preserves_all_fields(store: JsonFileJobStore):
    """Terminal metadata, percent and error/result payloads survive a round trip."""
    now = datetime.now(timezone.utc)
    record = _make_record(1, JobStatus.FAILED)
    record.started_at = now
    record.completed_at = now + timedelta(seconds=3)
    record.error = {"type": "ExecutorError", "message": "disk full"}
    record.cancel_requested = True
    record.logs.append(LogEntry(timestamp=now, message="Download progress: 40%", percent=40))

    await store.save_all([record])
    (loaded,) = await store.load_all()

    assert loaded == record
    assert loaded.logs[-1].percent == 40


@pytest.mark.asyncio
async def test_document_shape(store: JsonFileJobStore):
    """The file is a versioned document with a 'jobs' list keyed by 'id'."""
    await store.save_all([_make_record(7)])

    data = json.loads(store.path.read_text(encoding="utf-8"))
    assert data["version"] == 1
    assert data["jobs"][0]["id"] == _make_record(7).job_id
    assert data["jobs"][0]["status"] == "queued"


@pytest.mark.asyncio
async def test_older_document_without_optional_keys(store: JsonFileJobStore):
    """Records missing optional keys load with defaults."""
    store.path.write_text(
        json.dumps(
            {
                "jobs": [
                    {
                        "id": "job-1-aaaa",
                        "action": "enable",
                        "status": "completed",
                        "created_at": "2026-01-01T00:00:00+00:00",
                        "plugin_name": "Essentials",
                    }
                ]
            }
        ),
        encoding="utf-8",
    )

    (record,) = await store.load_all()
    assert record.action is JobAction.ENABLE
    assert record.logs == []
    assert record.options == {}
    assert record.cancel_requested is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        '["a", "list"]',
        '{"version": 1}',
        '{"jobs": [{"id": "job-x"}]}',
        '{"jobs": [{"id": "job-x", "action": "explode", "status": "queued", '
        '"created_at": "2026-01-01T00:00:00+00:00"}]}',
    ],
)
async def test_corrupt_document_raises(store: JsonFileJobStore, content: str):
    store.path.write_text(content, encoding="utf-8")

    with pytest.raises(StoreCorruptError) as exc_info:
        await store.load_all()

    assert str(store.path) in str(exc_info.value)


@pytest.mark.asyncio
async def test_failed_write_keeps_previous_document(
    store: JsonFileJobStore, monkeypatch: pytest.MonkeyPatch
):
    """A crash at the rename step leaves the old collection and no temp files."""
    previous = [_make_record(1), _make_record(2)]
    await store.save_all(previous)

    def _boom(src, dst):
        raise OSError("simulated crash before rename")

    monkeypatch.setattr(os, "replace", _boom)

    with pytest.raises(StoreWriteError):
        await store.save_all([_make_record(3)])

    monkeypatch.undo()

    assert await store.load_all() == previous
    leftovers = [p for p in store.path.parent.iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


@pytest.mark.asyncio
async def test_write_into_missing_directory_fails_cleanly(tmp_path: Path):
    """Writing where the directory does not exist raises StoreWriteError."""
    store = JsonFileJobStore(tmp_path / "missing" / "jobs.json")

    with pytest.raises(StoreWriteError):
        await store.save_all([_make_record(1)])


@pytest.mark.asyncio
async def test_quarantine_moves_file_aside(store: JsonFileJobStore):
    store.path.write_text("{garbage", encoding="utf-8")

    backup = await store.quarantine()

    assert backup is not None
    assert backup.exists()
    assert ".corrupt-" in backup.name
    assert not store.path.exists()
    assert await store.load_all() == []


@pytest.mark.asyncio
async def test_quarantine_missing_file_is_noop(store: JsonFileJobStore):
    assert await store.quarantine() is None


@pytest.mark.asyncio
async def test_unserializable_record_raises_write_error(store: JsonFileJobStore):
    """A result json can't encode is a write failure, not a TypeError."""
    previous = [_make_record(1)]
    await store.save_all(previous)
    broken = _make_record(2, JobStatus.COMPLETED)
    broken.result = {"finished": datetime.now(timezone.utc)}

    with pytest.raises(StoreWriteError):
        await store.save_all([broken])

    assert await store.load_all() == previous


@pytest.mark.asyncio
async def test_transaction_holds_lock_file(store: JsonFileJobStore):
    """A second transaction on the same file waits for the first to exit."""
    other = JsonFileJobStore(store.path)
    order = []

    async def _hold():
        async with store.transaction() as session:
            order.append("first-in")
            await asyncio.sleep(0.2)
            await session.save_all([_make_record(1)])
            order.append("first-out")

    async def _wait():
        await asyncio.sleep(0.05)
        async with other.transaction() as session:
            order.append("second-in")
            assert [r.job_id for r in await session.load_all()] == [_make_record(1).job_id]

    await asyncio.gather(_hold(), _wait())

    assert order == ["first-in", "first-out", "second-in"]
    assert store.lock_path.name == "jobs.json.lock"
